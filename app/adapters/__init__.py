"""Platform and engine adapters."""

from app.adapters.base import BasePlatformAdapter
from app.adapters.meta import MetaAdapter
from app.adapters.voiceflow import SimulatedVoiceflowClient, VoiceflowClient

__all__ = [
    "BasePlatformAdapter",
    "MetaAdapter",
    "SimulatedVoiceflowClient",
    "VoiceflowClient",
]
