from typing import Optional

from app.adapters.meta import MetaAdapter
from app.adapters.voiceflow import VoiceflowClient
from app.config import get_settings
from app.core.integration_cache import IntegrationConfigCache
from app.infra.error_reporter import ErrorReporter


class AppState:
    """Process-wide collaborators shared by every pipeline run."""

    def __init__(self) -> None:
        self.config_cache = IntegrationConfigCache()
        self._error_reporter: Optional[ErrorReporter] = None
        self._engine_client: Optional[VoiceflowClient] = None
        self._meta_adapter: Optional[MetaAdapter] = None

    @property
    def error_reporter(self) -> ErrorReporter:
        if self._error_reporter is None:
            settings = get_settings()
            self._error_reporter = ErrorReporter(
                access_token=settings.rollbar_access_token,
                environment=settings.environment,
            )
        return self._error_reporter

    @property
    def engine_client(self) -> VoiceflowClient:
        # one client per process; per-user keys travel on each IntegrationConfig
        if self._engine_client is None:
            self._engine_client = VoiceflowClient.from_settings(
                error_reporter=self.error_reporter
            )
        return self._engine_client

    @property
    def meta_adapter(self) -> MetaAdapter:
        if self._meta_adapter is None:
            self._meta_adapter = MetaAdapter.from_settings()
        return self._meta_adapter

    def reset(self) -> None:
        self.config_cache.clear()
        self._error_reporter = None
        self._engine_client = None
        self._meta_adapter = None


state = AppState()
