"""Grouped, non-sensitive settings returned by GET /system/settings."""

from typing import Optional

from pydantic import BaseModel


class AppGroup(BaseModel):
    name: str
    environment: str
    log_level: str
    port: int


class DatabaseGroup(BaseModel):
    database_host: Optional[str] = None
    database_driver: Optional[str] = None
    pool_size: int
    max_overflow: int


class GeneralGroup(BaseModel):
    is_production: bool
    error_reporting_enabled: bool


class MetaGroup(BaseModel):
    graph_api_url: str
    request_timeout_seconds: float
    signature_check_enabled: bool
    verify_token_configured: bool


class VoiceflowGroup(BaseModel):
    runtime_url: str
    request_timeout_seconds: float
    max_attempts: int
    daily_interact_limit: int
    simulate: bool
    default_api_key_configured: bool


class SystemSettingsGrouped(BaseModel):
    app: AppGroup
    database: DatabaseGroup
    general: GeneralGroup
    meta: MetaGroup
    voiceflow: VoiceflowGroup
