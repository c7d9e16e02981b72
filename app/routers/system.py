from fastapi import APIRouter
from sqlalchemy.exc import ArgumentError

from app.config import get_settings
from app.schemas.system import (
    AppGroup,
    DatabaseGroup,
    GeneralGroup,
    MetaGroup,
    SystemSettingsGrouped,
    VoiceflowGroup,
)

router = APIRouter(
    prefix="/system",
    tags=["system"],
    responses={404: {"description": "Not found"}},
)


@router.get("/settings", response_model=SystemSettingsGrouped)
def get_system_settings() -> SystemSettingsGrouped:
    """Return grouped, non-sensitive system configuration settings for troubleshooting."""
    s = get_settings()

    app_group = AppGroup(
        name=s.app_name,
        environment=s.environment,
        log_level=s.log_level,
        port=s.port,
    )

    # Extract safe database info only (no credentials)
    database_host = None
    database_driver = None
    try:
        url_obj = s.database_url_obj
        database_host = url_obj.host
        database_driver = url_obj.get_backend_name()
    except (ValueError, ArgumentError):
        pass

    database_group = DatabaseGroup(
        database_host=database_host,
        database_driver=database_driver,
        pool_size=s.database_pool_size,
        max_overflow=s.database_max_overflow,
    )

    general_group = GeneralGroup(
        is_production=s.is_production,
        error_reporting_enabled=bool(s.rollbar_access_token),
    )

    meta_group = MetaGroup(
        graph_api_url=s.meta_graph_api_url,
        request_timeout_seconds=s.meta_request_timeout_seconds,
        signature_check_enabled=bool(s.meta_app_secret),
        verify_token_configured=bool(s.meta_verify_token),
    )

    voiceflow_group = VoiceflowGroup(
        runtime_url=s.voiceflow_runtime_url,
        request_timeout_seconds=s.voiceflow_request_timeout_seconds,
        max_attempts=s.voiceflow_max_attempts,
        daily_interact_limit=s.voiceflow_daily_interact_limit,
        simulate=s.voiceflow_simulate,
        default_api_key_configured=bool(s.voiceflow_api_key),
    )

    return SystemSettingsGrouped(
        app=app_group,
        database=database_group,
        general=general_group,
        meta=meta_group,
        voiceflow=voiceflow_group,
    )
