from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.schemas.system import (
    AppGroup,
    DatabaseGroup,
    GeneralGroup,
    MessagingGroup,
    RedisGroup,
    SystemSettingsGrouped,
)
from app.config import get_settings
from app.db import get_db
from app.infra.logging_config import get_logger

logger = get_logger("system")

router = APIRouter(
    prefix="/system",
    tags=["system"],
    responses={404: {"description": "Not found"}},
)


@router.get("/health")
def health(db: Session = Depends(get_db)) -> dict:
    """Liveness plus a trivial database round trip."""
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Health check database probe failed: %s", e)
        return {"status": "degraded", "database": False}
    return {"status": "ok", "database": True}


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
    except Exception:
        pass

    database_group = DatabaseGroup(
        database_host=database_host,
        database_driver=database_driver,
        pool_size=s.database_pool_size,
        max_overflow=s.database_max_overflow,
    )

    messaging_group = MessagingGroup(
        conversation_poll_interval_seconds=s.conversation_poll_interval_seconds,
        message_poll_interval_seconds=s.message_poll_interval_seconds,
        typing_debounce_ms=s.typing_debounce_ms,
        typing_window_ms=s.typing_window_ms,
        presence_online_window_seconds=s.presence_online_window_seconds,
        message_max_length=s.message_max_length,
        message_rate_limit_per_minute=s.message_rate_limit_per_minute,
        notification_dedup_window_seconds=s.notification_dedup_window_seconds,
    )

    return SystemSettingsGrouped(
        app=app_group,
        database=database_group,
        general=GeneralGroup(is_production=s.is_production),
        messaging=messaging_group,
        redis=RedisGroup(host=s.redis_host, port=s.redis_port),
    )
