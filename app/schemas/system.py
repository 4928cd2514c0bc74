"""Pydantic schemas for the system settings endpoint (non-sensitive values only)."""

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


class MessagingGroup(BaseModel):
    conversation_poll_interval_seconds: float
    message_poll_interval_seconds: float
    typing_debounce_ms: int
    typing_window_ms: int
    presence_online_window_seconds: int
    message_max_length: int
    message_rate_limit_per_minute: Optional[int] = None
    notification_dedup_window_seconds: int


class RedisGroup(BaseModel):
    host: Optional[str] = None
    port: int


class SystemSettingsGrouped(BaseModel):
    app: AppGroup
    database: DatabaseGroup
    general: GeneralGroup
    messaging: MessagingGroup
    redis: RedisGroup
