from typing import List, Optional

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


class RelayGroup(BaseModel):
    enabled_platforms: List[str]
    reference_stale_days: int
    expired_status_codes: List[int]
    platform_timeout_seconds: float
    broadcast_max_parallel: int
    public_base_url: str


class SystemSettingsGrouped(BaseModel):
    app: AppGroup
    database: DatabaseGroup
    relay: RelayGroup


class HealthRead(BaseModel):
    status: str
    platforms: List[str]
