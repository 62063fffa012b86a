from fastapi import APIRouter, Depends
from sqlalchemy.exc import ArgumentError

from app.config import get_settings
from app.core.registry import AdapterRegistry
from app.routers.utils.dependencies import get_adapter_registry, require_api_key
from app.schemas.system import (
    AppGroup,
    DatabaseGroup,
    HealthRead,
    RelayGroup,
    SystemSettingsGrouped,
)

router = APIRouter(
    prefix="/system",
    tags=["system"],
    responses={404: {"description": "Not found"}},
)


@router.get("/health", response_model=HealthRead)
def health(registry: AdapterRegistry = Depends(get_adapter_registry)) -> HealthRead:
    return HealthRead(
        status="ok", platforms=[p.value for p in registry.list_platforms()]
    )


@router.get(
    "/settings",
    response_model=SystemSettingsGrouped,
    dependencies=[Depends(require_api_key)],
)
def get_system_settings(
    registry: AdapterRegistry = Depends(get_adapter_registry),
) -> SystemSettingsGrouped:
    """Return grouped, non-sensitive configuration settings for troubleshooting."""
    s = get_settings()

    # Extract safe database info only (no credentials)
    database_host = None
    database_driver = None
    try:
        url_obj = s.database_url_obj
        database_host = url_obj.host
        database_driver = url_obj.get_backend_name()
    except (ArgumentError, ValueError):
        pass

    return SystemSettingsGrouped(
        app=AppGroup(
            name=s.app_name,
            environment=s.environment,
            log_level=s.log_level,
            port=s.port,
        ),
        database=DatabaseGroup(
            database_host=database_host,
            database_driver=database_driver,
            pool_size=s.database_pool_size,
            max_overflow=s.database_max_overflow,
        ),
        relay=RelayGroup(
            enabled_platforms=[p.value for p in registry.list_platforms()],
            reference_stale_days=s.reference_stale_days,
            expired_status_codes=list(s.expired_status_codes),
            platform_timeout_seconds=s.platform_timeout_seconds,
            broadcast_max_parallel=s.broadcast_max_parallel,
            public_base_url=s.public_base_url,
        ),
    )
