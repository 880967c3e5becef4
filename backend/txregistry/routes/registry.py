"""Registry API routes: resolution, crawl data, metadata and logs."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status

from txregistry.errors import ResolutionRequestError
from txregistry.schemas.crawl import CrawlMetadata, LogEntry, RegistryStatus
from txregistry.schemas.registry import FederationSnapshot
from txregistry.schemas.resolve import ResolutionResult
from txregistry.services.registry import RegistryService

router = APIRouter(prefix="/registry", tags=["registry"])

# Log endpoint limits
DEFAULT_LOG_LIMIT = 100
MAX_LOG_LIMIT = 1000


def get_registry_service(request: Request) -> RegistryService:
    """Return the registry service created by the application lifespan."""
    service = getattr(request.app.state, "registry", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Registry service not initialized",
        )
    return service


@router.get("/resolve", response_model=ResolutionResult)
async def resolve(
    fhir_version: str | None = Query(default=None, alias="fhirVersion"),
    url: str | None = Query(default=None),
    value_set: str | None = Query(default=None, alias="valueSet"),
    authoritative_only: bool = Query(default=False, alias="authoritativeOnly"),
    usage: str | None = Query(default=None),
    registry: RegistryService = Depends(get_registry_service),
) -> ResolutionResult:
    """Find servers for a code system (``url``) or value set (``valueSet``).

    Raises:
        HTTPException: 400 if the FHIR version or URL is missing or invalid.
    """
    try:
        if value_set:
            return registry.resolve_value_set(fhir_version, value_set, authoritative_only, usage)
        return registry.resolve_code_system(fhir_version, url, authoritative_only, usage)
    except ResolutionRequestError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )


@router.get("/data", response_model=FederationSnapshot)
async def get_data(
    registry: RegistryService = Depends(get_registry_service),
) -> FederationSnapshot:
    """Return the currently installed federation snapshot."""
    return registry.get_data()


@router.get("/metadata", response_model=CrawlMetadata)
async def get_metadata(
    registry: RegistryService = Depends(get_registry_service),
) -> CrawlMetadata:
    return registry.get_metadata()


@router.get("/logs", response_model=list[LogEntry])
async def get_logs(
    limit: int = Query(default=DEFAULT_LOG_LIMIT, ge=1, le=MAX_LOG_LIMIT),
    registry: RegistryService = Depends(get_registry_service),
) -> list[LogEntry]:
    """Return the most recent crawl log entries, oldest first."""
    return registry.get_logs(limit)


@router.get("/status", response_model=RegistryStatus)
async def get_status(
    registry: RegistryService = Depends(get_registry_service),
) -> RegistryStatus:
    return registry.get_status()


@router.post("/crawl", response_model=RegistryStatus, status_code=status.HTTP_202_ACCEPTED)
async def trigger_crawl(
    background_tasks: BackgroundTasks,
    registry: RegistryService = Depends(get_registry_service),
) -> RegistryStatus:
    """Start a crawl in the background. A no-op if one is already running."""
    background_tasks.add_task(registry.crawl)
    return registry.get_status()
