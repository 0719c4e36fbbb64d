"""
FastAPI dependencies bridging routers and the service container.

Provides injectable dependencies for:
- The per-request service scope
- Any registered service (Inject)
- Validated CSV uploads
"""

from typing import Any, AsyncGenerator

import structlog
from fastapi import Depends, File, Request, UploadFile

from augmentations_api.container import ServiceProvider, ServiceScope, service_name
from augmentations_api.filters.csv_validation import ValidateFileIsCSV
from augmentations_api.services.link_generation import RequestContextAccessor

logger = structlog.get_logger(__name__)


async def get_service_scope(request: Request) -> AsyncGenerator[ServiceScope, None]:
    """
    Open the service scope of the current request.

    Scoped services (the database session among them) are disposed when the
    request finishes.

    Yields:
        Service scope
    """
    provider: ServiceProvider = request.app.state.services
    provider.get_required_service(RequestContextAccessor).set(request)

    async with provider.create_scope() as scope:
        yield scope


def Inject(service_type: Any) -> Any:
    """
    Depend on a registered service.

    Example:
        @router.get("/")
        async def list_all(repo: IAugmentationRepository = Inject(IAugmentationRepository)):
            ...
    """
    async def resolve(scope: ServiceScope = Depends(get_service_scope)) -> Any:
        return scope.get_required_service(service_type)

    resolve.__name__ = f"resolve_{service_name(service_type)}"
    return Depends(resolve)


async def get_csv_file(
    file: UploadFile = File(..., description="CSV file of augmentations"),
    scope: ServiceScope = Depends(get_service_scope),
) -> UploadFile:
    """Run the CSV filter over the uploaded file."""
    return scope.get_required_service(ValidateFileIsCSV).on_action_executing(file)
