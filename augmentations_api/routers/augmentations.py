"""
Augmentations router.

Provides REST API endpoints for:
- Listing and reading augmentations (cached, with hypermedia links)
- Creating, updating and deleting augmentations
- Importing augmentations from a CSV file
- Exporting all augmentations as a PDF

All endpoints require a bearer token.
"""

from typing import List

import structlog
from fastapi import APIRouter, Depends, Request, Response, UploadFile, status

from augmentations_api.dependencies import Inject, get_csv_file
from augmentations_api.exceptions import AugmentationNotFoundError
from augmentations_api.middleware.authorization import AuthorizedRoute
from augmentations_api.models.augmentation import (
    AugRequestModel,
    AugResponseModel,
    CsvImportResponse,
)
from augmentations_api.models.common import ErrorResponse
from augmentations_api.repositories.augmentation_repo import IAugmentationRepository
from augmentations_api.services.csv_import import parse_augmentations_csv
from augmentations_api.services.link_generation import ILinkGenerationService
from augmentations_api.services.pdf_generation import IPDFGenerationService

logger = structlog.get_logger(__name__)

CACHE_CONTROL = "public,max-age=60"

router = APIRouter(
    prefix="/augmentations",
    route_class=AuthorizedRoute,
    tags=["Augmentations"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        400: {"model": ErrorResponse, "description": "Validation Error"}
    }
)


@router.get(
    "",
    response_model=List[AugResponseModel],
    name="get_augmentations",
    summary="List augmentations",
)
async def get_augmentations(
    response: Response,
    repository: IAugmentationRepository = Inject(IAugmentationRepository),
    links: ILinkGenerationService[AugResponseModel] = Inject(ILinkGenerationService[AugResponseModel]),
) -> List[AugResponseModel]:
    """Return every augmentation with its links."""
    augmentations = await repository.get_all()
    response.headers["Cache-Control"] = CACHE_CONTROL
    return [links.generate_links(AugResponseModel.model_validate(a)) for a in augmentations]


@router.get(
    "/pdf",
    name="get_augmentations_pdf",
    summary="Export augmentations as PDF",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}, "description": "PDF document"}},
)
async def get_augmentations_pdf(
    repository: IAugmentationRepository = Inject(IAugmentationRepository),
    pdf: IPDFGenerationService[AugResponseModel] = Inject(IPDFGenerationService[AugResponseModel]),
) -> Response:
    """Render all augmentations as a PDF table."""
    augmentations = [AugResponseModel.model_validate(a) for a in await repository.get_all()]
    content = pdf.generate(augmentations, "Augmentations")
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": 'attachment; filename="augmentations.pdf"'}
    )


@router.post(
    "/csv",
    response_model=CsvImportResponse,
    status_code=status.HTTP_201_CREATED,
    name="import_augmentations_csv",
    summary="Import augmentations from CSV",
)
async def import_augmentations_csv(
    file: UploadFile = Depends(get_csv_file),
    repository: IAugmentationRepository = Inject(IAugmentationRepository),
) -> CsvImportResponse:
    """
    Create augmentations from an uploaded CSV file.

    The header must contain name; description, type, activation and
    energy_consumption are optional. Nothing is stored if any row is invalid.
    """
    models = parse_augmentations_csv(await file.read())
    created = await repository.create_many(models)

    logger.info("augmentations_imported", filename=file.filename, count=len(created))
    return CsvImportResponse(imported=len(created))


@router.get(
    "/{augmentation_id}",
    response_model=AugResponseModel,
    name="get_augmentation",
    summary="Get an augmentation",
    responses={404: {"model": ErrorResponse, "description": "Not Found"}},
)
async def get_augmentation(
    augmentation_id: int,
    response: Response,
    repository: IAugmentationRepository = Inject(IAugmentationRepository),
    links: ILinkGenerationService[AugResponseModel] = Inject(ILinkGenerationService[AugResponseModel]),
) -> AugResponseModel:
    """Return one augmentation with its links."""
    augmentation = await repository.get(augmentation_id)
    if augmentation is None:
        raise AugmentationNotFoundError(augmentation_id)

    response.headers["Cache-Control"] = CACHE_CONTROL
    return links.generate_links(AugResponseModel.model_validate(augmentation))


@router.post(
    "",
    response_model=AugResponseModel,
    status_code=status.HTTP_201_CREATED,
    name="create_augmentation",
    summary="Create an augmentation",
    responses={409: {"model": ErrorResponse, "description": "Conflict"}},
)
async def create_augmentation(
    model: AugRequestModel,
    request: Request,
    response: Response,
    repository: IAugmentationRepository = Inject(IAugmentationRepository),
    links: ILinkGenerationService[AugResponseModel] = Inject(ILinkGenerationService[AugResponseModel]),
) -> AugResponseModel:
    """Create an augmentation; the Location header points at it."""
    augmentation = await repository.create(model)

    response.headers["Location"] = str(
        request.url_for("get_augmentation", augmentation_id=augmentation.id)
    )
    return links.generate_links(AugResponseModel.model_validate(augmentation))


@router.put(
    "/{augmentation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    name="update_augmentation",
    summary="Update an augmentation",
    responses={
        404: {"model": ErrorResponse, "description": "Not Found"},
        409: {"model": ErrorResponse, "description": "Conflict"}
    },
)
async def update_augmentation(
    augmentation_id: int,
    model: AugRequestModel,
    repository: IAugmentationRepository = Inject(IAugmentationRepository),
) -> Response:
    """Replace every field of an augmentation."""
    if not await repository.update(augmentation_id, model):
        raise AugmentationNotFoundError(augmentation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/{augmentation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    name="delete_augmentation",
    summary="Delete an augmentation",
    responses={404: {"model": ErrorResponse, "description": "Not Found"}},
)
async def delete_augmentation(
    augmentation_id: int,
    repository: IAugmentationRepository = Inject(IAugmentationRepository),
) -> Response:
    """Delete an augmentation."""
    if not await repository.delete(augmentation_id):
        raise AugmentationNotFoundError(augmentation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
