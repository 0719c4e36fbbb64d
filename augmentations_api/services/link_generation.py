"""
Hypermedia link generation.

Links are built from route names against the request currently being
served, so they carry the scheme, host and root path the client used.
"""

from abc import ABC, abstractmethod
from contextvars import ContextVar
from typing import Generic, List, Optional, TypeVar

import structlog
from fastapi import Request
from injector import inject

from augmentations_api.models.augmentation import AugResponseModel
from augmentations_api.models.common import LinkModel

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_current_request: ContextVar[Optional[Request]] = ContextVar("current_request", default=None)


class RequestContextAccessor:
    """Gives services access to the request of the current task."""

    def set(self, request: Request) -> None:
        _current_request.set(request)

    @property
    def request(self) -> Request:
        """
        The request being served.

        Raises:
            RuntimeError: If called outside a request
        """
        request = _current_request.get()
        if request is None:
            raise RuntimeError("No request is being served in this context")
        return request


class ILinkGenerationService(ABC, Generic[T]):
    """Attaches hypermedia links to a resource model."""

    @abstractmethod
    def generate_links(self, model: T) -> T:
        ...


class AugmentationLinkGenerationService(ILinkGenerationService[AugResponseModel]):
    """Links for an augmentation: self, update, delete and the collection."""

    @inject
    def __init__(self, accessor: RequestContextAccessor):
        self.accessor = accessor

    def generate_links(self, model: AugResponseModel) -> AugResponseModel:
        request = self.accessor.request

        def url(name: str, **params) -> str:
            return str(request.url_for(name, **params))

        links: List[LinkModel] = [
            LinkModel(href=url("get_augmentation", augmentation_id=model.id), rel="self", method="GET"),
            LinkModel(href=url("update_augmentation", augmentation_id=model.id), rel="update_augmentation", method="PUT"),
            LinkModel(href=url("delete_augmentation", augmentation_id=model.id), rel="delete_augmentation", method="DELETE"),
            LinkModel(href=url("get_augmentations"), rel="all_augmentations", method="GET"),
        ]
        return model.model_copy(update={"links": links})
