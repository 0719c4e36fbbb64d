"""
Documentation middleware.

Serves the generated OpenAPI document and the Swagger UI before any
authentication runs, so the docs are always reachable.
"""

from typing import Callable

import structlog
from fastapi import Request
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from augmentations_api.container import ServiceProvider
from augmentations_api.documentation import ApiDocumentationOptions, OpenApiDocumentGenerator

logger = structlog.get_logger(__name__)


class DocumentationMiddleware(BaseHTTPMiddleware):
    """Answers requests for the OpenAPI document and the Swagger UI."""

    def __init__(self, app, services: ServiceProvider):
        super().__init__(app)
        self.options: ApiDocumentationOptions = services.get_required_service(ApiDocumentationOptions)
        self.generator: OpenApiDocumentGenerator = services.get_required_service(OpenApiDocumentGenerator)
        ui = self.options.ui_url
        self.ui_paths = {ui, f"{ui}/", f"{ui}/index.html"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method not in ("GET", "HEAD"):
            return await call_next(request)

        path = request.url.path
        root_path = request.scope.get("root_path", "")

        if path == self.options.document_url:
            return JSONResponse(self.generator.generate(request.app))

        if path in self.ui_paths:
            return get_swagger_ui_html(
                openapi_url=root_path + self.options.document_url,
                title=f"{self.options.title} - Swagger UI",
            )

        return await call_next(request)
