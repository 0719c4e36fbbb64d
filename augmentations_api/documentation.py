"""
OpenAPI document generation.

Builds the API description served by the documentation middleware:
- Document metadata (title, version, contact, license)
- A single "Bearer" security scheme required globally
- Operation-level opt-out for endpoints marked allow_anonymous (flagged by
  AuthorizedRoute with an OpenAPI extension)
- Summaries and descriptions merged from a JSON comments file
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
from injector import inject

from augmentations_api.middleware.authorization import ANONYMOUS_OPENAPI_EXTENSION

logger = structlog.get_logger(__name__)

DEFAULT_DOCUMENTATION_FILE = Path(__file__).parent / "docs" / "comments.json"

HTTP_METHODS = frozenset({"get", "put", "post", "delete", "options", "head", "patch", "trace"})

BEARER_SECURITY_SCHEME: Dict[str, Any] = {
    "description": 'JWT Token Bearer Authorization. \n Example: "Bearer {JWT Token}"',
    "type": "apiKey",
    "name": "Authorization",
    "in": "header",
    "scheme": "Bearer",
    "bearerFormat": "JWT",
}


@dataclass(frozen=True)
class ApiDocumentationOptions:
    """What the generated document says about the API and where it is served."""

    title: str = "AugmentationsAPI"
    version: str = "v1"
    description: str = "An API about Deus Ex's Augmentations"
    terms_of_service: str = "https://deusex.fandom.com/wiki/Augmentation"
    contact: Dict[str, str] = field(default_factory=lambda: {
        "name": "AugmentationsAPI maintainers",
        "email": "augmentations-api@example.com",
    })
    license_info: Dict[str, str] = field(default_factory=lambda: {
        "name": "MIT",
        "url": "https://opensource.org/licenses/MIT",
    })
    route_prefix: str = "swagger"
    document_name: str = "v1"
    documentation_file: Path = DEFAULT_DOCUMENTATION_FILE

    @property
    def document_url(self) -> str:
        return f"/{self.route_prefix}/{self.document_name}/swagger.json"

    @property
    def ui_url(self) -> str:
        return f"/{self.route_prefix}"


def load_operation_comments(path: Path) -> Dict[str, Dict[str, str]]:
    """
    Load per-operation comments keyed by "METHOD /path".

    A missing or unreadable file yields no comments; the document is still
    generated without them.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            comments = json.load(f)
    except FileNotFoundError:
        logger.warning("documentation_file_missing", path=str(path))
        return {}
    except (OSError, ValueError) as e:
        logger.warning("documentation_file_unreadable", path=str(path), error=str(e))
        return {}

    if not isinstance(comments, dict):
        logger.warning("documentation_file_invalid", path=str(path))
        return {}
    return comments


class OpenApiDocumentGenerator:
    """Generates and caches the OpenAPI document of an application."""

    @inject
    def __init__(self, options: ApiDocumentationOptions):
        self.options = options
        self._document: Optional[Dict[str, Any]] = None

    def generate(self, app: FastAPI) -> Dict[str, Any]:
        """
        Build the OpenAPI document for app (once).

        Args:
            app: Application whose routes are described

        Returns:
            OpenAPI document as a dict
        """
        if self._document is not None:
            return self._document

        options = self.options
        document = get_openapi(
            title=options.title,
            version=options.version,
            description=options.description,
            routes=app.routes,
            terms_of_service=options.terms_of_service,
            contact=options.contact,
            license_info=options.license_info,
        )

        components = document.setdefault("components", {})
        components.setdefault("securitySchemes", {})["Bearer"] = dict(BEARER_SECURITY_SCHEME)
        document["security"] = [{"Bearer": []}]

        comments = load_operation_comments(options.documentation_file)
        paths = document.get("paths", {})

        # Walk the generated paths rather than app.routes, which may hold
        # included routers instead of their routes.
        for path, path_item in paths.items():
            for method, operation in path_item.items():
                if method not in HTTP_METHODS or not isinstance(operation, dict):
                    continue
                if operation.pop(ANONYMOUS_OPENAPI_EXTENSION, False):
                    operation["security"] = []
                comment = comments.get(f"{method.upper()} {path}")
                if isinstance(comment, dict):
                    for key in ("summary", "description"):
                        if comment.get(key):
                            operation[key] = comment[key]

        logger.info(
            "openapi_document_generated",
            paths=len(paths),
            comments=len(comments)
        )
        self._document = document
        return document
