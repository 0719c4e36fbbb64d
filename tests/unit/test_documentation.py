"""
Unit tests for OpenAPI document generation.
"""

import json
from dataclasses import replace

from fastapi import APIRouter, FastAPI

from augmentations_api.documentation import (
    ApiDocumentationOptions,
    OpenApiDocumentGenerator,
    load_operation_comments,
)
from augmentations_api.middleware.authorization import AuthorizedRoute, allow_anonymous


def make_app() -> FastAPI:
    app = FastAPI()
    app.router.route_class = AuthorizedRoute

    @app.get("/secret")
    async def secret():
        return {}

    @app.post("/open")
    @allow_anonymous
    async def open_endpoint():
        return {}

    return app


class TestOpenApiDocumentGenerator:
    """Tests for the generated document."""

    def test_metadata(self, tmp_path):
        """Test title, version and description."""
        options = ApiDocumentationOptions(documentation_file=tmp_path / "missing.json")
        document = OpenApiDocumentGenerator(options).generate(make_app())

        assert document["info"]["title"] == "AugmentationsAPI"
        assert document["info"]["version"] == "v1"
        assert document["info"]["description"] == "An API about Deus Ex's Augmentations"

    def test_bearer_scheme_required_globally(self, tmp_path):
        """Test the Bearer scheme is declared and required by default."""
        options = ApiDocumentationOptions(documentation_file=tmp_path / "missing.json")
        document = OpenApiDocumentGenerator(options).generate(make_app())

        scheme = document["components"]["securitySchemes"]["Bearer"]
        assert scheme["type"] == "apiKey"
        assert scheme["name"] == "Authorization"
        assert scheme["in"] == "header"
        assert document["security"] == [{"Bearer": []}]

    def test_anonymous_operations_opt_out(self, tmp_path):
        """Test anonymous endpoints have an empty security requirement."""
        options = ApiDocumentationOptions(documentation_file=tmp_path / "missing.json")
        paths = OpenApiDocumentGenerator(options).generate(make_app())["paths"]

        assert paths["/open"]["post"]["security"] == []
        assert "security" not in paths["/secret"]["get"]

    def test_anonymous_operations_in_included_routers(self, tmp_path):
        """Test the opt-out reaches operations of nested, prefixed routers."""
        inner = APIRouter(prefix="/identity", route_class=AuthorizedRoute)

        @inner.post("/login")
        @allow_anonymous
        async def login():
            return {}

        @inner.get("/me")
        async def me():
            return {}

        outer = APIRouter()
        outer.include_router(inner)
        app = FastAPI()
        app.include_router(outer, prefix="/api")

        options = ApiDocumentationOptions(documentation_file=tmp_path / "missing.json")
        paths = OpenApiDocumentGenerator(options).generate(app)["paths"]

        assert paths["/api/identity/login"]["post"]["security"] == []
        assert "security" not in paths["/api/identity/me"]["get"]
        assert "x-allow-anonymous" not in paths["/api/identity/login"]["post"]

    def test_comments_merged(self, tmp_path):
        """Test summaries and descriptions come from the comments file."""
        comments = tmp_path / "comments.json"
        comments.write_text(json.dumps({
            "GET /secret": {"summary": "Read the secret", "description": "Needs a token."}
        }))

        options = ApiDocumentationOptions(documentation_file=comments)
        operation = OpenApiDocumentGenerator(options).generate(make_app())["paths"]["/secret"]["get"]

        assert operation["summary"] == "Read the secret"
        assert operation["description"] == "Needs a token."

    def test_document_is_cached(self, tmp_path):
        """Test the document is built once."""
        options = ApiDocumentationOptions(documentation_file=tmp_path / "missing.json")
        generator = OpenApiDocumentGenerator(options)
        app = make_app()

        assert generator.generate(app) is generator.generate(app)

    def test_urls(self):
        """Test the document and UI locations follow the route prefix."""
        options = replace(ApiDocumentationOptions(), route_prefix="docs", document_name="v2")

        assert options.document_url == "/docs/v2/swagger.json"
        assert options.ui_url == "/docs"


class TestLoadOperationComments:
    """Tests for the comments file."""

    def test_missing_file(self, tmp_path):
        """Test a missing file gives no comments."""
        assert load_operation_comments(tmp_path / "missing.json") == {}

    def test_invalid_file(self, tmp_path):
        """Test malformed JSON gives no comments."""
        path = tmp_path / "comments.json"
        path.write_text("{not json")

        assert load_operation_comments(path) == {}

    def test_shipped_file_covers_operations(self):
        """Test the packaged comments describe the augmentation endpoints."""
        comments = load_operation_comments(ApiDocumentationOptions().documentation_file)

        assert "GET /api/augmentations" in comments
        assert "POST /api/identity/register" in comments
