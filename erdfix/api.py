# File: erdfix/api.py
"""
NexaFlow ERDFix - HTTP Surface
================================
Thin FastAPI wrapper around ``ERDValidationService``:

    POST /api/validate-erd   ValidateRequest    → ValidationResponse
    POST /api/bulk-fix       BulkFixRequest     → BulkFixResult
    POST /api/fix-warning    FixWarningRequest  → IndividualFixResult
    GET  /health

Bodies are camelCase JSON; ``sourceText`` may also be sent as
``mermaidContent``. Responses are always HTTP 200 with ``success`` telling
the outcome; malformed bodies get FastAPI's 422.

Run with ``erdfix --serve`` or ``uvicorn erdfix.api:create_app --factory``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from erdfix.models import BulkFixRequest, FixWarningRequest, ValidateRequest
from erdfix.service import ERDValidationService

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("erdfix.api")

API_PREFIX: str = "/api"


def _respond(model: BaseModel) -> JSONResponse:
    return JSONResponse(content=model.model_dump(mode="json", by_alias=True))


def build_router(service: ERDValidationService) -> APIRouter:
    """Routes bound to one service instance."""
    router: APIRouter = APIRouter(prefix=API_PREFIX, tags=["ERD"])

    @router.post("/validate-erd")
    def validate_erd(request: ValidateRequest) -> JSONResponse:
        """Parse and validate a diagram."""
        logger.info("POST /validate-erd (%d chars).", len(request.source_text))
        return _respond(service.validate(
            request.source_text,
            detect_known_entities=request.options.detect_known_entities,
        ))

    @router.post("/bulk-fix")
    def bulk_fix(request: BulkFixRequest) -> JSONResponse:
        """Apply every selected fix; omitted ``warnings`` means validate first."""
        warnings = request.warnings if "warnings" in request.model_fields_set else None
        logger.info(
            "POST /bulk-fix (%d chars, fixTypes=%s).",
            len(request.source_text),
            request.fix_types,
        )
        return _respond(service.bulk_fix(
            request.source_text,
            warnings,
            request.fix_types,
            detect_known_entities=request.options.detect_known_entities,
        ))

    @router.post("/fix-warning")
    def fix_warning(request: FixWarningRequest) -> JSONResponse:
        """Fix one diagnostic by id."""
        logger.info("POST /fix-warning %s.", request.warning_id)
        return _respond(service.fix_warning(
            request.source_text,
            request.warning_id,
            detect_known_entities=request.options.detect_known_entities,
        ))

    return router


def create_app(
    service: Optional[ERDValidationService] = None,
    *,
    cors_origins: Sequence[str] = ("*",),
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service: Engine to serve; a default-configured one when omitted.
        cors_origins: Origins allowed to call the API from a browser.
    """
    from erdfix import __version__

    engine: ERDValidationService = service or ERDValidationService()

    app: FastAPI = FastAPI(
        title="NexaFlow ERDFix",
        version=__version__,
        description="Validation and auto-remediation for Mermaid ER diagrams.",
    )

    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(cors_origins),
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(build_router(engine))

    @app.get("/health", tags=["Health"])
    def health_check() -> Dict[str, Any]:
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    logger.debug("FastAPI app created with %d route(s).", len(app.routes))
    return app


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "API_PREFIX",
    "build_router",
    "create_app",
]

logger.debug("erdfix.api loaded — %d public symbols.", len(__all__))
