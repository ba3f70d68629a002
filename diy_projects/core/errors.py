from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base class for business-rule failures raised by the CRUD layer."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "domain_error"

    def __init__(self, message: str, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class NoOpUpdate(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "no_fields_to_update"

    def __init__(self, message: str = "No fields to update", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ValidationFailure(DomainError, ValueError):
    status_code = 422
    code = "validation_failed"


class InsufficientStock(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "insufficient_stock"

    def __init__(self, material_id: int, available: int, change: int) -> None:
        super().__init__(
            f"Insufficient stock for material {material_id}. Current: {available}, Requested change: {change}",
            details={"material_id": material_id, "available": available, "requested_change": change},
        )
        self.material_id = material_id
        self.available = available
        self.change = change


class MaterialNotFound(DomainError):
    status_code = 422
    code = "material_not_found"

    def __init__(self, material_id: int) -> None:
        super().__init__(f"Material with id {material_id} not found", details={"material_id": material_id})
        self.material_id = material_id


class NoMaterials(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "no_materials"


class ProjectNotStartable(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "project_not_startable"

    def __init__(self, project_id: int, current_status: str) -> None:
        super().__init__(
            f"Project {project_id} cannot be started from status {current_status!r}",
            details={"project_id": project_id, "status": current_status},
        )
        self.project_id = project_id
        self.current_status = current_status


class CatalogUnavailable(DomainError):
    """The materials catalog could not be reached; not a statement about any material."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "catalog_unavailable"


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


async def domain_exception_handler(request: Request, exc: DomainError):
    logger.info(
        "request.rejected",
        extra={"extra_data": {"code": exc.code, "path": request.url.path, "reason": exc.message}},
    )
    return ErrorEnvelope(status_code=exc.status_code, code=exc.code, message=exc.message, details=exc.details)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=422,
        code="validation_error",
        message="Validation failed",
        details={"errors": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    # ``ctx`` may carry the raw exception object, which JSONResponse cannot encode.
    errors = []
    for error in exc.errors():
        cleaned = {key: value for key, value in error.items() if key != "ctx"}
        errors.append(cleaned)
    return errors


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)


__all__ = [
    "CatalogUnavailable",
    "DomainError",
    "ErrorEnvelope",
    "InsufficientStock",
    "MaterialNotFound",
    "NoMaterials",
    "NoOpUpdate",
    "NotFound",
    "ProjectNotStartable",
    "ValidationFailure",
    "register_exception_handlers",
]
