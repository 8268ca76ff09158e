from __future__ import annotations

import traceback
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from taskpilot.core.config import get_settings
from taskpilot.core.logging import get_logger
from taskpilot.llm.errors import LLMProviderError
from taskpilot.security import redact_sensitive_text

logger = get_logger("taskpilot.api.errors")

AI_PROVIDER_ERROR_MESSAGE = "The AI service is currently unavailable. Please try again later."


class ValidationIssue(BaseModel):
    field: str
    message: str


class ErrorDetail(BaseModel):
    exception: str
    trace: list[str] = Field(default_factory=list)


class ErrorPayload(BaseModel):
    code: str
    message: str
    issues: list[ValidationIssue] = Field(default_factory=list)
    detail: ErrorDetail | None = None


class ErrorResponse(BaseModel):
    error: ErrorPayload
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed.",
                    "issues": [
                        {
                            "field": "body.message",
                            "message": "String should have at most 1000 characters",
                        }
                    ],
                }
            }
        }
    )


class ApiException(Exception):
    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        *,
        issues: list[ValidationIssue] | None = None,
    ) -> None:
        self.status_code = status_code
        self.code = code
        self.message = message
        self.issues = issues or []
        super().__init__(message)


_STATUS_CODES: dict[int, str] = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_409_CONFLICT: "CONFLICT",
    status.HTTP_422_UNPROCESSABLE_CONTENT: "VALIDATION_ERROR",
    status.HTTP_500_INTERNAL_SERVER_ERROR: "INTERNAL_ERROR",
    status.HTTP_503_SERVICE_UNAVAILABLE: "SERVICE_UNAVAILABLE",
}

# Representative bodies shown in the OpenAPI docs for each documented status.
_DOC_EXAMPLES: dict[int, tuple[str, str]] = {
    status.HTTP_400_BAD_REQUEST: ("TASK_ALREADY_ARCHIVED", "Task is already archived."),
    status.HTTP_401_UNAUTHORIZED: ("UNAUTHORIZED", "Unauthenticated."),
    status.HTTP_403_FORBIDDEN: ("FORBIDDEN", "User does not have the right roles."),
    status.HTTP_404_NOT_FOUND: ("TASK_NOT_FOUND", "Task 1 does not exist."),
    status.HTTP_409_CONFLICT: ("EMAIL_ALREADY_REGISTERED", "The email has already been taken."),
    status.HTTP_422_UNPROCESSABLE_CONTENT: ("VALIDATION_ERROR", "Request validation failed."),
    status.HTTP_500_INTERNAL_SERVER_ERROR: ("INTERNAL_ERROR", "Unexpected server error."),
    status.HTTP_503_SERVICE_UNAVAILABLE: ("AI_PROVIDER_ERROR", AI_PROVIDER_ERROR_MESSAGE),
}


def _status_to_code(status_code: int) -> str:
    return _STATUS_CODES.get(status_code, "UNKNOWN_ERROR")


def _status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Unknown Error"


def _debug_detail(exc: BaseException) -> ErrorDetail | None:
    if not get_settings().debug:
        return None
    trace = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return ErrorDetail(
        exception=f"{type(exc).__module__}.{type(exc).__qualname__}",
        trace=[redact_sensitive_text(line) for line in trace],
    )


def build_error_response(
    status_code: int,
    code: str,
    message: str,
    *,
    issues: list[ValidationIssue] | None = None,
    detail: ErrorDetail | None = None,
) -> JSONResponse:
    safe_message = redact_sensitive_text(message)
    payload = ErrorResponse(
        error=ErrorPayload(
            code=code,
            message=safe_message,
            issues=issues or [],
            detail=detail,
        )
    )
    return JSONResponse(
        status_code=status_code,
        content=payload.model_dump(mode="json", exclude_none=True),
    )


def _extract_validation_issues(exc: RequestValidationError) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = str(error.get("msg", "Invalid value"))
        issues.append(ValidationIssue(field=location, message=message))
    return issues


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiException)
    async def handle_api_exception(_: Request, exc: ApiException) -> JSONResponse:
        return build_error_response(
            exc.status_code,
            exc.code,
            exc.message,
            issues=exc.issues,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        return build_error_response(
            status.HTTP_422_UNPROCESSABLE_CONTENT,
            "VALIDATION_ERROR",
            "Request validation failed.",
            issues=_extract_validation_issues(exc),
        )

    @app.exception_handler(HTTPException)
    async def handle_http_exception(_: Request, exc: HTTPException) -> JSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else _status_phrase(exc.status_code)
        return build_error_response(exc.status_code, _status_to_code(exc.status_code), message)

    @app.exception_handler(LLMProviderError)
    async def handle_provider_error(request: Request, exc: LLMProviderError) -> JSONResponse:
        logger.error(
            "api.provider_error",
            path=request.url.path,
            error=redact_sensitive_text(exc.message),
            **exc.log_fields(),
        )
        return build_error_response(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "AI_PROVIDER_ERROR",
            AI_PROVIDER_ERROR_MESSAGE,
            detail=_debug_detail(exc),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("api.unexpected_error", path=request.url.path)
        return build_error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "Unexpected server error.",
            detail=_debug_detail(exc),
        )


def error_response_docs(*status_codes: int) -> dict[int, dict[str, Any]]:
    responses: dict[int, dict[str, Any]] = {}
    for status_code in status_codes:
        code, message = _DOC_EXAMPLES.get(
            status_code,
            (_status_to_code(status_code), _status_phrase(status_code)),
        )
        responses[status_code] = {
            "model": ErrorResponse,
            "description": _status_phrase(status_code),
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "code": code,
                            "message": message,
                            "issues": [],
                        }
                    }
                }
            },
        }
    return responses
