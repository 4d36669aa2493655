"""FastAPI exception handlers for RFC 7807 responses.

Registers handlers that convert all exceptions to Problem Details format.
Generates request_id for every error for log correlation.
"""

import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from chat_gateway.errors.exceptions import (
    PROBLEM_BASE,
    GatewayError,
    ModelUnavailableError,
    ProviderError,
)
from chat_gateway.errors.problem_details import (
    ProblemDetail,
    TimeoutHTTPException,
    TimeoutProblem,
)

PROBLEM_TYPES = {
    400: f"{PROBLEM_BASE}/bad-request",
    401: f"{PROBLEM_BASE}/unauthorized",
    403: f"{PROBLEM_BASE}/forbidden",
    404: f"{PROBLEM_BASE}/not-found",
    422: f"{PROBLEM_BASE}/validation-error",
    429: f"{PROBLEM_BASE}/rate-limited",
    500: f"{PROBLEM_BASE}/internal-error",
    503: f"{PROBLEM_BASE}/service-unavailable",
}

PROBLEM_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    422: "Validation Error",
    429: "Too Many Requests",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def generate_request_id() -> str:
    """Generate unique request ID for log correlation."""
    return f"req_{uuid.uuid4().hex[:12]}"


def _problem_response(problem: ProblemDetail) -> JSONResponse:
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        headers={"X-Request-ID": problem.request_id},
    )


async def http_exception_handler(
    request: Request,
    exc: HTTPException,
) -> JSONResponse:
    """Handle HTTPException with Problem Details response."""
    request_id = generate_request_id()

    logger.warning(f"HTTP {exc.status_code} error on {request.url.path}: {exc.detail} [{request_id}]")

    return _problem_response(
        ProblemDetail(
            type=PROBLEM_TYPES.get(exc.status_code, "about:blank"),
            title=PROBLEM_TITLES.get(exc.status_code, "Error"),
            status=exc.status_code,
            detail=str(exc.detail) if exc.detail else None,
            instance=str(request.url.path),
            request_id=request_id,
        )
    )


async def gateway_exception_handler(
    request: Request,
    exc: GatewayError,
) -> JSONResponse:
    """Handle gateway taxonomy errors.

    Messages are written to be safe for callers, so they are passed through
    as the problem detail.
    """
    request_id = generate_request_id()

    logger.warning(
        f"{type(exc).__name__} on {request.url.path}: {exc.message} [{request_id}]"
    )

    problem = ProblemDetail(
        type=exc.problem_type,
        title=exc.title,
        status=exc.status_code,
        detail=exc.message,
        instance=str(request.url.path),
        request_id=request_id,
    )
    if isinstance(exc, ModelUnavailableError):
        problem.model = exc.model
        problem.attempted_models = exc.attempted
    elif isinstance(exc, ProviderError):
        problem.upstream_status = exc.upstream_status

    return _problem_response(problem)


async def timeout_exception_handler(
    request: Request,
    exc: TimeoutHTTPException,
) -> JSONResponse:
    """Handle TimeoutHTTPException with specialized Problem Details."""
    request_id = generate_request_id()

    logger.warning(f"Request timeout after {exc.timeout_seconds}s: {request.url.path} [{request_id}]")

    return _problem_response(
        TimeoutProblem(
            detail=exc.detail,
            instance=str(request.url.path),
            request_id=request_id,
            timeout_seconds=exc.timeout_seconds,
        )
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle Pydantic validation errors with Problem Details."""
    request_id = generate_request_id()

    errors: list[dict[str, Any]] = []
    for error in exc.errors():
        errors.append(
            {
                "field": ".".join(str(loc) for loc in error.get("loc", [])),
                "message": error.get("msg", "Validation error"),
                "type": error.get("type", "unknown"),
            }
        )

    logger.warning(f"Validation error on {request.url.path}: {len(errors)} errors [{request_id}]")

    return _problem_response(
        ProblemDetail(
            type=f"{PROBLEM_BASE}/validation-error",
            title="Validation Error",
            status=422,
            detail=f"Request validation failed with {len(errors)} error(s)",
            instance=str(request.url.path),
            request_id=request_id,
            errors=errors,
        )
    )


async def generic_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unexpected exceptions without exposing internals."""
    request_id = generate_request_id()

    # Log full exception for debugging, but don't expose to client
    logger.exception(f"Unhandled exception: {type(exc).__name__} [{request_id}]")

    return _problem_response(
        ProblemDetail(
            type=f"{PROBLEM_BASE}/internal-error",
            title="Internal Server Error",
            status=500,
            detail="An unexpected error occurred. Please try again later.",
            instance=str(request.url.path),
            request_id=request_id,
        )
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app.

    Call this after creating the FastAPI app but before adding routes.
    """
    # Type ignores needed because FastAPI's type stubs expect generic Exception handlers
    # but specific exception types work correctly at runtime
    app.add_exception_handler(
        TimeoutHTTPException, timeout_exception_handler  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        HTTPException, http_exception_handler  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        RequestValidationError, validation_exception_handler  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        GatewayError, gateway_exception_handler  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, generic_exception_handler)
    logger.info("RFC 7807 error handlers registered")
