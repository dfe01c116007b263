"""Network interception API routes for netwatch.

This module implements FastAPI routes for enabling and disabling request
interception, managing interception policies, and reading the audit logs
of a browsing context.

Every route returns the structured command result. Failed commands keep
the same body and pick the HTTP status from the result's ``error_code``.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Request
from fastapi.responses import JSONResponse

from netwatch.api.schemas import (
    DEFAULT_CONTEXT_ID,
    ClearLogsRequest,
    CommandResult,
    DisableInterceptionRequest,
    EnableInterceptionRequest,
    ErrorResponse,
    InstallPolicyRequest,
    LogResult,
    PolicyListResult,
    PolicyResult,
    PriorityResult,
    ResolutionConfigRequest,
    SessionStateResult,
    SessionStatusResult,
)
from netwatch.api.services import InterceptionService

logger = logging.getLogger(__name__)

# Create router with tags for OpenAPI documentation
router = APIRouter(
    prefix="/network",
    tags=["Network Interception"],
    responses={
        400: {"model": CommandResult, "description": "Invalid Policy Parameters"},
        404: {"model": CommandResult, "description": "Policy or Session Not Found"},
        422: {"model": ErrorResponse, "description": "Validation Error"},
        500: {"model": CommandResult, "description": "Internal Server Error"},
        503: {"model": CommandResult, "description": "Browser Driver Unavailable"},
    }
)


# HTTP status for failed command results, keyed by error code
ERROR_STATUS_CODES = {
    "duplicate_id": 409,
    "not_found": 404,
    "session_not_found": 404,
    "invalid_params": 400,
    "driver_unavailable": 503,
}


# Shared interception service instance; sessions live as long as the app
_interception_service_instance = None


def get_interception_service() -> InterceptionService:
    """Dependency to provide the interception service instance.

    Returns:
        The process-wide interception service
    """
    global _interception_service_instance
    if _interception_service_instance is None:
        _interception_service_instance = InterceptionService()
    return _interception_service_instance


def get_existing_service():
    """The service instance if one was created, without creating it."""
    return _interception_service_instance


def reset_interception_service() -> None:
    """Forget the shared service instance (the caller closes it)."""
    global _interception_service_instance
    _interception_service_instance = None


def _to_response(result: CommandResult, http_request: Request, success_status: int = 200) -> JSONResponse:
    """Serialize a command result with the matching HTTP status."""
    request_id = getattr(http_request.state, "request_id", None)

    if result.success:
        status_code = success_status
    else:
        status_code = ERROR_STATUS_CODES.get(result.error_code, 500)
        logger.warning(
            f"{http_request.method} {http_request.url.path} failed: {result.error_code}: {result.error}",
            extra={"request_id": request_id}
        )

    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.post(
    "/enable-interception",
    response_model=SessionStateResult,
    summary="Enable request interception",
    description="""
    Start intercepting every request of a browsing context.

    When `url` is given the context navigates there once interception is
    active. A failed navigation is reported in `navigation_error` and
    interception stays enabled. `priority` sets the cooperative tie-break
    forwarded to the browser driver.
    """
)
async def enable_interception(
    request: EnableInterceptionRequest,
    http_request: Request,
    service: InterceptionService = Depends(get_interception_service)
):
    logger.info(
        f"Enable interception for context {request.context_id}",
        extra={"request_id": getattr(http_request.state, "request_id", None)}
    )
    result = await service.enable_interception(request.context_id, url=request.url, priority=request.priority)
    return _to_response(result, http_request)


@router.post(
    "/disable-interception",
    response_model=SessionStateResult,
    summary="Disable request interception",
    description="Drain in-flight requests, remove all policies and stop intercepting. Audit logs are kept."
)
async def disable_interception(
    http_request: Request,
    request: Optional[DisableInterceptionRequest] = None,
    service: InterceptionService = Depends(get_interception_service)
):
    context_id = request.context_id if request else DEFAULT_CONTEXT_ID
    result = await service.disable_interception(context_id)
    return _to_response(result, http_request)


@router.post(
    "/policies",
    response_model=PolicyResult,
    status_code=201,
    summary="Install interception policy",
    description="""
    Install a policy at the end of the resolution order.

    ## Kinds

    - `block-by-pattern`: `{patterns, is_regex, reason}`
    - `block-by-category`: `{resource_types, reason}`
    - `modify-headers`: `{url_pattern, is_regex, headers}`
    - `mock-response`: `{url_pattern, is_regex, status, headers, body}`
    - `throttle`: `{url_pattern, is_regex, delay_ms}`
    """,
    responses={
        409: {"model": PolicyResult, "description": "Policy id already installed"}
    }
)
async def install_policy(
    request: InstallPolicyRequest,
    http_request: Request,
    service: InterceptionService = Depends(get_interception_service)
):
    result = await service.install_policy(
        request.context_id,
        kind=request.kind,
        params=request.params,
        policy_id=request.policy_id,
        priority=request.priority,
    )
    return _to_response(result, http_request, success_status=201)


@router.get(
    "/policies",
    response_model=PolicyListResult,
    summary="List interception policies",
    description="Installed policies in resolution order."
)
async def list_policies(
    http_request: Request,
    context_id: str = Query(DEFAULT_CONTEXT_ID, min_length=1, max_length=100, description="Browsing context id"),
    service: InterceptionService = Depends(get_interception_service)
):
    result = await service.list_policies(context_id)
    return _to_response(result, http_request)


@router.delete(
    "/policies/{policy_id}",
    response_model=PolicyResult,
    summary="Remove interception policy",
    description="Remove a policy. Requests already being resolved keep the policies they started with."
)
async def remove_policy(
    http_request: Request,
    policy_id: str = Path(..., min_length=1, description="Policy id"),
    context_id: str = Query(DEFAULT_CONTEXT_ID, min_length=1, max_length=100, description="Browsing context id"),
    service: InterceptionService = Depends(get_interception_service)
):
    result = await service.remove_policy(context_id, policy_id)
    return _to_response(result, http_request)


@router.post(
    "/resolution-config",
    response_model=PriorityResult,
    summary="Set intercept resolution priority",
    description="Set the tie-break forwarded to the driver when the deciding policy has no priority of its own."
)
async def set_resolution_config(
    request: ResolutionConfigRequest,
    http_request: Request,
    service: InterceptionService = Depends(get_interception_service)
):
    result = await service.set_resolution_priority(request.context_id, request.priority)
    return _to_response(result, http_request)


@router.get("/request-log", response_model=LogResult, summary="Get request log")
async def get_request_log(
    http_request: Request,
    context_id: str = Query(DEFAULT_CONTEXT_ID, min_length=1, max_length=100, description="Browsing context id"),
    service: InterceptionService = Depends(get_interception_service)
):
    return _to_response(await service.get_request_log(context_id), http_request)


@router.get("/response-log", response_model=LogResult, summary="Get response log")
async def get_response_log(
    http_request: Request,
    context_id: str = Query(DEFAULT_CONTEXT_ID, min_length=1, max_length=100, description="Browsing context id"),
    service: InterceptionService = Depends(get_interception_service)
):
    return _to_response(await service.get_response_log(context_id), http_request)


@router.get("/blocked-requests", response_model=LogResult, summary="Get aborted requests")
async def get_blocked_requests(
    http_request: Request,
    context_id: str = Query(DEFAULT_CONTEXT_ID, min_length=1, max_length=100, description="Browsing context id"),
    service: InterceptionService = Depends(get_interception_service)
):
    return _to_response(await service.get_aborted_log(context_id), http_request)


@router.get("/modified-requests", response_model=LogResult, summary="Get modified requests")
async def get_modified_requests(
    http_request: Request,
    context_id: str = Query(DEFAULT_CONTEXT_ID, min_length=1, max_length=100, description="Browsing context id"),
    service: InterceptionService = Depends(get_interception_service)
):
    return _to_response(await service.get_modified_log(context_id), http_request)


@router.get(
    "/failures",
    response_model=LogResult,
    summary="Get failure log",
    description="Policy errors, resolution timeouts, driver errors and forced resolutions."
)
async def get_failures(
    http_request: Request,
    context_id: str = Query(DEFAULT_CONTEXT_ID, min_length=1, max_length=100, description="Browsing context id"),
    service: InterceptionService = Depends(get_interception_service)
):
    return _to_response(await service.get_failure_log(context_id), http_request)


@router.post("/clear-logs", response_model=CommandResult, summary="Clear audit logs")
async def clear_logs(
    http_request: Request,
    request: Optional[ClearLogsRequest] = None,
    service: InterceptionService = Depends(get_interception_service)
):
    context_id = request.context_id if request else DEFAULT_CONTEXT_ID
    return _to_response(await service.clear_logs(context_id), http_request)


@router.get(
    "/status",
    response_model=SessionStatusResult,
    summary="Get interception session status",
    description="State, tie-break, policy count, log counts and in-flight requests for a context."
)
async def get_status(
    http_request: Request,
    context_id: str = Query(DEFAULT_CONTEXT_ID, min_length=1, max_length=100, description="Browsing context id"),
    service: InterceptionService = Depends(get_interception_service)
):
    return _to_response(await service.get_session_status(context_id), http_request)
