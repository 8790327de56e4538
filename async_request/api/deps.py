"""
Dependencies for host access, request context and capability checks.
"""
from typing import AsyncGenerator
from fastapi import Depends, HTTPException, status, Request
from async_request.config import SESSION_SETTINGS
from async_request.dispatcher import AsyncDispatcher
from async_request.host import FastAPIHost, RequestContext
from async_request.utils import get_logger

logger = get_logger(__name__)


def get_host(request: Request) -> FastAPIHost:
    """The host platform instance the app was built with."""
    return request.app.state.host


def get_dispatcher(job_name: str):
    """
    Factory for a dependency returning the dispatcher registered for ``job_name``.

    Raises:
        HTTPException: 503 if no dispatcher is registered under that name
    """
    def dispatcher_dependency(request: Request) -> AsyncDispatcher:
        dispatchers = getattr(request.app.state, "dispatchers", {})
        dispatcher = dispatchers.get(job_name)
        if dispatcher is None:
            logger.error("Dispatcher not configured", job_name=job_name)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Background job '{job_name}' not available"
            )
        return dispatcher

    return dispatcher_dependency


async def get_request_context(
    request: Request,
    host: FastAPIHost = Depends(get_host)
) -> AsyncGenerator[RequestContext, None]:
    """
    Request context for user-facing endpoints.

    Holds the caller's session lock for the duration of the request, the same
    way the host's own endpoints do.

    Yields:
        RequestContext: cookies, session handle and role of the caller
    """
    session_id = request.cookies.get(SESSION_SETTINGS["cookie_name"])
    session = host.sessions.get(session_id)
    handle = await host.sessions.acquire(session_id)
    try:
        yield RequestContext(
            query=dict(request.query_params),
            payload=None,
            cookies=dict(request.cookies),
            session=handle,
            role=session.role if session else None,
            request_id=getattr(request.state, "request_id", None),
        )
    finally:
        handle.release()


def require_capability(capability: str):
    """
    Factory function to create a dependency that requires a capability.

    Args:
        capability: Capability the caller's role must grant

    Returns:
        Dependency function returning the request context
    """
    def capability_dependency(
        ctx: RequestContext = Depends(get_request_context),
        host: FastAPIHost = Depends(get_host)
    ) -> RequestContext:
        if ctx.role is None:
            logger.warning("Access denied: no session", capability=capability, request_id=ctx.request_id)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Login required"
            )
        if not host.current_user_can(capability, ctx):
            logger.warning(
                "Access denied: missing capability",
                capability=capability,
                user_role=ctx.role,
                request_id=ctx.request_id
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required capability: {capability}"
            )
        return ctx

    return capability_dependency
