"""
Session endpoints: exchange an API key for a session cookie.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Request, Response
from async_request.api.deps import get_host
from async_request.config import API_KEYS, CAPABILITIES, SESSION_SETTINGS
from async_request.host import FastAPIHost
from async_request.models.schemas.base import ResponseBase
from async_request.models.schemas.sessions import SessionRead
from async_request.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/",
    response_model=ResponseBase,
    status_code=status.HTTP_201_CREATED,
    summary="Log in with an API key"
)
async def create_session(
    request: Request,
    response: Response,
    host: FastAPIHost = Depends(get_host)
) -> ResponseBase:
    """Validate ``Authorization: Bearer <api key>`` and set the session cookie."""
    auth_header = request.headers.get("Authorization", "")
    api_key = auth_header[7:] if auth_header.startswith("Bearer ") else ""
    role = API_KEYS.get(api_key) if api_key else None

    if role is None:
        logger.warning(
            "Authentication failed: invalid API key",
            api_key_prefix=api_key[:6] + "..." if len(api_key) > 6 else None
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "Bearer"},
        )

    session = host.sessions.create(role)
    response.set_cookie(
        SESSION_SETTINGS["cookie_name"],
        session.id,
        httponly=True,
        samesite="lax",
    )
    logger.info("User authenticated", user_role=role)

    return ResponseBase(
        message="Session created",
        data=SessionRead(role=role, capabilities=sorted(CAPABILITIES.get(role, set()))).model_dump()
    )


@router.delete(
    "/",
    response_model=ResponseBase,
    summary="Log out"
)
async def delete_session(
    request: Request,
    response: Response,
    host: FastAPIHost = Depends(get_host)
) -> ResponseBase:
    cookie_name = SESSION_SETTINGS["cookie_name"]
    session_id = request.cookies.get(cookie_name)
    removed = host.sessions.delete(session_id) if session_id else False
    response.delete_cookie(cookie_name)
    return ResponseBase(message="Session closed" if removed else "No active session")
