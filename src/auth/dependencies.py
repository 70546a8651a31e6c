import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt

from src.chat.models import ChatSession
from src.chat.persistence import SqlMessageRepository, owned_by
from src.config import settings
from src.core.dependencies import get_message_repository

logger = logging.getLogger(__name__)

# Fixed identity used when running locally in development mode
DEV_USER_ID = "00000000-0000-4000-8000-000000000001"


def decode_user_id(token: Optional[str]) -> Optional[str]:
    """User id (``sub``) of a valid token, else None. Invalid tokens mean anonymous."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"Ignoring invalid auth token: {e}")
        return None
    subject = payload.get("sub")
    return str(subject) if subject else None


async def get_optional_user_id(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if settings.is_development:
        return DEV_USER_ID
    if authorization and authorization.lower().startswith("bearer "):
        return decode_user_id(authorization[7:].strip())
    return None


async def get_owned_session(
    session_id: UUID,
    user_id: Optional[str] = Depends(get_optional_user_id),
    repository: SqlMessageRepository = Depends(get_message_repository),
) -> ChatSession:
    """The chat session named in the path, if the caller owns it; 404 otherwise."""
    session = await repository.get_session(str(session_id))
    if session is None or not user_id or not owned_by(session, user_id):
        raise HTTPException(status_code=404, detail="Chat session not found")
    return session
