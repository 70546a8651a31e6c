import logging
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from src.auth.dependencies import get_owned_session
from src.chat.models import ChatSession
from src.config import settings
from src.core.dependencies import get_patent_store
from src.patents.schemas import CachedPatentResponse, SectionName
from src.patents.service import read_cached_patent
from src.patents.store import PatentDocumentStore
from src.shared.models import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["patents"])


@router.get(
    "/sessions/{session_id}/patents/{patent_index}",
    response_model=CachedPatentResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def get_cached_patent(
    patent_index: int,
    sections: Optional[List[SectionName]] = Query(None),
    session: ChatSession = Depends(get_owned_session),
    store: PatentDocumentStore = Depends(get_patent_store),
):
    return await read_cached_patent(store, str(session.id), patent_index, sections)


@router.post("/cron/cleanup-patents")
async def cleanup_patents(
    authorization: Optional[str] = Header(None),
    store: PatentDocumentStore = Depends(get_patent_store),
):
    if not settings.CRON_SECRET:
        logger.error("CRON_SECRET is not configured")
        raise HTTPException(status_code=500, detail="Cron secret not configured")
    if authorization != f"Bearer {settings.CRON_SECRET}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    started = time.monotonic()
    deleted = await store.sweep_expired()
    return {
        "success": True,
        "deletedCount": deleted,
        "timestamp": utcnow().isoformat() + "Z",
        "durationMs": int((time.monotonic() - started) * 1000),
    }
