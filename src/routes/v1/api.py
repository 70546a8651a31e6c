from fastapi import APIRouter

from src.artifacts.router import router as artifacts_router
from src.chat.router import router as chat_router
from src.patents.router import router as patents_router

api_router = APIRouter()

api_router.include_router(chat_router)
api_router.include_router(patents_router)
api_router.include_router(artifacts_router)
