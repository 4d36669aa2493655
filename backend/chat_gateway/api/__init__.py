"""HTTP API router."""

from fastapi import APIRouter

from chat_gateway.api.chat import router as chat_router

api_router = APIRouter()
api_router.include_router(chat_router)

__all__ = ["api_router"]
