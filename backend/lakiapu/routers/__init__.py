"""API routes"""

from fastapi import APIRouter

from . import documents, legal, sessions, uploads

api_router = APIRouter()

api_router.include_router(sessions.router)
api_router.include_router(legal.router)
api_router.include_router(documents.router)
api_router.include_router(uploads.router)
