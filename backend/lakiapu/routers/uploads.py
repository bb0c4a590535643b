"""Stored attachment downloads"""
import os

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from ..utils.deps import StorageDep

router = APIRouter(prefix="/uploads", tags=["Uploads"])


@router.get("/attachments/{filename}", summary="Download attachment")
async def get_attachment(filename: str, storage: StorageDep):
    filepath = storage.attachment_path(filename)
    if filepath is None:
        raise HTTPException(status_code=400, detail="Invalid file name")

    if not os.path.exists(filepath):
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(filepath)
