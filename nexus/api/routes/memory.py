from __future__ import annotations

from fastapi import APIRouter

from nexus.config import settings
from nexus.models.schemas import MemoryCreate, MemoryResponse
from nexus.services import supabase as db

router = APIRouter(prefix="/api/memory", tags=["memory"])


@router.get("", response_model=MemoryResponse)
async def list_memory(user_id: str = settings.default_user_id):
    return MemoryResponse(data=await db.load_memory(user_id))


@router.post("")
async def create_memory(item: MemoryCreate):
    row = await db.save_memory(item.query, item.answer, item.provider, item.model, item.user_id)
    return {"data": row}


@router.delete("")
async def clear_memory(user_id: str = settings.default_user_id):
    await db.clear_memory(user_id)
    return {"success": True}
