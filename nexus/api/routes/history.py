from __future__ import annotations

from uuid import uuid4

from fastapi import APIRouter

from nexus.config import settings
from nexus.models.schemas import HistoryCreate, HistoryResponse, ResearchResult
from nexus.services import supabase as db

router = APIRouter(prefix="/api/history", tags=["history"])


@router.get("", response_model=HistoryResponse)
async def list_history(user_id: str = settings.default_user_id):
    """Past research results, most recent first."""
    return HistoryResponse(data=await db.load_results(user_id))


@router.post("")
async def create_history(item: HistoryCreate):
    result = ResearchResult(id=str(uuid4()), **item.model_dump(exclude={"user_id"}))
    row = await db.save_result(result, item.user_id)
    return {"data": row}
