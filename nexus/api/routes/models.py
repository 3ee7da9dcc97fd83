from __future__ import annotations

from fastapi import APIRouter

from nexus.api.deps import get_available_providers
from nexus.models.schemas import ProviderInfo, ProvidersResponse

router = APIRouter(prefix="/api/models", tags=["models"])


@router.get("", response_model=ProvidersResponse)
async def list_models():
    """List generation providers and their models."""
    return ProvidersResponse(providers=[ProviderInfo(**p) for p in get_available_providers()])
