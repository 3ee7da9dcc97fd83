from __future__ import annotations

from nexus.llm_client import is_configured
from nexus.models.providers import PROVIDERS


def get_available_providers() -> list[dict]:
    """Provider catalog for the selection surface, flagged by API key availability."""
    return [
        {
            "id": provider_id,
            "name": entry["name"],
            "color": entry["color"],
            "configured": is_configured(provider_id),
            "models": entry["models"],
        }
        for provider_id, entry in PROVIDERS.items()
    ]
