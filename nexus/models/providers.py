from __future__ import annotations

PROVIDERS: dict[str, dict] = {
    "anthropic": {
        "name": "Anthropic",
        "color": "#e07b39",
        "models": [
            {"value": "claude-opus-4-5", "label": "Claude Opus 4.5"},
            {"value": "claude-sonnet-4-5", "label": "Claude Sonnet 4.5"},
            {"value": "claude-haiku-4-5", "label": "Claude Haiku 4.5"},
        ],
    },
    "openai": {
        "name": "OpenAI",
        "color": "#74aa9c",
        "models": [
            {"value": "gpt-4o", "label": "GPT-4o"},
            {"value": "gpt-4o-mini", "label": "GPT-4o Mini"},
            {"value": "gpt-4-turbo", "label": "GPT-4 Turbo"},
            {"value": "o1-preview", "label": "o1 Preview"},
        ],
    },
    "gemini": {
        "name": "Google Gemini",
        "color": "#4285f4",
        "models": [
            {"value": "gemini-2.0-flash-exp", "label": "Gemini 2.0 Flash"},
            {"value": "gemini-1.5-pro", "label": "Gemini 1.5 Pro"},
            {"value": "gemini-1.5-flash", "label": "Gemini 1.5 Flash"},
        ],
    },
    "nvidia": {
        "name": "NVIDIA NIM",
        "color": "#76b900",
        "models": [
            {"value": "meta/llama-3.1-405b-instruct", "label": "Llama 3.1 405B"},
            {"value": "meta/llama-3.1-70b-instruct", "label": "Llama 3.1 70B"},
            {"value": "mistralai/mixtral-8x22b-instruct-v0.1", "label": "Mixtral 8x22B"},
        ],
    },
}


def provider_name(provider: str) -> str:
    entry = PROVIDERS.get(provider)
    return entry["name"] if entry else provider


def default_model_for(provider: str) -> str:
    """First listed model of a provider, or "" for unknown providers."""
    entry = PROVIDERS.get(provider)
    if not entry or not entry["models"]:
        return ""
    return entry["models"][0]["value"]
