from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Generation providers (a provider is usable once its key is set)
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    nvidia_api_key: str = ""
    nvidia_base_url: str = "https://integrate.api.nvidia.com/v1"
    llm_request_timeout: float = 600.0

    # Research defaults
    default_provider: str = "anthropic"
    default_model: str = "claude-sonnet-4-5"
    default_depth: str = "standard"  # quick | standard | deep | exhaustive
    default_max_tokens: int = 4096
    default_temperature: float = 0.3

    # Supabase persistence
    supabase_url: str = ""
    supabase_anon_key: str = ""
    history_table: str = "research_history"
    memory_table: str = "memory_contexts"
    default_user_id: str = "anonymous"
    history_limit: int = 50

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"
    log_to_file: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
