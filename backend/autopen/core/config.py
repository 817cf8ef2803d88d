from pydantic_settings import BaseSettings
from pydantic import AnyUrl
from functools import lru_cache


class Settings(BaseSettings):
    # core
    ENV: str = "dev"
    API_PREFIX: str = "/api"

    # hosted backend (Supabase REST + auth)
    SUPABASE_URL: AnyUrl
    SUPABASE_ANON_KEY: str
    BACKEND_TIMEOUT_SECONDS: float = 8.0
    CONNECTIVITY_CHECK_TIMEOUT_SECONDS: float = 2.0
    # A successful ping is trusted for this long before re-checking
    CONNECTIVITY_MEMO_SECONDS: int = 30

    # cache; without a REDIS_URL the process-local store is used
    REDIS_URL: str | None = None
    CACHE_TTL_SECONDS: int = 300

    # background refresh
    BACKGROUND_REFRESH_SECONDS: int = 60
    BACKGROUND_REFRESH_DEBOUNCE_SECONDS: int = 30
    REFRESH_ERROR_THRESHOLD: int = 3
    REFRESH_ERROR_WINDOW_SECONDS: int = 300

    # llm (brain dump titles)
    OPENROUTER_API_KEY: str | None = None
    OPENAI_API_KEY: str | None = None
    LLM_MODEL: str = "openai/gpt-4o-mini"
    LLM_MAX_CONCURRENCY: int = 4

    # web
    FRONTEND_ORIGIN: str | None = None
    # Explicit debug-only switch for wide-open CORS in non-prod envs
    CORS_ALLOW_ALL_ORIGINS: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
