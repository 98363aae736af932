import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Load .env from current directory so AI_PROVIDER and API keys are set automatically.
load_dotenv()


class Settings(BaseModel):
    """Runtime configuration loaded from environment variables."""

    provider_name: str
    openrouter_api_key: Optional[str]
    openrouter_model: str
    vision_model: str
    auth_token: Optional[str]
    supabase_url: Optional[str]
    supabase_anon_key: Optional[str]
    supabase_jwt_secret: Optional[str]
    db_path: str = "./data/onyxgpt.db"
    cors_origins: str = "*"

    service_name: str = "onyxgpt"
    http_port: int = 4280


@lru_cache(maxsize=1)
def _base_settings() -> Settings:
    """
    Base settings lookup.

    NOTE: We intentionally *do not* cache environment values that may change
    between tests – `get_settings` below re-creates Settings each time from
    the current environment. This helper only stores defaults.
    """

    return Settings(
        provider_name="stub",
        openrouter_api_key=None,
        openrouter_model="openai/gpt-4o-mini",
        vision_model="gpt-5-nano",
        auth_token=None,
        supabase_url=None,
        supabase_anon_key=None,
        supabase_jwt_secret=None,
        db_path="./data/onyxgpt.db",
        cors_origins="*",
    )


def get_settings() -> Settings:
    """
    Return Settings built from the *current* environment.

    Tests mutate os.environ at runtime via the `env_vars` helper, so we must
    read directly from the environment on each call instead of caching.
    """

    base = _base_settings()
    provider_name = (os.getenv("AI_PROVIDER") or base.provider_name).strip().lower()
    supabase_url = os.getenv("SUPABASE_URL") or None
    if supabase_url:
        supabase_url = supabase_url.rstrip("/")

    return Settings(
        provider_name=provider_name,
        openrouter_api_key=os.getenv("OPENROUTER_API_KEY") or None,
        openrouter_model=os.getenv("OPENROUTER_MODEL") or base.openrouter_model,
        vision_model=os.getenv("VISION_MODEL") or base.vision_model,
        auth_token=os.getenv("AUTH_TOKEN") or None,
        supabase_url=supabase_url,
        supabase_anon_key=os.getenv("SUPABASE_ANON_KEY") or None,
        supabase_jwt_secret=os.getenv("SUPABASE_JWT_SECRET") or None,
        db_path=os.getenv("DB_PATH") or base.db_path,
        cors_origins=os.getenv("CORS_ORIGINS") or base.cors_origins,
        service_name=base.service_name,
        http_port=base.http_port,
    )
