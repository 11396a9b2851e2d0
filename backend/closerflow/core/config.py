from decimal import Decimal
from typing import List, Optional
import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    env: str = "dev"
    log_level: str = "INFO"
    secret_key: str = "change_me_super_secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    refresh_token_expire_minutes: int = 60 * 24 * 30
    database_url: str = "postgresql+psycopg2://closerflow:closerflow@db:5432/closerflow"
    backend_cors_origins: str = "http://localhost:5173"
    min_password_length: int = 6

    # Absolute threshold (currency units) within which a closing is "ok"
    tolerance_limit: Decimal = Decimal("10.00")
    profile_cache_ttl_seconds: int = 5 * 60

    # OpenAI-compatible chat completions endpoint used by /analysis/chat
    analysis_api_url: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    analysis_api_key: Optional[str] = None
    analysis_model: str = "google/gemini-2.5-flash"
    analysis_timeout_seconds: float = 30.0

    port: int = int(os.getenv("PORT", "8000"))

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        origins = self.backend_cors_origins
        return [origin.strip() for origin in origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
