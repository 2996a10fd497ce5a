from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_KEY: str = ""

    # Cache
    REDIS_URL: Optional[str] = None

    # App
    ENVIRONMENT: str = "development"
    PORT: int = 8000
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    # Importação
    IMPORT_SESSION_TTL: int = 3600
    DIAS_AVISO_VENCIMENTO: int = 30
    BATCH_SIZE: int = 100
    MAX_UPLOAD_MB: int = 20
    UPLOAD_RATE_LIMIT: str = "20/minute"
    USUARIO_PADRAO: str = "Sistema"

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:8000",
        "http://127.0.0.1:8000",
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
