from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CLIENT_EMAIL: Optional[str] = None
    FIREBASE_PRIVATE_KEY: Optional[str] = None
    FIREBASE_CREDENTIALS_FILE: Optional[str] = None
    FIREBASE_STORAGE_BUCKET: Optional[str] = None

    ALLOWED_ORIGINS: str = "*"

    SESSION_COOKIE_NAME: str = "sutra_session"
    SESSION_MAX_AGE_DAYS: int = 5
    SESSION_COOKIE_SECURE: bool = False
    ALLOW_CLOCK_SKEW_FALLBACK: bool = False

    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None
    AUDIT_TO_FIRESTORE: bool = False

    UPLOAD_MAX_BYTES: int = 5 * 1024 * 1024 * 1024
    POST_MEDIA_MAX_BYTES: int = 100 * 1024 * 1024
    UPLOAD_URL_BASE_SECONDS: int = 900
    UPLOAD_URL_SECONDS_PER_MB: int = 2
    UPLOAD_URL_MAX_SECONDS: int = 7 * 24 * 60 * 60
    DOWNLOAD_URL_SECONDS: int = 3600

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def allowed_origins(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
