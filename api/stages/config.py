from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Config de base ---
    APP_ENV: str = "local"                   # local / test / staging / production
    DATABASE_URL: str = "postgresql://app:dev@db:5432/stages"
    UPLOAD_DIR: str = "/data/documents"
    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    SESSION_EXPIRE_MINUTES: int = 60 * 24 * 7
    COOKIE_SECURE: bool = False              # True en prod HTTPS
    CORS_ORIGINS: str = "http://localhost:3000"
    MAX_UPLOAD_MB: int = 10
    LOG_LEVEL: str = "INFO"

    # --- Valeurs par défaut des affectations de stage ---
    DEFAULT_COMPANY_NAME: str = "Bridge Technologies Solutions"
    DEFAULT_POSITION: str = "Stagiaire"
    DEFAULT_INTERNSHIP_DAYS: int = 6 * 30

    # --- Amorçage du premier administrateur (local / test uniquement) ---
    BOOTSTRAP_ADMIN_ENABLED: bool = False
    BOOTSTRAP_ADMIN_EMAIL: Optional[str] = None
    BOOTSTRAP_ADMIN_PASSWORD: Optional[str] = None
    BOOTSTRAP_ADMIN_NAME: str = "Administrateur"


settings = Settings()
