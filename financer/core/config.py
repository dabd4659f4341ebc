from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    APP_NAME: str = "Financer"
    ENV: str = "dev"

    # Default SQLite file DB next to the package so the CWD does not matter
    _default_db_path = Path(__file__).resolve().parents[2] / "financer.sqlite3"
    DATABASE_URL: str = f"sqlite:///{_default_db_path}"

    CORS_ORIGINS: list[str] = ["*"]
    # "today" for completion entries and completed_at stamps follow this zone
    TIMEZONE: str = "Europe/Berlin"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="FINANCER_", case_sensitive=False)


settings = Settings()
