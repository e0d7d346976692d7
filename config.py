import logging
import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Database settings
    database_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")
    database_timeout: float = float(os.getenv("LIBRARY_DB_TIMEOUT", "10"))  # seconds to wait on a locked db
    seed_sample_data: bool = os.getenv("LIBRARY_SEED_SAMPLE_DATA", "True").lower() in ("true", "1", "yes")

    # Lending settings
    default_due_days: int = int(os.getenv("DEFAULT_DUE_DAYS", "30"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Lending")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for the API and CLI entry points."""
    level_name = (level or ("DEBUG" if settings.debug else settings.log_level)).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
