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
    database_timeout: float = float(os.getenv("DATABASE_TIMEOUT", "5.0"))  # seconds to wait on a locked db

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Lending API")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Pagination settings
    max_page_size: int = int(os.getenv("MAX_PAGE_SIZE", "100"))


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Set up root logging once for the API server and the CLI."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
