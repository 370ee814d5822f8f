from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    # App Info
    app_name: str = "Stock Ledger API"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./stockledger.db"  # sqlite or postgresql; other backends are rejected
    db_busy_timeout: float = 30.0  # seconds a SQLite writer waits for the lock

    # CORS
    allowed_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Ledger
    adjust_max_attempts: int = 3  # compare-and-set retries for manual adjustments

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"
        case_sensitive = False

settings = Settings()
