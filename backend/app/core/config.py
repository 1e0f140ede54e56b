import sys

from pydantic_settings import BaseSettings

_ENV_FILE = None if "pytest" in sys.modules else ".env"


class Settings(BaseSettings):
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    COSMOS_DB_ENDPOINT: str = ""
    COSMOS_DB_KEY: str = ""
    COSMOS_DB_DATABASE: str = "business-admin"
    COSMOS_DB_EMPLOYEES_CONTAINER: str = "employees"

    # Used when the store is not configured; seeds an in-memory source
    DEMO_MODE: bool = True

    # Sub-collections fetched independently from the primary employee document
    SUBCOLLECTIONS: list[str] = ["advances", "transactions"]

    PRIMARY_FETCH_TIMEOUT_MS: int = 8000
    SUBCOLLECTION_FETCH_TIMEOUT_MS: int = 5000
    BATCH_TIMEOUT_MS: int = 12000
    SAVE_TIMEOUT_MS: int = 10000

    SESSION_IDLE_TTL_S: int = 1800
    MAX_DETAIL_SESSIONS: int = 500

    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    model_config = {
        "env_file": _ENV_FILE,
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


settings = Settings()
