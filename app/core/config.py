from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    app_name: str = "lowcode-backend-platform"
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    log_level: str = "INFO"

    database_url: str = "sqlite:///./platform.db"
    redis_url: str = "redis://localhost:6379/0"
    auto_migrate: bool = False

    backends_root: str = "./user-backends"
    shared_utils_dir: str | None = None

    # Uniqueness is declared on fields but only enforced at the storage layer when set.
    enforce_unique_fields: bool = False
    generation_mode: Literal["inprocess", "subprocess"] = "inprocess"
    generation_timeout: float = 10.0

settings = Settings()
