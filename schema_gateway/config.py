from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    # App
    APP_NAME: str = "Schema Gateway"
    DEBUG: bool = False
    API_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # Services
    SERVICES_CONFIG_PATH: str | None = None

    # Proxy
    # "protocol" dispatches per declared protocol, "invoke" uses the
    # deprecated /internal/invoke endpoint.
    DISPATCH_MODE: str = "protocol"
    PROXY_TIMEOUT_SECONDS: float | None = 30.0
    SCHEMA_FETCH_TIMEOUT_SECONDS: float = 10.0

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

@lru_cache()
def get_settings() -> Settings:
    return Settings()
