from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # number of cluster creation attempts
    CREATE_ATTEMPTS: int = 3
    # timeout per attempt
    CREATE_ATTEMPT_TIMEOUT_SECONDS: float = 60 * 40
    CREATE_RETRY_DELAY_SECONDS: float = 10

    PROBE_INTERVAL_SECONDS: float = 5.0
    PROBE_CONNECT_TIMEOUT_SECONDS: float = 3.0
    PROBE_REQUEST_TIMEOUT_SECONDS: float = 10.0
    DNS_DOMAIN: str = "opstrace.io"

    DOCKER_HUB_API_URL: str = "https://hub.docker.com/v2/repositories"

    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None
    INSTALLER_LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
