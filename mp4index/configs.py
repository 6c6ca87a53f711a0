from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    api_password: str | None = None  # The password for protecting the API endpoints.
    log_level: str = "INFO"  # The logging level to use.
    http_timeout: int = Field(30, description="Timeout for HTTP byte-range requests in seconds")
    http_retries: int = Field(3, description="Attempts per HTTP byte-range request before giving up")
    verify_ssl: bool = True  # Whether to verify TLS certificates of remote sources.
    max_samples_per_response: int = 100_000  # Upper bound on samples returned per track by the index API.

    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/136.0.0.0 Safari/537.36"  # The user agent to use for HTTP requests.
    )

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
