from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

# Load .env from repo root for local development.
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=ENV_PATH)

class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True)
    api_base_url: str = Field(default="http://localhost:8000/api", alias="DRIFTWATCH_API_BASE_URL")
    api_token: str | None = Field(default=None, alias="DRIFTWATCH_API_TOKEN")
    http_timeout_seconds: float = Field(default=10.0, alias="HTTP_TIMEOUT_SECONDS")
    alert_cache_ttl_seconds: float = Field(default=300.0, alias="ALERT_CACHE_TTL_SECONDS")
    drift_cache_ttl_seconds: float = Field(default=300.0, alias="DRIFT_CACHE_TTL_SECONDS")
    drift_threshold_percent: float = Field(default=5.0, alias="DRIFT_THRESHOLD_PERCENT")
    drift_mode: str = Field(default="absolute", alias="DRIFT_MODE")
    prefetch_categories: int = Field(default=1, alias="PREFETCH_CATEGORIES")

settings = Settings()
