"""Application configuration using pydantic-settings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MASTER_URL = "https://fhir.github.io/ig-registry/tx-servers.json"

# Find .env file: check backend dir first, then project root
_BACKEND_DIR = Path(__file__).parent.parent
_PROJECT_ROOT = _BACKEND_DIR.parent
_ENV_FILE = _BACKEND_DIR / ".env" if (_BACKEND_DIR / ".env").exists() else _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    API keys are given as a JSON object mapping a server code (or name)
    to its key, e.g. ``API_KEYS='{"tx.example": "secret"}'``.
    """

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Federation source
    master_url: str = DEFAULT_MASTER_URL

    # HTTP fetches
    fetch_timeout: float = Field(default=30.0, gt=0)
    user_agent: str = "FHIRRegistryServer/1.0"
    api_keys: dict[str, str] = Field(default_factory=dict)

    # Scheduling (0 disables periodic crawling)
    crawl_interval_minutes: float = Field(default=0, ge=0)
    warmup_seconds: float = Field(default=5.0, ge=0)

    # Persistence
    data_dir: Path = _PROJECT_ROOT / "data"

    # Application
    debug: bool = False

    @property
    def snapshot_path(self) -> Path:
        """Location of the persisted federation snapshot."""
        return self.data_dir / "registry" / "registry-data.json"


settings = Settings()
