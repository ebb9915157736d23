"""Environment configuration for the A/B testing engine."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from project root
ROOT = Path(__file__).resolve().parents[2]
ENV_FILE = ROOT / ".env"

if ENV_FILE.exists():
    load_dotenv(ENV_FILE)


class Config:
    """Configuration from environment variables."""

    # Storage
    DATA_DIR: str = os.getenv("ABTEST_DATA_DIR", "data/abtesting")
    ARTIFACTS_DIR: str = os.getenv("ABTEST_ARTIFACTS_DIR", "artifacts/abtesting")
    REGISTRY_PATH: str = os.getenv("ABTEST_REGISTRY_PATH", "data/abtesting/experiments.json")

    # Active experiment cache (seconds)
    CACHE_TTL: float = float(os.getenv("ABTEST_CACHE_TTL", "300"))

    # HTTP client
    API_URL: str = os.getenv("ABTEST_API_URL", "http://localhost:5000")
    HTTP_TIMEOUT: float = float(os.getenv("ABTEST_HTTP_TIMEOUT", "5.0"))

    @classmethod
    def as_dict(cls) -> dict:
        return {
            "data_dir": cls.DATA_DIR,
            "artifacts_dir": cls.ARTIFACTS_DIR,
            "registry_path": cls.REGISTRY_PATH,
            "cache_ttl": cls.CACHE_TTL,
            "api_url": cls.API_URL,
            "http_timeout": cls.HTTP_TIMEOUT,
        }
