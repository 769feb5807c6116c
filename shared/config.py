"""
Configuration for the ingestion pipeline.

Settings come from the environment, optionally seeded from a .env file.
"""

import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from shared.constants import (
    CLOUDFLARE_R2_ENDPOINT_TEMPLATE,
    DEFAULT_API_HOST,
    DEFAULT_API_PORT,
    DEFAULT_COVERS_DIRNAME,
    DEFAULT_DATA_DIR,
    DEFAULT_DB_FILENAME,
    DEFAULT_NETWORK_TIMEOUT,
    DEFAULT_PRESIGNED_URL_EXPIRY,
    DEFAULT_R2_REGION,
    DEFAULT_SCAN_INITIAL_DELAY_SECONDS,
    DEFAULT_SCAN_INTERVAL_HOURS,
    DEFAULT_SCAN_MAX_RETRIES,
    DEFAULT_SCAN_RETRY_DELAY_SECONDS,
    DEFAULT_SCAN_WORKERS,
    MAX_SCAN_WORKERS,
)
from shared.exceptions import ConfigurationError
from shared.models import StorageProvider

REQUIRED_R2_VARS = {
    "access_key_id": "R2_ACCESS_KEY_ID",
    "secret_access_key": "R2_SECRET_ACCESS_KEY",
    "bucket_name": "R2_BUCKET_NAME",
}


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


@dataclass
class ScanConfig:
    """
    Everything needed to build a store client, a catalog and an orchestrator.
    """
    provider: StorageProvider = StorageProvider.CLOUDFLARE_R2
    account_id: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    bucket_name: Optional[str] = None
    endpoint: Optional[str] = None
    public_url: Optional[str] = None
    region: str = DEFAULT_R2_REGION
    presigned_url_expiry: int = DEFAULT_PRESIGNED_URL_EXPIRY
    music_dir: Optional[str] = None
    db_path: str = str(Path(DEFAULT_DATA_DIR).expanduser() / DEFAULT_DB_FILENAME)
    covers_dir: str = str(Path(DEFAULT_DATA_DIR).expanduser() / DEFAULT_COVERS_DIRNAME)
    scan_workers: int = DEFAULT_SCAN_WORKERS
    store_timeout: float = DEFAULT_NETWORK_TIMEOUT
    scan_interval_hours: float = DEFAULT_SCAN_INTERVAL_HOURS
    scan_max_retries: int = DEFAULT_SCAN_MAX_RETRIES
    scan_retry_delay: float = DEFAULT_SCAN_RETRY_DELAY_SECONDS
    scan_initial_delay: float = DEFAULT_SCAN_INITIAL_DELAY_SECONDS
    api_host: str = DEFAULT_API_HOST
    api_port: int = DEFAULT_API_PORT
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.endpoint and self.account_id:
            self.endpoint = CLOUDFLARE_R2_ENDPOINT_TEMPLATE.format(account_id=self.account_id)
        if self.endpoint:
            self.endpoint = self.endpoint.rstrip("/")
        if self.public_url:
            self.public_url = self.public_url.rstrip("/")
        self.scan_workers = max(1, min(int(self.scan_workers), MAX_SCAN_WORKERS))

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'ScanConfig':
        """Build a config from environment variables (and .env if present)."""
        load_dotenv(env_file)

        provider_raw = os.getenv("STORAGE_PROVIDER", StorageProvider.CLOUDFLARE_R2.value).lower()
        try:
            provider = StorageProvider(provider_raw)
        except ValueError:
            raise ConfigurationError(f"Unknown STORAGE_PROVIDER: {provider_raw}")

        defaults = cls()
        return cls(
            provider=provider,
            account_id=os.getenv("R2_ACCOUNT_ID"),
            access_key_id=os.getenv("R2_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("R2_SECRET_ACCESS_KEY"),
            bucket_name=os.getenv("R2_BUCKET_NAME"),
            endpoint=os.getenv("R2_ENDPOINT"),
            public_url=os.getenv("R2_PUBLIC_URL"),
            region=os.getenv("R2_REGION", DEFAULT_R2_REGION),
            presigned_url_expiry=_int_env("R2_PRESIGNED_URL_EXPIRY", DEFAULT_PRESIGNED_URL_EXPIRY),
            music_dir=os.getenv("MUSIC_DIR"),
            db_path=os.getenv("MUSIC_DB_PATH", defaults.db_path),
            covers_dir=os.getenv("COVERS_DIR", defaults.covers_dir),
            scan_workers=_int_env("SCAN_WORKERS", DEFAULT_SCAN_WORKERS),
            store_timeout=_float_env("STORE_TIMEOUT_SECONDS", DEFAULT_NETWORK_TIMEOUT),
            scan_interval_hours=_float_env("SCAN_INTERVAL_HOURS", DEFAULT_SCAN_INTERVAL_HOURS),
            scan_max_retries=_int_env("SCAN_MAX_RETRIES", DEFAULT_SCAN_MAX_RETRIES),
            scan_retry_delay=_float_env("SCAN_RETRY_DELAY_SECONDS", DEFAULT_SCAN_RETRY_DELAY_SECONDS),
            scan_initial_delay=_float_env("SCAN_INITIAL_DELAY_SECONDS", DEFAULT_SCAN_INITIAL_DELAY_SECONDS),
            api_host=os.getenv("API_HOST", DEFAULT_API_HOST),
            api_port=_int_env("API_PORT", DEFAULT_API_PORT),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScanConfig':
        """Create ScanConfig from dictionary, filtering unknown keys."""
        import dataclasses
        field_names = {f.name for f in dataclasses.fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in field_names}
        if 'provider' in filtered_data and not isinstance(filtered_data['provider'], StorageProvider):
            filtered_data['provider'] = StorageProvider(filtered_data['provider'])
        return cls(**filtered_data)

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        data = asdict(self)
        data['provider'] = self.provider.value
        if redact and data.get('secret_access_key'):
            data['secret_access_key'] = "***"
        return data

    def missing_store_settings(self) -> List[str]:
        """Names of the environment variables the selected store still needs."""
        if self.provider == StorageProvider.LOCAL:
            return [] if self.music_dir else ["MUSIC_DIR"]

        missing = [env for attr, env in REQUIRED_R2_VARS.items() if not getattr(self, attr)]
        if not self.endpoint:
            missing.append("R2_ENDPOINT (or R2_ACCOUNT_ID)")
        return missing

    def validate(self) -> None:
        """Raise ConfigurationError listing every problem at once."""
        errors = []
        missing = self.missing_store_settings()
        if missing:
            errors.append(f"Missing settings: {', '.join(missing)}")
        if self.presigned_url_expiry <= 0:
            errors.append("R2_PRESIGNED_URL_EXPIRY must be positive")
        if self.scan_max_retries < 0:
            errors.append("SCAN_MAX_RETRIES must not be negative")
        if self.scan_interval_hours <= 0:
            errors.append("SCAN_INTERVAL_HOURS must be positive")

        if errors:
            raise ConfigurationError("Configuration errors:\n  " + "\n  ".join(errors))
