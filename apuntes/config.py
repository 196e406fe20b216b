from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .aggregate import DEFAULT_POOL_SIZE
from .counter import DEFAULT_MAX_DEPTH
from .errors import ConfigError
from .s3 import DEFAULT_CALL_TIMEOUT, DEFAULT_MAX_ATTEMPTS, DEFAULT_PAGE_SIZE

logger = logging.getLogger(__name__)

DEFAULT_FRONTEND_URL = "http://localhost:3003"
CREDENTIAL_VARS = ("R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "R2_BUCKET_NAME")


@dataclass(frozen=True)
class Settings:
    bucket: str = ""
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    endpoint_url: Optional[str] = None
    account_id: Optional[str] = None
    region: str = "auto"
    public_url: Optional[str] = None
    root_prefix: str = ""
    pool_size: int = DEFAULT_POOL_SIZE
    call_timeout: float = DEFAULT_CALL_TIMEOUT
    max_depth: int = DEFAULT_MAX_DEPTH
    page_size: int = DEFAULT_PAGE_SIZE
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    cors_origins: tuple[str, ...] = (DEFAULT_FRONTEND_URL,)
    app_env: str = "production"
    log_level: str = "INFO"

    @property
    def public_base_url(self) -> Optional[str]:
        if self.public_url:
            return self.public_url
        if self.account_id and self.bucket:
            return f"https://{self.bucket}.{self.account_id}.r2.cloudflarestorage.com"
        return None

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[Path] = None,
    ) -> "Settings":
        if environ is None:
            load_dotenv(dotenv_path=env_file)
            environ = os.environ
        account_id = _text(environ.get("R2_ACCOUNT_ID"))
        endpoint = _text(environ.get("R2_ENDPOINT"))
        if not endpoint and account_id:
            endpoint = f"https://{account_id}.r2.cloudflarestorage.com"
        app_env = _text(environ.get("APP_ENV")) or "production"
        default_level = "DEBUG" if app_env == "development" else "INFO"
        settings = cls(
            bucket=_text(environ.get("R2_BUCKET_NAME")) or "",
            access_key_id=_text(environ.get("R2_ACCESS_KEY_ID")),
            secret_access_key=_text(environ.get("R2_SECRET_ACCESS_KEY")),
            endpoint_url=endpoint,
            account_id=account_id,
            region=_text(environ.get("R2_REGION")) or "auto",
            public_url=_text(environ.get("R2_PUBLIC_URL")),
            root_prefix=_text(environ.get("APUNTES_ROOT_PREFIX")) or "",
            pool_size=_positive_int(environ.get("APUNTES_POOL_SIZE"), DEFAULT_POOL_SIZE),
            call_timeout=_positive_float(
                environ.get("APUNTES_CALL_TIMEOUT"), DEFAULT_CALL_TIMEOUT
            ),
            max_depth=_positive_int(environ.get("APUNTES_MAX_DEPTH"), DEFAULT_MAX_DEPTH),
            page_size=_positive_int(environ.get("APUNTES_PAGE_SIZE"), DEFAULT_PAGE_SIZE),
            max_attempts=_positive_int(
                environ.get("APUNTES_MAX_ATTEMPTS"), DEFAULT_MAX_ATTEMPTS
            ),
            cors_origins=_origins(environ.get("FRONTEND_URL")),
            app_env=app_env,
            log_level=(_text(environ.get("LOG_LEVEL")) or default_level).upper(),
        )
        settings.log_summary()
        return settings

    def missing(self) -> list[str]:
        values = {
            "R2_ACCESS_KEY_ID": self.access_key_id,
            "R2_SECRET_ACCESS_KEY": self.secret_access_key,
            "R2_BUCKET_NAME": self.bucket,
        }
        return [name for name in CREDENTIAL_VARS if not values[name]]

    def validate(self) -> None:
        missing = self.missing()
        if missing:
            raise ConfigError(f"Missing store configuration: {', '.join(missing)}")

    def log_summary(self) -> None:
        for name, value in (
            ("R2_ACCESS_KEY_ID", self.access_key_id),
            ("R2_SECRET_ACCESS_KEY", self.secret_access_key),
            ("R2_ENDPOINT", self.endpoint_url),
            ("R2_BUCKET_NAME", self.bucket),
        ):
            logger.debug("%s: %s", name, "loaded" if value else "missing")


def _text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _positive_int(value: Optional[str], default: int) -> int:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _positive_float(value: Optional[str], default: float) -> float:
    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _origins(value: Optional[str]) -> tuple[str, ...]:
    origins = tuple(
        part.strip().rstrip("/") for part in (value or "").split(",") if part.strip()
    )
    return origins or (DEFAULT_FRONTEND_URL,)
