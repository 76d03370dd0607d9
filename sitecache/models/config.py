"""
Pydantic model for worker configuration.
Provides robust validation for all settings.
"""

import hashlib
import json
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_VERSION = "1.0.0"

# Resources cached at install time
DEFAULT_STATIC_ASSETS = [
    "/",
    "/index.html",
    "/styles/main.css",
    "/scripts/main.js",
    "/scripts/utils/animations.js",
    "/scripts/utils/responsive.js",
    "/scripts/utils/performance.js",
    "/scripts/components/smooth-scroll.js",
    "/scripts/components/navigation.js",
]

DEFAULT_ALLOWED_ORIGINS = [
    "https://fonts.googleapis.com",
    "https://fonts.gstatic.com",
    "https://via.placeholder.com",
]

# Stylesheets, scripts, images and fonts
DEFAULT_STATIC_EXTENSIONS = [
    ".css",
    ".js",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".ico",
    ".woff",
    ".woff2",
]


class WorkerConfig(BaseModel):
    """A validated configuration model for one worker version."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    site_name: str = "sitecache"
    origin: str
    version: str = DEFAULT_VERSION
    static_assets: list[str] = Field(
        default_factory=lambda: list(DEFAULT_STATIC_ASSETS)
    )
    allowed_origins: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS)
    )
    offline_document: str = "/index.html"
    static_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_STATIC_EXTENSIONS)
    )
    timeout_seconds: float | None = None
    skip_waiting_on_install: bool = True

    @property
    def static_cache_name(self) -> str:
        return f"static-v{self.version}"

    @property
    def dynamic_cache_name(self) -> str:
        return f"dynamic-v{self.version}"

    @property
    def cache_whitelist(self) -> set[str]:
        """Partition names that survive activation cleanup."""
        return {self.static_cache_name, self.dynamic_cache_name}

    @field_validator("origin")
    @classmethod
    def validate_origin(cls, v: str) -> str:
        """Ensures the origin is scheme://host[:port] with no path."""
        return _normalize_origin(v)

    @field_validator("allowed_origins")
    @classmethod
    def validate_allowed_origins(cls, v: list[str]) -> list[str]:
        return [_normalize_origin(origin) for origin in v if origin.strip()]

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if not v:
            raise ValueError("Version cannot be empty.")
        if "/" in v or "\\" in v or ".." in v:
            raise ValueError(f"Version cannot contain path separators: {v}")
        return v

    @field_validator("static_assets")
    @classmethod
    def validate_assets(cls, v: list[str]) -> list[str]:
        """Asset URLs must be root-relative."""
        for asset in v:
            if not asset.startswith("/") or asset.startswith("//"):
                raise ValueError(f"Static asset must be root-relative: {asset!r}")
        return v

    @field_validator("static_extensions")
    @classmethod
    def validate_extensions(cls, v: list[str]) -> list[str]:
        exts = [e.strip().lower() for e in v if e.strip()]
        return [ext if ext.startswith(".") else f".{ext}" for ext in exts]

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("Timeout must be a positive number of seconds.")
        return v

    @model_validator(mode="after")
    def validate_offline_document(self) -> "WorkerConfig":
        """The offline fallback must be something install actually caches."""
        if self.offline_document not in self.static_assets:
            raise ValueError(
                f"Offline document '{self.offline_document}' must be listed in "
                "static_assets."
            )
        return self

    def fingerprint(self) -> str:
        """
        Returns a stable digest of the configuration. Two configs with the same
        fingerprint describe the same worker version.
        """
        payload = json.dumps(self.model_dump(), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        return set(cls.model_fields)


def _normalize_origin(value: str) -> str:
    parts = urlsplit(value.strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"Origin must look like https://example.com, got: {value!r}")
    if parts.path not in ("", "/") or parts.query or parts.fragment:
        raise ValueError(f"Origin cannot contain a path or query: {value!r}")
    return f"{parts.scheme}://{parts.netloc.lower()}"
