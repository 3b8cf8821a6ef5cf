"""Input and URL validation helpers for zerodeploy."""

from typing import Optional
from urllib.parse import urlparse

from zerodeploy.constants import ARCHIVE_EXTENSIONS
from zerodeploy.errors import ConfigError
from zerodeploy.errors_catalog import actionable_error


class ValidationService:
    """Validates artifact references and protocol policy."""

    def __init__(self, allow_insecure_http: bool = False):
        self.allow_insecure_http = allow_insecure_http

    def is_url(self, location: str) -> bool:
        scheme = urlparse(location).scheme.lower()
        return scheme in {"http", "https"}

    def ensure_supported_artifact(self, location: str):
        path = urlparse(location).path if self.is_url(location) else location
        if not path.lower().endswith(ARCHIVE_EXTENSIONS):
            raise ConfigError(actionable_error("invalid_artifact_format", location=location))

    def enforce_https_policy(self, location: str, label: str, logger, console):
        if not self.is_url(location):
            return

        scheme = urlparse(location).scheme.lower()
        if scheme == "http" and not self.allow_insecure_http:
            raise ConfigError(actionable_error("insecure_http", label=label))

        if scheme == "http" and self.allow_insecure_http:
            logger.warning("Insecure HTTP enabled for %s: %s", label, location)
            console.print(
                f"[yellow]Warning:[/yellow] Using insecure HTTP for {label}. "
                "Prefer HTTPS whenever possible."
            )

    @staticmethod
    def normalize_sha256(value: Optional[str], option_name: str) -> Optional[str]:
        if value is None:
            return None

        clean_value = value.strip().lower()
        if len(clean_value) != 64 or any(c not in "0123456789abcdef" for c in clean_value):
            raise ConfigError(f"{option_name} must be a valid SHA-256 hash (64 hexadecimal characters).")
        return clean_value
