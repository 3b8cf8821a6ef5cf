"""Shared domain models for zerodeploy."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .constants import (
    DEFAULT_APP_CLI,
    DEFAULT_CONFIG_DEST,
    DEFAULT_CONFIG_TABLE,
    DEFAULT_CRON_SCHEDULE,
    DEFAULT_DOWNLOAD_TIMEOUT,
    DEFAULT_MAINTENANCE_FLAG,
    DEFAULT_MYSQL_BINARY,
    DEFAULT_PHP_BINARY,
    DEFAULT_PURGE_PATHS,
    DEFAULT_RELEASE_MARKER,
    DEFAULT_RESTART_TIMEOUT,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    DEFAULT_RETRY_COUNT,
    DEFAULT_UPGRADE_COMMANDS,
)


class ReleaseMode(Enum):
    """Selected once per run from the ``skip_release`` setting."""

    FULL_RELEASE = "full_release"
    CONFIG_ONLY = "config_only"

    @classmethod
    def from_skip_release(cls, skip_release: bool) -> "ReleaseMode":
        return cls.CONFIG_ONLY if skip_release else cls.FULL_RELEASE


class MaintenanceState(Enum):
    NORMAL = "normal"
    MAINTENANCE = "maintenance"


@dataclass(frozen=True)
class Release:
    """A prepared, versioned release directory."""

    path: Path
    exists: bool
    user: Optional[str] = None
    group: Optional[str] = None


@dataclass(frozen=True)
class SharedResource:
    """Persistent content living outside the release tree, linked into it."""

    src: str
    dest: str
    type: str = "directory"
    owner: Optional[str] = None
    group: Optional[str] = None
    mode: int = 0o755


@dataclass(frozen=True)
class ScheduledJob:
    name: str
    command: str
    schedule: str = DEFAULT_CRON_SCHEDULE
    enabled: bool = True


@dataclass(frozen=True)
class ConfigRow:
    """A configuration row forced to ``value`` on every deployment."""

    path: str
    value: Any
    scope: str = "default"
    scope_id: int = 0


@dataclass(frozen=True)
class DatabaseSettings:
    host: Optional[str] = None
    name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    def as_context(self) -> Dict[str, Optional[str]]:
        return {
            "host": self.host,
            "name": self.name,
            "username": self.username,
            "password": self.password,
        }


@dataclass(frozen=True)
class InstallSettings:
    """Inputs for first-time environment bootstrap."""

    backend_frontname: str = "admin"
    admin_user: Optional[str] = None
    admin_password: Optional[str] = None
    admin_email: Optional[str] = None
    admin_firstname: Optional[str] = None
    admin_lastname: Optional[str] = None
    language: str = "en_US"
    currency: str = "USD"


@dataclass
class DeployConfig:
    """Fully resolved configuration for one deployment run."""

    app_root: Path
    artifact_url: Optional[str] = None
    release_root: Optional[Path] = None
    releases_dir: Optional[Path] = None
    user: Optional[str] = None
    group: Optional[str] = None
    skip_release: bool = False
    install: bool = False
    shared_resources: List[SharedResource] = field(default_factory=list)
    cron_jobs: List[ScheduledJob] = field(default_factory=list)
    cron_user: Optional[str] = None
    cron_invoker: Optional[str] = None
    cron_responder: Optional[str] = None
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    install_settings: InstallSettings = field(default_factory=InstallSettings)
    upgrade_commands: Tuple[str, ...] = DEFAULT_UPGRADE_COMMANDS
    config_rows: List[ConfigRow] = field(default_factory=list)
    config_table: str = DEFAULT_CONFIG_TABLE
    crypt_key: Optional[str] = None
    base_url: Optional[str] = None
    template_vars: Dict[str, Any] = field(default_factory=dict)
    config_template: Optional[str] = None
    config_dest: str = DEFAULT_CONFIG_DEST
    release_marker: str = DEFAULT_RELEASE_MARKER
    maintenance_flag: str = DEFAULT_MAINTENANCE_FLAG
    purge_paths: Tuple[str, ...] = DEFAULT_PURGE_PATHS
    php_binary: str = DEFAULT_PHP_BINARY
    app_cli: str = DEFAULT_APP_CLI
    mysql_binary: str = DEFAULT_MYSQL_BINARY
    service_name: Optional[str] = None
    restart_command: Optional[List[str]] = None
    restart_timeout: float = DEFAULT_RESTART_TIMEOUT
    download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT
    retry_count: int = DEFAULT_RETRY_COUNT
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    allow_insecure_http: bool = False
    artifact_sha256: Optional[str] = None
    state_file: Optional[Path] = None
    verbose: bool = False

    @property
    def mode(self) -> ReleaseMode:
        return ReleaseMode.from_skip_release(self.skip_release)
