"""Configuration loader for zerodeploy."""

import shlex
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from zerodeploy.errors import ConfigError
from zerodeploy.models import (
    ConfigRow,
    DatabaseSettings,
    DeployConfig,
    InstallSettings,
    ScheduledJob,
    SharedResource,
)


class ConfigLoader:
    """Loads the YAML deployment description and builds a ``DeployConfig``."""

    SCALAR_KEYS = {
        "app_root",
        "artifact_url",
        "release_root",
        "releases_dir",
        "user",
        "group",
        "skip_release",
        "install",
        "cron_user",
        "cron_invoker",
        "cron_responder",
        "config_table",
        "crypt_key",
        "base_url",
        "config_template",
        "config_dest",
        "release_marker",
        "maintenance_flag",
        "php_binary",
        "app_cli",
        "mysql_binary",
        "service_name",
        "restart_timeout",
        "download_timeout",
        "retry_count",
        "retry_backoff_seconds",
        "allow_insecure_http",
        "artifact_sha256",
        "state_file",
        "verbose",
        "log_file",
    }
    STRUCTURED_KEYS = {
        "shared_resources",
        "cron_jobs",
        "database",
        "install_settings",
        "upgrade_commands",
        "config_rows",
        "template_vars",
        "purge_paths",
        "restart_command",
    }
    SUPPORTED_KEYS = SCALAR_KEYS | STRUCTURED_KEYS
    PATH_KEYS = {"app_root", "release_root", "releases_dir", "state_file"}
    BOOL_KEYS = {"skip_release", "install", "allow_insecure_http", "verbose"}
    FLOAT_KEYS = {"restart_timeout", "download_timeout", "retry_backoff_seconds"}
    INT_KEYS = {"retry_count"}
    CLI_ONLY_KEYS = {"log_file"}

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ConfigError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ConfigError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise ConfigError(f"Unknown configuration keys: {unknown_list}")

        return parsed

    def build(self, values: Dict[str, Any]) -> DeployConfig:
        if not values.get("app_root"):
            raise ConfigError("Missing required setting `app_root` (the live symlink path).")

        kwargs: Dict[str, Any] = {}
        for key in self.SCALAR_KEYS - self.CLI_ONLY_KEYS:
            if values.get(key) is None:
                continue
            kwargs[key] = self._coerce(key, values[key])

        kwargs["shared_resources"] = [
            self._shared_resource(item) for item in self._list(values, "shared_resources")
        ]
        kwargs["cron_jobs"] = [self._scheduled_job(item) for item in self._list(values, "cron_jobs")]
        kwargs["config_rows"] = [self._config_row(item) for item in self._list(values, "config_rows")]
        kwargs["database"] = DatabaseSettings(**self._mapping(values, "database", DatabaseSettings))
        kwargs["install_settings"] = InstallSettings(
            **self._mapping(values, "install_settings", InstallSettings)
        )
        kwargs["template_vars"] = dict(values.get("template_vars") or {})

        if values.get("upgrade_commands") is not None:
            commands = self._list(values, "upgrade_commands")
            kwargs["upgrade_commands"] = tuple(str(cmd) for cmd in commands)
        if values.get("purge_paths") is not None:
            kwargs["purge_paths"] = tuple(str(item) for item in self._list(values, "purge_paths"))
        if values.get("restart_command") is not None:
            command = values["restart_command"]
            if isinstance(command, str):
                command = shlex.split(command)
            kwargs["restart_command"] = [str(part) for part in command]

        config = DeployConfig(**kwargs)
        self.validate(config)
        return config

    def validate(self, config: DeployConfig):
        if not config.release_root and not config.releases_dir:
            raise ConfigError("Configure either `release_root` or `releases_dir`.")
        if not config.service_name and not config.restart_command:
            raise ConfigError("Configure `service_name` or `restart_command` for the runtime restart.")
        if config.retry_count < 0:
            raise ConfigError("`retry_count` must not be negative.")

        names = [job.name for job in config.cron_jobs]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigError(f"Duplicate cron job names: {', '.join(duplicates)}")

    def _coerce(self, key: str, value: Any) -> Any:
        try:
            if key in self.PATH_KEYS:
                return Path(str(value)).expanduser()
            if key in self.BOOL_KEYS:
                return self._bool(value)
            if key in self.FLOAT_KEYS:
                return float(value)
            if key in self.INT_KEYS:
                return int(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid value for `{key}`: {value!r}") from exc
        return str(value)

    @staticmethod
    def _bool(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"1", "true", "yes", "on"}:
            return True
        if isinstance(value, str) and value.strip().lower() in {"0", "false", "no", "off", ""}:
            return False
        if isinstance(value, int):
            return bool(value)
        raise ValueError(value)

    @staticmethod
    def _list(values: Dict[str, Any], key: str) -> List[Any]:
        items = values.get(key) or []
        if not isinstance(items, list):
            raise ConfigError(f"`{key}` must be a list.")
        return items

    @staticmethod
    def _mapping(values: Dict[str, Any], key: str, model) -> Dict[str, Any]:
        data = values.get(key) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"`{key}` must be a mapping.")
        allowed = set(model.__dataclass_fields__)
        unknown = sorted(set(data) - allowed)
        if unknown:
            raise ConfigError(f"Unknown keys in `{key}`: {', '.join(unknown)}")
        return {name: (None if value is None else str(value)) for name, value in data.items()}

    @staticmethod
    def parse_mode(value: Any) -> int:
        """Parses octal strings like ``"755"``, ``"0755"`` or ``"0o755"``.

        Unquoted YAML numbers are refused: ``755`` arrives as decimal and ``0755``
        as an already converted octal, so the intended mode cannot be recovered.
        """
        if not isinstance(value, str):
            raise ConfigError(f"Invalid file mode: {value!r}. Quote it, for example \"0755\".")
        try:
            return int(value.strip(), 8)
        except ValueError as exc:
            raise ConfigError(f"Invalid file mode: {value!r}") from exc

    def _shared_resource(self, item: Any) -> SharedResource:
        if not isinstance(item, dict) or not item.get("src") or not item.get("dest"):
            raise ConfigError(f"Shared resource needs `src` and `dest`: {item!r}")

        kind = str(item.get("type") or "directory")
        if kind not in {"directory", "file"}:
            raise ConfigError(f"Shared resource type must be `directory` or `file`, got `{kind}`.")

        return SharedResource(
            src=str(item["src"]),
            dest=str(item["dest"]),
            type=kind,
            owner=item.get("owner"),
            group=item.get("group"),
            mode=self.parse_mode(item.get("mode", "755")),
        )

    @staticmethod
    def _scheduled_job(item: Any) -> ScheduledJob:
        if not isinstance(item, dict) or not item.get("name") or not (item.get("command") or item.get("job")):
            raise ConfigError(f"Cron job needs `name` and `command`: {item!r}")

        schedule = item.get("schedule")
        if schedule is None:
            schedule = " ".join(
                str(item.get(field, "*")) for field in ("minute", "hour", "day", "month", "weekday")
            )
        try:
            enabled = ConfigLoader._bool(item.get("enabled", True))
        except ValueError as exc:
            raise ConfigError(f"Cron job `enabled` must be a boolean: {item!r}") from exc
        return ScheduledJob(
            name=str(item["name"]),
            command=str(item.get("command") or item.get("job")),
            schedule=str(schedule),
            enabled=enabled,
        )

    @staticmethod
    def _config_row(item: Any) -> ConfigRow:
        if not isinstance(item, dict) or not item.get("path") or "value" not in item:
            raise ConfigError(f"Config row needs `path` and `value`: {item!r}")
        try:
            scope_id = int(item.get("scope_id", 0))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Config row `scope_id` must be an integer: {item!r}") from exc
        return ConfigRow(
            path=str(item["path"]),
            value=item["value"],
            scope=str(item.get("scope", "default")),
            scope_id=scope_id,
        )
