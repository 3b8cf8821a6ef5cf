"""Post-cutover database setup, upgrades, config enforcement and cache flush."""

import shlex
from pathlib import Path
from typing import List, Optional

from zerodeploy.errors import CommandError, MigrationError
from zerodeploy.errors_catalog import actionable_error
from zerodeploy.models import DeployConfig, Release


class MigrationRunner:
    """Runs the application's CLI against the live release.

    Install and upgrade failures are fatal. Configuration-row enforcement
    failures are reported as drift and the cache flush still runs.
    """

    def __init__(
        self,
        config: DeployConfig,
        command_runner,
        database_service,
        filesystem_service,
        logger,
        console,
    ):
        self.config = config
        self.command_runner = command_runner
        self.database_service = database_service
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console

    @property
    def app_root(self) -> Path:
        return Path(self.config.app_root)

    def app_cmd(self, args: List[str]) -> List[str]:
        cli = Path(self.config.app_cli)
        if not cli.is_absolute():
            cli = self.app_root / cli
        cmd = [self.config.php_binary, str(cli)] + list(args)
        return self.command_runner.as_user(cmd, self.config.user)

    def _run_app(self, args: List[str], redact: Optional[List[str]] = None):
        try:
            self.command_runner.run(
                self.app_cmd(args),
                cwd=str(self.app_root),
                capture_output=True,
                redact=redact or [],
            )
        except CommandError as exc:
            raise MigrationError(actionable_error("migration_failed", detail=str(exc))) from exc

    def migrate(self, release: Release, install: bool = False) -> List[str]:
        """Returns the configuration paths that drifted and could not be enforced."""
        self.logger.info("Running migrations against %s", release.path)
        self.purge_generated()
        if install:
            self.install()
        self.upgrade()
        drifted = self.enforce_config()
        self.flush_cache()
        return drifted

    def purge_generated(self):
        for relative in self.config.purge_paths:
            target = self.app_root / relative
            try:
                if self.filesystem_service.remove_path(target):
                    self.logger.info("Removed generated content %s", target)
            except OSError as exc:
                raise MigrationError(f"Could not remove generated content {target}: {exc}") from exc

    def install_args(self) -> List[str]:
        db = self.config.database
        install = self.config.install_settings
        options = {
            "backend-frontname": install.backend_frontname,
            "session-save": "db",
            "db-host": db.host,
            "db-user": db.username,
            "db-password": db.password,
            "db-name": db.name,
            "use-rewrites": "1",
            "admin-user": install.admin_user,
            "admin-password": install.admin_password,
            "admin-email": install.admin_email,
            "admin-firstname": install.admin_firstname,
            "admin-lastname": install.admin_lastname,
            "language": install.language,
            "currency": install.currency,
            "key": self.config.crypt_key,
            "base-url": self.config.base_url,
        }
        missing = [name for name, value in options.items() if value in (None, "")]
        if missing:
            raise MigrationError(f"First-time install is missing settings: {', '.join(missing)}")

        return ["setup:install", "--cleanup-database"] + [
            f"--{name}={value}" for name, value in options.items()
        ]

    def install(self):
        self.console.print("[yellow]Installing database from scratch (destructive)...[/yellow]")
        self.logger.warning("Running first-time install with --cleanup-database")
        secrets = [
            self.config.database.password or "",
            self.config.install_settings.admin_password or "",
            self.config.crypt_key or "",
        ]
        self._run_app(self.install_args(), redact=secrets)

    def upgrade(self):
        for command in self.config.upgrade_commands:
            self.console.print(f"[blue]Running {command}...[/blue]")
            self.logger.info("Running upgrade command: %s", command)
            self._run_app(shlex.split(command))

    def enforce_config(self) -> List[str]:
        rows = list(self.config.config_rows)
        if not rows:
            return []

        drifted = self.database_service.enforce(rows)
        if drifted:
            self.console.print(
                f"[yellow]Warning:[/yellow] {len(drifted)} configuration row(s) could not be enforced."
            )
            self.logger.warning("Configuration drift remains for: %s", ", ".join(drifted))
        else:
            self.logger.info("Enforced %s configuration row(s)", len(rows))
        return drifted

    def flush_cache(self):
        self.logger.info("Flushing application caches")
        self._run_app(["cache:flush"])
