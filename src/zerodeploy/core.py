import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

import requests
from rich.console import Console

from .errors import ConfigError, DeployError, LockError
from .errors_catalog import actionable_error
from .models import DeployConfig, MaintenanceState, Release, ReleaseMode
from .services.archive import ArchiveService
from .services.command_runner import CommandRunner
from .services.crontab import CrontabService
from .services.cutover import CutoverManager
from .services.database import DatabaseService
from .services.download import ArtifactFetcher
from .services.filesystem import FileSystemService
from .services.lock import DeployLock
from .services.maintenance import MaintenanceController
from .services.manifest import ManifestService
from .services.migration import MigrationRunner
from .services.release import ReleaseLocator, ReleasePreparer
from .services.service_reloader import ServiceReloader
from .services.shared_resources import SharedResourceLinker
from .services.state import StateService
from .services.templating import TemplateRenderer
from .services.validation import ValidationService

console = Console()
logger = logging.getLogger("zerodeploy")


class ReleaseDeployer:
    """Runs one zero-downtime deployment of a release into the live application root."""

    def __init__(self, config: DeployConfig, requests_module=requests):
        self.config = config
        self.mode = config.mode
        self.app_root = Path(config.app_root)
        self.run_id = uuid.uuid4().hex[:10]
        self.current_step_name: Optional[str] = None
        self.state: Optional[Dict[str, Any]] = None
        self.release_root: Optional[Path] = None

        state_file = config.state_file or self.app_root.with_name(
            f"{self.app_root.name}.zerodeploy-state.json"
        )
        self.state_file = Path(state_file)
        self.manifest_file = self.state_file.with_name(f"{self.app_root.name}.zerodeploy-manifest.json")
        self.state_service = StateService(state_file=str(self.state_file), logger=logger)
        self.manifest_service = ManifestService(manifest_file=str(self.manifest_file), logger=logger)

        self.validation_service = ValidationService(allow_insecure_http=config.allow_insecure_http)
        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.archive_service = ArchiveService()
        self.command_runner = CommandRunner(logger=logger)
        self.locator = ReleaseLocator(marker_name=config.release_marker)

        search_dir, _ = TemplateRenderer.template_location(config.config_template, "")
        self.renderer = TemplateRenderer(logger=logger, search_paths=[search_dir] if search_dir else None)
        self.fetcher = ArtifactFetcher(
            validation_service=self.validation_service,
            logger=logger,
            console=console,
            requests_module=requests_module,
            timeout=config.download_timeout,
            retry_count=config.retry_count,
            retry_backoff_seconds=config.retry_backoff_seconds,
        )
        self.preparer = ReleasePreparer(
            config=config,
            archive_service=self.archive_service,
            filesystem_service=self.filesystem_service,
            renderer=self.renderer,
            locator=self.locator,
            logger=logger,
        )
        self.crontab_service = CrontabService(
            command_runner=self.command_runner,
            logger=logger,
            user=config.cron_user or config.user,
            invoker=config.cron_invoker,
            responder=config.cron_responder,
        )
        self.cutover_manager = CutoverManager(
            app_root=self.app_root,
            locator=self.locator,
            filesystem_service=self.filesystem_service,
            logger=logger,
            console=console,
            user=config.user,
            group=config.group,
        )
        self.linker = SharedResourceLinker(
            app_root=self.app_root,
            filesystem_service=self.filesystem_service,
            logger=logger,
            user=config.user,
            group=config.group,
        )
        self.database_service = DatabaseService(
            command_runner=self.command_runner,
            logger=logger,
            settings=config.database,
            mysql_binary=config.mysql_binary,
            table=config.config_table,
        )
        self.migration_runner = MigrationRunner(
            config=config,
            command_runner=self.command_runner,
            database_service=self.database_service,
            filesystem_service=self.filesystem_service,
            logger=logger,
            console=console,
        )
        self.service_reloader = ServiceReloader(
            command_runner=self.command_runner,
            logger=logger,
            console=console,
            service_name=config.service_name,
            restart_command=config.restart_command,
            timeout=config.restart_timeout,
        )
        self.maintenance: Optional[MaintenanceController] = None

    def resolve_release_root(self) -> Path:
        """Finds the release this run deploys; config-only runs may fall back to the live one."""
        if self.config.release_root or (self.config.releases_dir and self.config.artifact_url):
            return self.locator.resolve_release_root(self.config)

        if self.mode is ReleaseMode.CONFIG_ONLY:
            live = self.cutover_manager.current_target()
            if live is not None:
                logger.info("Config-only run against the live release %s", live)
                return live

        raise ConfigError(actionable_error("missing_artifact"))

    def validate_inputs(self):
        if self.mode is ReleaseMode.CONFIG_ONLY:
            return
        if not self.config.artifact_url:
            raise ConfigError(actionable_error("missing_artifact"))
        self.validation_service.ensure_supported_artifact(self.config.artifact_url)
        self.validation_service.enforce_https_policy(
            self.config.artifact_url, "Release artifact", logger, console
        )
        self.config.artifact_sha256 = self.validation_service.normalize_sha256(
            self.config.artifact_sha256, "artifact_sha256"
        )

    def _build_maintenance(self, release_root: Path) -> MaintenanceController:
        return MaintenanceController(
            crontab_service=self.crontab_service,
            filesystem_service=self.filesystem_service,
            logger=logger,
            console=console,
            jobs=self.config.cron_jobs,
            flag_path=release_root / self.config.maintenance_flag,
            user=self.config.user,
            group=self.config.group,
        )

    def _build_manifest_metadata(self) -> Dict[str, Any]:
        return {
            "app_root": str(self.app_root),
            "artifact_url": self.config.artifact_url,
            "mode": self.mode.value,
            "install": self.config.install,
            "shared_resources": len(self.config.shared_resources),
            "cron_jobs": len(self.config.cron_jobs),
        }

    def _run_step(self, name: str, callback, *args, **kwargs):
        if self.state:
            self.state_service.mark_step_started(self.state, name)
        self.manifest_service.step_started(name)
        self.current_step_name = name

        try:
            result = callback(*args, **kwargs)
        except Exception as exc:
            if self.state:
                self.state_service.mark_step_failed(self.state, name, str(exc))
            self.manifest_service.step_finished(name, "failed", error=str(exc))
            raise

        if self.state:
            self.state_service.mark_step_completed(self.state, name)
        self.manifest_service.step_finished(name, "success")
        self.current_step_name = None
        return result

    def _report_previous_run(self):
        previous = (self.state or {}).get("previous")
        if previous and previous.get("status") not in (None, "success"):
            logger.warning(
                "Previous run %s ended as '%s' in step '%s': %s. Continuing idempotently.",
                previous.get("run_id"),
                previous.get("status"),
                previous.get("failed_step") or "<unknown>",
                previous.get("last_error") or "no error recorded",
            )
        if self.maintenance and self.maintenance.state() is MaintenanceState.MAINTENANCE:
            logger.info("Maintenance window already open; it will be re-entered idempotently.")
        if self.state and self.state.get("restart_pending"):
            logger.warning("The runtime was not restarted after the last cutover; it will be restarted now.")

    def fetch_and_prepare(self, release_root: Path) -> Release:
        with self.fetcher.workspace() as workspace:
            artifact_path = self.fetcher.fetch(
                self.config.artifact_url,
                workspace,
                expected_sha256=self.config.artifact_sha256,
            )
            return self.preparer.prepare(artifact_path, release_root)

    def deploy(self, release_root: Path):
        exists = self._run_step("locate_release", self.locator.exists, release_root)
        self.manifest_service.set_release(path=str(release_root), previous=self._live_target())

        if self.mode is ReleaseMode.FULL_RELEASE and not exists:
            console.print(f"[blue]Preparing release {release_root}...[/blue]")
            release = self._run_step("fetch_and_prepare", self.fetch_and_prepare, release_root)
            self.manifest_service.set_release(prepared=True)
        else:
            if not exists:
                raise ConfigError(
                    f"Config-only run needs a prepared release, but {release_root} has no "
                    f"`{self.config.release_marker}` marker."
                )
            logger.info("Release %s already prepared; skipping fetch and unpack.", release_root)
            self._run_step("render_config", self.preparer.render_config, release_root)
            release = Release(path=release_root, exists=True, user=self.config.user, group=self.config.group)
            self.manifest_service.set_release(prepared=False)

        self._run_step("enter_maintenance", self.maintenance.enter)
        if self.state:
            self.state_service.set_value(self.state, "maintenance", True)

        changed = self._run_step("cutover", self.cutover_manager.cutover, release)
        self.manifest_service.set_release(changed=changed)
        restart_needed = changed or bool(self.state and self.state.get("restart_pending"))
        if self.state and restart_needed:
            self.state_service.set_value(self.state, "restart_pending", True)

        self._run_step("link_shared_resources", self.linker.reconcile, self.config.shared_resources)
        self._run_step("reload_service", self.service_reloader.reload_if_changed, restart_needed)
        if self.state:
            self.state_service.set_value(self.state, "restart_pending", False)
        self._run_step("migrate", self.migration_runner.migrate, release, install=self.config.install)

        self._run_step("exit_maintenance", self.maintenance.exit)
        if self.state:
            self.state_service.set_value(self.state, "maintenance", False)

    def _live_target(self) -> Optional[str]:
        target = self.cutover_manager.current_target()
        return str(target) if target else None

    def run(self) -> int:
        logger.info("Starting zerodeploy run %s (%s)", self.run_id, self.mode.value)
        try:
            with DeployLock(self.app_root, logger):
                return self._run_locked()
        except LockError as exc:
            console.print(f"[bold red]Error in step 'acquire_lock':[/bold red] {exc}")
            logger.error("Could not acquire deployment lock: %s", exc)
            return 1

    def _run_locked(self) -> int:
        exit_code = 1
        manifest_status = "failed"
        manifest_error: Optional[str] = None

        try:
            self.manifest_service.start_run(run_id=self.run_id, metadata=self._build_manifest_metadata())

            self._run_step("validate_inputs", self.validate_inputs)
            self.release_root = self._run_step("resolve_release", self.resolve_release_root)
            self.maintenance = self._build_maintenance(self.release_root)

            self.state = self.state_service.start(
                run_id=self.run_id,
                release_root=str(self.release_root),
                mode=self.mode.value,
            )
            self._report_previous_run()
            self.deploy(self.release_root)

            self.state_service.mark_status(self.state, "success")
            console.print(f"[bold green]Release {self.release_root} is live.[/bold green]")
            manifest_status = "success"
            manifest_error = None
            exit_code = 0
            return exit_code

        except KeyboardInterrupt:
            console.print("[bold red]Deployment interrupted.[/bold red]")
            logger.info("Deployment interrupted by user")
            if self.state:
                self.state_service.mark_status(self.state, "aborted", "Interrupted by user.")
            manifest_status = "aborted"
            manifest_error = "Interrupted by user."
            exit_code = 1
            return exit_code
        except DeployError as exc:
            failed_step = self.current_step_name or "run"
            console.print(f"[bold red]Error in step '{failed_step}':[/bold red] {exc}")
            logger.error("Step '%s' failed: %s", failed_step, exc)
            if self.state:
                self.state_service.mark_step_failed(self.state, failed_step, str(exc))
            manifest_status = "failed"
            manifest_error = f"{failed_step}: {exc}"
            exit_code = 1
            return exit_code
        except Exception as exc:
            failed_step = self.current_step_name or "run"
            console.print(f"[bold red]Unexpected error in step '{failed_step}':[/bold red] {exc}")
            logger.exception("Unexpected error")
            if self.state:
                self.state_service.mark_step_failed(self.state, failed_step, str(exc))
            manifest_status = "failed"
            manifest_error = f"{failed_step}: {exc}"
            exit_code = 1
            return exit_code
        finally:
            self.manifest_service.finalize(manifest_status, error=manifest_error)
            if manifest_status != "success" and self.maintenance and self.maintenance.flag_raised():
                logger.warning(
                    "Leaving the site in maintenance with cron disabled. "
                    "Fix the failure and run zerodeploy again to finish the release."
                )
