"""Maintenance window control: cron suspension plus the application flag."""

from pathlib import Path
from typing import List, Optional

from zerodeploy.models import MaintenanceState, ScheduledJob


class MaintenanceController:
    """Enters and exits the maintenance window in a fixed order.

    Entering disables every scheduled job before the flag is raised; exiting
    lowers the flag and then re-enables the jobs. Both directions are no-ops
    when the system is already in the requested state.
    """

    def __init__(
        self,
        crontab_service,
        filesystem_service,
        logger,
        console,
        jobs: List[ScheduledJob],
        flag_path: Path,
        user: Optional[str] = None,
        group: Optional[str] = None,
    ):
        self.crontab_service = crontab_service
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console
        self.jobs = list(jobs)
        self.flag_path = Path(flag_path)
        self.user = user
        self.group = group

    def flag_raised(self) -> bool:
        return self.flag_path.exists()

    def jobs_suspended(self) -> bool:
        """True when any job that should run is installed but commented out."""
        active = [job for job in self.jobs if job.enabled]
        if not active:
            return False
        report = self.crontab_service.jobs_enabled(active)
        return any(report.get(job.name) is False for job in active)

    def state(self) -> MaintenanceState:
        if self.flag_raised() or self.jobs_suspended():
            return MaintenanceState.MAINTENANCE
        return MaintenanceState.NORMAL

    def suspend_jobs(self) -> bool:
        return self.crontab_service.set_jobs_enabled(self.jobs, enabled=False)

    def resume_jobs(self) -> bool:
        return self.crontab_service.set_jobs_enabled(self.jobs, enabled=True)

    def raise_flag(self) -> bool:
        if self.flag_raised():
            self.logger.info("Maintenance flag already raised at %s", self.flag_path)
            return False
        self.filesystem_service.ensure_path(self.flag_path, kind="file", user=self.user, group=self.group)
        self.logger.info("Raised maintenance flag %s", self.flag_path)
        return True

    def lower_flag(self) -> bool:
        if not self.flag_raised():
            return False
        self.flag_path.unlink()
        self.logger.info("Lowered maintenance flag %s", self.flag_path)
        return True

    def enter(self):
        self.console.print("[blue]Entering maintenance window...[/blue]")
        self.suspend_jobs()
        self.raise_flag()

    def exit(self):
        self.console.print("[blue]Leaving maintenance window...[/blue]")
        self.lower_flag()
        self.resume_jobs()
        self.console.print("[green]Maintenance window closed.[/green]")
