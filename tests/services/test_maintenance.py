from rich.console import Console

from zerodeploy.models import MaintenanceState, ScheduledJob
from zerodeploy.services.filesystem import FileSystemService
from zerodeploy.services.maintenance import MaintenanceController


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class FakeCrontabService:
    def __init__(self, events, flag_path):
        self.events = events
        self.flag_path = flag_path
        self.enabled = True

    def set_jobs_enabled(self, jobs, enabled):
        self.events.append(("cron", enabled, self.flag_path.exists()))
        changed = self.enabled != enabled
        self.enabled = enabled
        return changed

    def jobs_enabled(self, jobs):
        return {job.name: self.enabled for job in jobs}


def build_controller(tmp_path, events):
    flag_path = tmp_path / "release" / "var" / ".maintenance.flag"
    crontab = FakeCrontabService(events, flag_path)
    controller = MaintenanceController(
        crontab_service=crontab,
        filesystem_service=FileSystemService(logger=DummyLogger(), console=Console(record=True)),
        logger=DummyLogger(),
        console=Console(record=True),
        jobs=[ScheduledJob(name="cron", command="bin/magento cron:run")],
        flag_path=flag_path,
    )
    return controller, crontab


def test_enter_disables_jobs_before_raising_flag(tmp_path):
    events = []
    controller, crontab = build_controller(tmp_path, events)

    controller.enter()

    assert events == [("cron", False, False)]
    assert controller.flag_raised() is True
    assert controller.state() is MaintenanceState.MAINTENANCE
    assert crontab.enabled is False


def test_exit_lowers_flag_before_enabling_jobs(tmp_path):
    events = []
    controller, crontab = build_controller(tmp_path, events)
    controller.enter()

    controller.exit()

    assert events[-1] == ("cron", True, False)
    assert controller.flag_raised() is False
    assert controller.state() is MaintenanceState.NORMAL
    assert crontab.enabled is True


def test_enter_and_exit_are_idempotent(tmp_path):
    events = []
    controller, _ = build_controller(tmp_path, events)

    controller.enter()
    assert controller.raise_flag() is False
    controller.enter()
    assert controller.flag_raised() is True

    controller.exit()
    assert controller.lower_flag() is False
    controller.exit()
    assert controller.flag_raised() is False


def test_state_reports_maintenance_while_jobs_stay_suspended(tmp_path):
    events = []
    controller, crontab = build_controller(tmp_path, events)
    controller.enter()
    controller.lower_flag()

    assert controller.flag_raised() is False
    assert controller.state() is MaintenanceState.MAINTENANCE

    controller.resume_jobs()
    assert controller.state() is MaintenanceState.NORMAL
