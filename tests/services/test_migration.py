import subprocess

import pytest
from rich.console import Console

from zerodeploy.errors import CommandError, MigrationError
from zerodeploy.models import ConfigRow, DatabaseSettings, DeployConfig, InstallSettings, Release
from zerodeploy.services.filesystem import FileSystemService
from zerodeploy.services.migration import MigrationRunner


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class FakeCommandRunner:
    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.commands = []
        self.redactions = []

    def as_user(self, cmd, user):
        return list(cmd)

    def run(self, cmd, **kwargs):
        self.commands.append(cmd)
        self.redactions.append(kwargs.get("redact"))
        if self.fail_on and self.fail_on in cmd:
            raise CommandError(f"Command failed (1): {' '.join(cmd)}", returncode=1)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


class FakeDatabaseService:
    def __init__(self, failed=None):
        self.failed = failed or []
        self.rows = None

    def enforce(self, rows):
        self.rows = rows
        return list(self.failed)


def build_runner(tmp_path, command_runner, database_service=None, **config_kwargs):
    config = DeployConfig(app_root=tmp_path / "live", **config_kwargs)
    logger = DummyLogger()
    return MigrationRunner(
        config=config,
        command_runner=command_runner,
        database_service=database_service or FakeDatabaseService(),
        filesystem_service=FileSystemService(logger=logger, console=Console(record=True)),
        logger=logger,
        console=Console(record=True),
    )


def app_commands(command_runner):
    return [cmd[2:] for cmd in command_runner.commands]


def test_migrate_purges_generated_content_then_upgrades_and_flushes(tmp_path):
    live = tmp_path / "live"
    (live / "var" / "cache" / "mage--1").mkdir(parents=True)
    (live / "generated" / "code").mkdir(parents=True)
    runner = FakeCommandRunner()
    database = FakeDatabaseService()
    migration = build_runner(
        tmp_path,
        runner,
        database_service=database,
        config_rows=[ConfigRow(path="dev/js/merge_files", value=1)],
    )

    drifted = migration.migrate(Release(path=live, exists=True))

    assert drifted == []
    assert not (live / "var" / "cache").exists()
    assert not (live / "generated").exists()
    assert app_commands(runner) == [["setup:upgrade", "--keep-generated"], ["cache:flush"]]
    assert runner.commands[0][:2] == ["/usr/bin/php", str(live / "bin" / "magento")]
    assert database.rows == [ConfigRow(path="dev/js/merge_files", value=1)]


def test_upgrade_failure_is_fatal_and_skips_the_rest(tmp_path):
    runner = FakeCommandRunner(fail_on="setup:upgrade")
    database = FakeDatabaseService()
    migration = build_runner(tmp_path, runner, database_service=database)

    with pytest.raises(MigrationError, match="stays in maintenance"):
        migration.migrate(Release(path=tmp_path / "live", exists=True))

    assert ["cache:flush"] not in app_commands(runner)
    assert database.rows is None


def test_config_drift_is_reported_but_cache_still_flushes(tmp_path):
    runner = FakeCommandRunner()
    migration = build_runner(
        tmp_path,
        runner,
        database_service=FakeDatabaseService(failed=["web/unsecure/base_url"]),
        config_rows=[ConfigRow(path="web/unsecure/base_url", value="https://shop.example.com/")],
    )

    drifted = migration.migrate(Release(path=tmp_path / "live", exists=True))

    assert drifted == ["web/unsecure/base_url"]
    assert app_commands(runner)[-1] == ["cache:flush"]


def test_install_runs_destructive_setup_before_upgrade(tmp_path):
    runner = FakeCommandRunner()
    migration = build_runner(
        tmp_path,
        runner,
        database=DatabaseSettings(host="db", name="shop", username="shop", password="secret"),
        install_settings=InstallSettings(
            admin_user="admin",
            admin_password="admin123",
            admin_email="ops@example.com",
            admin_firstname="Ops",
            admin_lastname="Team",
        ),
        crypt_key="0123456789abcdef",
        base_url="https://shop.example.com/",
    )

    migration.migrate(Release(path=tmp_path / "live", exists=True), install=True)

    install_cmd = app_commands(runner)[0]
    assert install_cmd[:2] == ["setup:install", "--cleanup-database"]
    assert "--db-password=secret" in install_cmd
    assert "--base-url=https://shop.example.com/" in install_cmd
    assert "secret" in runner.redactions[0]
    assert app_commands(runner)[1] == ["setup:upgrade", "--keep-generated"]


def test_install_requires_every_setting(tmp_path):
    runner = FakeCommandRunner()
    migration = build_runner(tmp_path, runner)

    with pytest.raises(MigrationError, match="missing settings"):
        migration.install()

    assert runner.commands == []
