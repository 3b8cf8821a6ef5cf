import os
import threading

import pytest
from rich.console import Console

from zerodeploy.errors import CutoverError
from zerodeploy.models import Release
from zerodeploy.services.cutover import CutoverManager
from zerodeploy.services.filesystem import FileSystemService
from zerodeploy.services.release import ReleaseLocator


class DummyLogger:
    def __init__(self):
        self.warnings = []

    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, message, *args, **_kwargs):
        self.warnings.append(message % args)


def make_release(tmp_path, version, complete=True):
    path = tmp_path / "releases" / version
    path.mkdir(parents=True)
    if complete:
        (path / "current").write_text("{}", encoding="utf-8")
    return Release(path=path, exists=complete)


def build_manager(tmp_path, logger=None):
    logger = logger or DummyLogger()
    return CutoverManager(
        app_root=tmp_path / "live",
        locator=ReleaseLocator(marker_name="current"),
        filesystem_service=FileSystemService(logger=logger, console=Console(record=True)),
        logger=logger,
        console=Console(record=True),
    )


def test_cutover_links_first_release_and_reports_change(tmp_path):
    manager = build_manager(tmp_path)
    release = make_release(tmp_path, "1.2")

    assert manager.cutover(release) is True
    assert (tmp_path / "live").is_symlink()
    assert manager.current_target() == release.path
    assert (tmp_path / "live" / "current").exists()


def test_cutover_to_same_release_is_a_no_op(tmp_path):
    manager = build_manager(tmp_path)
    release = make_release(tmp_path, "1.2")
    manager.cutover(release)
    inode = os.lstat(tmp_path / "live").st_ino

    assert manager.cutover(release) is False
    assert os.lstat(tmp_path / "live").st_ino == inode


def test_cutover_swaps_between_releases_without_leftovers(tmp_path):
    manager = build_manager(tmp_path)
    old = make_release(tmp_path, "1.2")
    new = make_release(tmp_path, "1.3")
    manager.cutover(old)

    assert manager.cutover(new) is True
    assert manager.current_target() == new.path
    assert sorted(entry.name for entry in tmp_path.iterdir()) == ["live", "releases"]


def test_cutover_refuses_incomplete_release(tmp_path):
    manager = build_manager(tmp_path)
    old = make_release(tmp_path, "1.2")
    manager.cutover(old)
    incomplete = make_release(tmp_path, "1.3", complete=False)

    with pytest.raises(CutoverError, match="not fully prepared"):
        manager.cutover(incomplete)

    assert manager.current_target() == old.path


def test_cutover_refuses_to_replace_real_directory(tmp_path):
    (tmp_path / "live").mkdir()
    manager = build_manager(tmp_path)

    with pytest.raises(CutoverError, match="not a symlink"):
        manager.cutover(make_release(tmp_path, "1.2"))

    assert (tmp_path / "live").is_dir()
    assert not (tmp_path / "live").is_symlink()


def test_cutover_warns_when_deploying_an_older_version(tmp_path):
    logger = DummyLogger()
    manager = build_manager(tmp_path, logger=logger)
    manager.cutover(make_release(tmp_path, "2.0"))

    manager.cutover(make_release(tmp_path, "1.9"))

    assert any("newer release 2.0" in message for message in logger.warnings)


def test_current_target_resolves_relative_links(tmp_path):
    release = make_release(tmp_path, "1.2")
    os.symlink("releases/1.2", tmp_path / "live")
    manager = build_manager(tmp_path)

    assert manager.current_target() == release.path
    assert manager.cutover(release) is False


def test_concurrent_readers_never_see_a_missing_live_root(tmp_path):
    manager = build_manager(tmp_path)
    releases = [make_release(tmp_path, version) for version in ("1.0", "1.1")]
    manager.cutover(releases[0])
    valid = {str(release.path) for release in releases}
    observed = []
    stop = threading.Event()

    def reader():
        while not stop.is_set():
            try:
                observed.append(os.readlink(tmp_path / "live"))
            except OSError as exc:
                observed.append(exc)

    thread = threading.Thread(target=reader)
    thread.start()
    try:
        for index in range(200):
            manager.cutover(releases[(index + 1) % 2])
    finally:
        stop.set()
        thread.join()

    assert observed
    assert all(isinstance(entry, str) and entry in valid for entry in observed)
