"""Atomic repointing of the live application root."""

import os
import uuid
from pathlib import Path
from typing import Optional

from packaging.version import InvalidVersion, Version

from zerodeploy.errors import CutoverError
from zerodeploy.models import Release


class CutoverManager:
    """Owns the live symlink and swaps it with a single ``rename(2)``."""

    def __init__(
        self,
        app_root: Path,
        locator,
        filesystem_service,
        logger,
        console,
        user: Optional[str] = None,
        group: Optional[str] = None,
    ):
        self.app_root = Path(app_root)
        self.locator = locator
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console
        self.user = user
        self.group = group

    def current_target(self) -> Optional[Path]:
        if not self.app_root.is_symlink():
            return None
        target = Path(os.readlink(self.app_root))
        if not target.is_absolute():
            target = self.app_root.parent / target
        return Path(os.path.normpath(target))

    def cutover(self, release: Release) -> bool:
        """Points the live root at ``release``. Returns whether the target changed."""
        new_target = Path(os.path.normpath(Path(release.path).absolute()))

        if not self.locator.exists(new_target):
            raise CutoverError(
                f"Refusing to cut over to {new_target}: the release is not fully prepared."
            )

        if os.path.lexists(self.app_root) and not self.app_root.is_symlink():
            raise CutoverError(
                f"Live application root {self.app_root} exists and is not a symlink. "
                "Move it aside before the first deployment."
            )

        previous = self.current_target()
        if previous == new_target:
            self.logger.info("Live root %s already points at %s", self.app_root, new_target)
            return False

        self._log_transition(previous, new_target)
        self.swap(new_target)
        self.console.print(f"[green]Live root now points at {new_target}[/green]")
        return True

    def swap(self, target: Path):
        tmp_link = self.app_root.with_name(f".{self.app_root.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            self.app_root.parent.mkdir(parents=True, exist_ok=True)
            os.symlink(str(target), tmp_link)
            if self.user or self.group:
                self.filesystem_service.lchown(tmp_link, self.user, self.group)
            os.replace(tmp_link, self.app_root)
        except (OSError, LookupError) as exc:
            if os.path.lexists(tmp_link):
                os.unlink(tmp_link)
            raise CutoverError(f"Could not repoint {self.app_root} to {target}: {exc}") from exc

    def _log_transition(self, previous: Optional[Path], new_target: Path):
        if previous is None:
            self.logger.info("Linking %s to first release %s", self.app_root, new_target)
            return

        try:
            if Version(new_target.name) < Version(previous.name):
                self.logger.warning("Deploying %s over newer release %s", new_target.name, previous.name)
                return
        except InvalidVersion:
            pass
        self.logger.info("Switching %s from %s to %s", self.app_root, previous, new_target)
