"""Reconciliation of persistent resources linked into the live release."""

import os
from pathlib import Path
from typing import Iterable, Optional

from zerodeploy.errors import LinkReconcileError
from zerodeploy.models import SharedResource


class SharedResourceLinker:
    """Keeps every declared destination a fresh symlink to its shared source."""

    def __init__(self, app_root: Path, filesystem_service, logger, user=None, group=None):
        self.app_root = Path(app_root)
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.user = user
        self.group = group

    def destination(self, resource: SharedResource) -> Path:
        dest = Path(resource.dest)
        return dest if dest.is_absolute() else self.app_root / dest

    def reconcile(self, declarations: Iterable[SharedResource]):
        count = 0
        for resource in declarations:
            self.reconcile_one(resource)
            count += 1
        if count:
            self.logger.info("Reconciled %s shared resource(s)", count)

    def reconcile_one(self, resource: SharedResource):
        source = Path(resource.src)
        dest = self.destination(resource)

        self.ensure_source(resource)
        self._ensure_parent(dest)

        try:
            if self.filesystem_service.remove_path(dest):
                self.logger.debug("Removed existing entry at %s", dest)
        except OSError as exc:
            raise LinkReconcileError(f"Could not remove {dest}: {exc}") from exc

        try:
            os.symlink(str(source), dest)
            self.filesystem_service.lchown(dest, self._owner(resource.owner), self._group(resource.group))
        except (OSError, LookupError) as exc:
            raise LinkReconcileError(f"Could not link {dest} -> {source}: {exc}") from exc
        self.logger.debug("Linked %s -> %s", dest, source)

    def ensure_source(self, resource: SharedResource):
        try:
            self.filesystem_service.ensure_path(
                resource.src,
                kind=resource.type,
                user=self._owner(resource.owner),
                group=self._group(resource.group),
                mode=resource.mode,
            )
        except (OSError, LookupError, ValueError) as exc:
            raise LinkReconcileError(f"Could not prepare shared source {resource.src}: {exc}") from exc

    def _ensure_parent(self, dest: Path):
        # Some destinations sit on mounts that exist already; failure here is tolerated.
        try:
            self.filesystem_service.ensure_path(dest.parent, kind="directory", user=self.user, group=self.group)
        except (OSError, LookupError) as exc:
            self.logger.debug("Could not create %s, continuing: %s", dest.parent, exc)

    def _owner(self, owner: Optional[str]) -> Optional[str]:
        return owner or self.user

    def _group(self, group: Optional[str]) -> Optional[str]:
        return group or self.group
