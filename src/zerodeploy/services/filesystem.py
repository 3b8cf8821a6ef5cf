"""Filesystem helpers for zerodeploy."""

import grp
import logging
import os
import pwd
import shutil
from pathlib import Path
from typing import Optional, Union

from rich.console import Console

PathLike = Union[str, Path]


class FileSystemService:
    """Encapsulates file and directory side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def set_permissions(self, path: PathLike, mode: int):
        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def set_owner(self, path: PathLike, user: Optional[str], group: Optional[str]):
        if not user and not group:
            return
        shutil.chown(path, user=user, group=group)

    def chown_tree(self, root: PathLike, user: Optional[str], group: Optional[str]):
        """Recursively hands ``root`` to ``user``:``group`` without following links."""
        if not user and not group:
            return

        self.logger.debug("Setting ownership of %s to %s:%s", root, user, group)
        self.lchown(root, user, group)
        for current_root, dirs, files in os.walk(root):
            for name in dirs + files:
                self.lchown(os.path.join(current_root, name), user, group)

    def ensure_path(
        self,
        path: PathLike,
        kind: str = "directory",
        user: Optional[str] = None,
        group: Optional[str] = None,
        mode: Optional[int] = None,
    ):
        target = Path(path)
        if kind == "directory":
            target.mkdir(parents=True, exist_ok=True)
        elif kind == "file":
            target.parent.mkdir(parents=True, exist_ok=True)
            target.touch(exist_ok=True)
        else:
            raise ValueError(f"Unsupported path type: {kind}")

        self.set_owner(target, user, group)
        if mode is not None:
            self.set_permissions(target, mode)

    def remove_path(self, path: PathLike) -> bool:
        """Removes whatever occupies ``path``. Returns whether anything was removed."""
        target = Path(path)
        if target.is_symlink() or target.is_file():
            target.unlink()
            return True
        if target.is_dir():
            shutil.rmtree(target)
            return True
        if os.path.lexists(target):
            os.remove(target)
            return True
        return False

    @staticmethod
    def lchown(path: PathLike, user: Optional[str], group: Optional[str]):
        uid = pwd.getpwnam(user).pw_uid if user else -1
        gid = grp.getgrnam(group).gr_gid if group else -1
        os.lchown(path, uid, gid)
