"""Archive extraction helpers for zerodeploy."""

import os
import shutil
import tarfile
import zipfile
from pathlib import Path

from zerodeploy.constants import ARCHIVE_EXTENSIONS
from zerodeploy.errors import ExtractError


class ArchiveService:
    """Encapsulates safe archive extraction logic."""

    def is_within_dir(self, base_dir: Path, candidate: Path) -> bool:
        try:
            return os.path.commonpath([str(base_dir), str(candidate)]) == str(base_dir)
        except ValueError:
            return False

    def is_supported(self, archive_path: str) -> bool:
        return str(archive_path).lower().endswith(ARCHIVE_EXTENSIONS)

    def extract(self, archive_path: str, destination_dir: str):
        if not os.path.isfile(archive_path):
            raise ExtractError(f"Release artifact not found: {archive_path}")

        os.makedirs(destination_dir, exist_ok=True)
        if str(archive_path).lower().endswith(".zip"):
            self.safe_extract_zip(archive_path, destination_dir)
        elif self.is_supported(archive_path):
            self.safe_extract_tar(archive_path, destination_dir)
        else:
            supported = ", ".join(ARCHIVE_EXTENSIONS)
            raise ExtractError(
                f"Unsupported release artifact format: {archive_path}. Supported formats: {supported}."
            )

    def safe_extract_zip(self, zip_path: str, destination_dir: str):
        base = Path(destination_dir).resolve()

        try:
            with zipfile.ZipFile(zip_path, "r") as zip_ref:
                for member in zip_ref.infolist():
                    normalized_name = member.filename.replace("\\", "/")
                    target_path = (base / normalized_name).resolve()

                    if not self.is_within_dir(base, target_path):
                        raise ExtractError(
                            f"Unsafe ZIP entry detected: `{member.filename}`. "
                            "Archive extraction aborted to prevent path traversal."
                        )

                    file_type = (member.external_attr >> 16) & 0o170000
                    if file_type == 0o120000:
                        raise ExtractError(
                            f"Unsafe ZIP entry detected: `{member.filename}` is a symbolic link."
                        )

                for member in zip_ref.infolist():
                    normalized_name = member.filename.replace("\\", "/")
                    target_path = (base / normalized_name).resolve()

                    if member.is_dir() or normalized_name.endswith("/"):
                        target_path.mkdir(parents=True, exist_ok=True)
                        continue

                    target_path.parent.mkdir(parents=True, exist_ok=True)
                    with zip_ref.open(member, "r") as src, open(target_path, "wb") as dst:
                        shutil.copyfileobj(src, dst)
        except zipfile.BadZipFile as exc:
            raise ExtractError(f"Invalid ZIP archive: {zip_path}") from exc

    def safe_extract_tar(self, tar_path: str, destination_dir: str):
        base = Path(destination_dir).resolve()

        try:
            with tarfile.open(tar_path, "r:*") as tar_ref:
                members = tar_ref.getmembers()
                for member in members:
                    target_path = (base / member.name).resolve()
                    if not self.is_within_dir(base, target_path):
                        raise ExtractError(
                            f"Unsafe TAR entry detected: `{member.name}`. "
                            "Archive extraction aborted to prevent path traversal."
                        )

                    if member.issym() or member.islnk():
                        link_target = (target_path.parent / member.linkname).resolve()
                        if member.islnk():
                            link_target = (base / member.linkname).resolve()
                        if os.path.isabs(member.linkname) or not self.is_within_dir(base, link_target):
                            raise ExtractError(
                                f"Unsafe TAR entry detected: `{member.name}` links outside the release."
                            )

                    if member.isdev() or member.isfifo():
                        raise ExtractError(
                            f"Unsafe TAR entry detected: `{member.name}` is a device or FIFO."
                        )

                for member in members:
                    self._extract_member(tar_ref, member, base)
        except tarfile.TarError as exc:
            raise ExtractError(f"Invalid TAR archive: {tar_path}: {exc}") from exc
        except OSError as exc:
            raise ExtractError(f"Could not extract {tar_path}: {exc}") from exc

    @staticmethod
    def _extract_member(tar_ref: tarfile.TarFile, member: tarfile.TarInfo, base: Path):
        target_path = base / member.name

        if member.isdir():
            target_path.mkdir(parents=True, exist_ok=True)
            return

        target_path.parent.mkdir(parents=True, exist_ok=True)
        if os.path.lexists(target_path) and (target_path.is_symlink() or not target_path.is_dir()):
            target_path.unlink()

        if member.issym():
            os.symlink(member.linkname, target_path)
            return

        if member.islnk():
            os.link(base / member.linkname, target_path)
            return

        source = tar_ref.extractfile(member)
        if source is None:
            return
        with source, open(target_path, "wb") as dst:
            shutil.copyfileobj(source, dst)
        os.chmod(target_path, member.mode & 0o777)
