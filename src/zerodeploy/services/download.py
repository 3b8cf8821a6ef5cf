"""Artifact retrieval with progress reporting, retries and checksum validation."""

import hashlib
import os
import shutil
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional
from urllib.parse import urlparse

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from zerodeploy.errors import FetchError


class ArtifactFetcher:
    """Downloads or copies a release artifact into a scratch workspace."""

    WORKSPACE_PREFIX = "zerodeploy-release."

    def __init__(
        self,
        validation_service,
        logger,
        console,
        requests_module,
        timeout: float = 60.0,
        retry_count: int = 0,
        retry_backoff_seconds: float = 0.0,
        sleep=time.sleep,
    ):
        self.validation_service = validation_service
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.timeout = timeout
        self.retry_count = max(0, retry_count)
        self.retry_backoff_seconds = retry_backoff_seconds
        self.sleep = sleep

    @contextmanager
    def workspace(self) -> Iterator[Path]:
        """Yields a fresh, uniquely named scratch directory and always removes it."""
        path = Path(tempfile.mkdtemp(prefix=self.WORKSPACE_PREFIX))
        self.logger.debug("Created scratch workspace %s", path)
        try:
            yield path
        finally:
            shutil.rmtree(path, ignore_errors=True)
            self.logger.debug("Removed scratch workspace %s", path)

    @staticmethod
    def artifact_name(source_ref: str) -> str:
        path = urlparse(source_ref).path if "://" in source_ref else source_ref
        return os.path.basename(path.rstrip("/"))

    def fetch(
        self,
        source_ref: str,
        workspace: Path,
        expected_sha256: Optional[str] = None,
    ) -> Path:
        filename = self.artifact_name(source_ref)
        if not filename:
            raise FetchError(f"Cannot determine artifact file name from '{source_ref}'.")

        target_path = Path(workspace) / filename

        if self.validation_service.is_url(source_ref):
            self.download_file(
                source_ref,
                str(target_path),
                description=f"Downloading {filename}...",
                expected_sha256=expected_sha256,
            )
            return target_path

        if not os.path.isfile(source_ref):
            raise FetchError(f"Release artifact not found: {source_ref}")

        self.logger.info("Copying local artifact %s to %s", source_ref, target_path)
        try:
            shutil.copy2(source_ref, target_path)
        except OSError as exc:
            raise FetchError(f"Could not copy artifact {source_ref}: {exc}") from exc
        return target_path

    def download_file(
        self,
        url: str,
        dest_path: str,
        description: str = "Downloading...",
        expected_sha256: Optional[str] = None,
    ):
        self.logger.info("Downloading %s to %s", url, dest_path)
        self.validation_service.enforce_https_policy(url, description, self.logger, self.console)

        max_attempts = self.retry_count + 1
        for attempt in range(1, max_attempts + 1):
            try:
                self._download_once(url, dest_path, description)
                break
            except self.requests.RequestException as exc:
                self._remove_partial(dest_path)
                if attempt >= max_attempts:
                    raise FetchError(
                        f"Download failed for {url} after {attempt} attempt(s): {exc}"
                    ) from exc
                delay = self.retry_backoff_seconds * (2 ** (attempt - 1))
                self.logger.warning(
                    "Download attempt %s/%s failed: %s. Retrying in %.1fs.",
                    attempt,
                    max_attempts,
                    exc,
                    delay,
                )
                self.sleep(delay)
            except OSError as exc:
                self._remove_partial(dest_path)
                raise FetchError(f"Could not write {dest_path}: {exc}") from exc

        if expected_sha256:
            downloaded_sha = self._sha256(dest_path)
            if downloaded_sha != expected_sha256:
                self._remove_partial(dest_path)
                raise FetchError(
                    f"Checksum mismatch for {url}. Expected {expected_sha256}, "
                    f"but got {downloaded_sha}."
                )

    def _download_once(self, url: str, dest_path: str, description: str):
        with self.requests.get(url, stream=True, timeout=self.timeout) as response:
            response.raise_for_status()
            total_size = int(response.headers.get("Content-Length", 0))

            os.makedirs(os.path.dirname(dest_path), exist_ok=True)

            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                "•",
                TimeElapsedColumn(),
                console=self.console,
            ) as progress:
                task = progress.add_task(f"[cyan]{description}", total=total_size or None)
                with open(dest_path, "wb") as file_obj:
                    for chunk in response.iter_content(chunk_size=8192):
                        if not chunk:
                            continue
                        file_obj.write(chunk)
                        progress.update(task, advance=len(chunk))

    @staticmethod
    def _sha256(path: str) -> str:
        hasher = hashlib.sha256()
        with open(path, "rb") as file_obj:
            for chunk in iter(lambda: file_obj.read(65536), b""):
                hasher.update(chunk)
        return hasher.hexdigest()

    @staticmethod
    def _remove_partial(path: str):
        try:
            os.remove(path)
        except OSError:
            pass
