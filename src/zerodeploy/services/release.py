"""Release discovery and preparation for zerodeploy."""

import os
import re
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from zerodeploy.constants import CONFIG_FILE_MODE, DEFAULT_CONFIG_TEMPLATE
from zerodeploy.errors import ConfigError, ConfigRenderError
from zerodeploy.models import DeployConfig, Release
from zerodeploy.services.jsonfile import read_json, write_json_atomic

_VERSION_PATTERN = re.compile(r"(?:^|[-_])v?(\d+(?:\.\d+)*(?:[-._+][0-9A-Za-z]+)*)$")
_ARCHIVE_SUFFIX = re.compile(r"\.(zip|tar|tgz|tar\.gz|tar\.bz2|tar\.xz)$", re.IGNORECASE)


def version_from_artifact(artifact_name: str) -> str:
    """Extracts the release version from an artifact name like ``app-1.2.tar.gz``."""
    stem = _ARCHIVE_SUFFIX.sub("", os.path.basename(artifact_name))
    match = _VERSION_PATTERN.search(stem)
    if match:
        return match.group(1)
    raise ConfigError(
        f"Cannot derive a release version from '{artifact_name}'. Set `release_root` explicitly."
    )


class ReleaseLocator:
    """Answers whether a release is already fully materialized on disk."""

    def __init__(self, marker_name: str):
        self.marker_name = marker_name

    def marker_path(self, release_root: Path) -> Path:
        return Path(release_root) / self.marker_name

    def exists(self, release_root: Path) -> bool:
        return self.marker_path(release_root).is_file()

    @staticmethod
    def resolve_release_root(config: DeployConfig, artifact_name: Optional[str] = None) -> Path:
        if config.release_root:
            return Path(config.release_root)
        if not config.releases_dir:
            raise ConfigError("Either `release_root` or `releases_dir` must be configured.")

        source = artifact_name or config.artifact_url
        if not source:
            raise ConfigError("`releases_dir` needs `artifact_url` to name the release directory.")
        return Path(config.releases_dir) / version_from_artifact(source.split("?", 1)[0])


class ReleasePreparer:
    """Unpacks an artifact into its release root and renders release-scoped config."""

    REQUIRED_CONTEXT = ("db.host", "db.name", "db.username", "db.password", "crypt_key")

    def __init__(
        self,
        config: DeployConfig,
        archive_service,
        filesystem_service,
        renderer,
        locator,
        logger,
    ):
        self.config = config
        self.archive_service = archive_service
        self.filesystem_service = filesystem_service
        self.renderer = renderer
        self.locator = locator
        self.logger = logger

    def prepare(self, artifact_path: Path, release_root: Path) -> Release:
        """Extracts, chowns, renders config and finally stamps the completion marker."""
        prepared_at = datetime.now(timezone.utc)
        self.extract(artifact_path, release_root)
        self.fix_ownership(release_root)
        self.render_config(release_root, prepared_at=prepared_at)
        self.mark_complete(release_root, artifact_path, prepared_at=prepared_at)
        return Release(
            path=Path(release_root),
            exists=True,
            user=self.config.user,
            group=self.config.group,
        )

    def extract(self, artifact_path: Path, release_root: Path):
        self.logger.info("Unpacking %s into %s", artifact_path, release_root)
        self.archive_service.extract(str(artifact_path), str(release_root))

    def fix_ownership(self, release_root: Path):
        self.filesystem_service.chown_tree(release_root, self.config.user, self.config.group)

    def build_context(self, prepared_at: datetime) -> Dict[str, Any]:
        context: Dict[str, Any] = dict(self.config.template_vars)
        context.update(
            {
                "db": self.config.database.as_context(),
                "crypt_key": self.config.crypt_key,
                "base_url": self.config.base_url,
                "install": asdict(self.config.install_settings),
                "install_date": prepared_at.strftime("%a, %d %b %Y %H:%M:%S +0000"),
            }
        )
        return context

    def render_config(self, release_root: Path, prepared_at: Optional[datetime] = None) -> Path:
        prepared_at = prepared_at or self.prepared_at(release_root) or datetime.now(timezone.utc)
        template_name = self.config.config_template and Path(self.config.config_template).name
        content = self.renderer.render(
            template_name or DEFAULT_CONFIG_TEMPLATE,
            self.build_context(prepared_at),
            required=self.REQUIRED_CONTEXT,
        )

        destination = Path(release_root) / self.config.config_dest
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            if destination.exists() and destination.read_text(encoding="utf-8") == content:
                self.logger.debug("Configuration %s already up to date", destination)
            else:
                tmp_path = destination.with_name(f".{destination.name}.tmp")
                tmp_path.write_text(content, encoding="utf-8")
                os.chmod(tmp_path, CONFIG_FILE_MODE)
                os.replace(tmp_path, destination)
                self.logger.info("Rendered configuration %s", destination)
            self.filesystem_service.set_owner(destination, self.config.user, self.config.group)
            self.filesystem_service.set_permissions(destination, CONFIG_FILE_MODE)
        except OSError as exc:
            raise ConfigRenderError(f"Could not write configuration {destination}: {exc}") from exc
        return destination

    def prepared_at(self, release_root: Path) -> Optional[datetime]:
        marker = self.locator.marker_path(release_root)
        try:
            payload = read_json(marker)
            return datetime.fromisoformat(payload["prepared_at"])
        except (OSError, ValueError, KeyError, TypeError):
            return None

    def mark_complete(
        self,
        release_root: Path,
        artifact_path: Optional[Path] = None,
        prepared_at: Optional[datetime] = None,
    ):
        marker = self.locator.marker_path(release_root)
        payload = {
            "artifact": os.path.basename(str(artifact_path)) if artifact_path else None,
            "prepared_at": (prepared_at or datetime.now(timezone.utc)).isoformat(),
        }
        write_json_atomic(marker, payload)
        self.filesystem_service.set_owner(marker, self.config.user, self.config.group)
