"""Per-run deployment manifest."""

from typing import Any, Dict, Optional

from zerodeploy.services.jsonfile import elapsed_seconds, utc_now, write_json_atomic


class ManifestService:
    """Records what a deployment run did: the release involved and each step's outcome.

    The manifest is informational. Failing to write it never fails a deployment.
    """

    def __init__(self, manifest_file: str, logger):
        self.manifest_file = manifest_file
        self.logger = logger
        self.manifest: Dict[str, Any] = {
            "run_id": None,
            "status": "running",
            "started_at": None,
            "finished_at": None,
            "duration_seconds": None,
            "metadata": {},
            "release": {"path": None, "previous": None, "changed": None, "prepared": None},
            "steps": [],
            "error": None,
        }

    def start_run(self, run_id: str, metadata: Dict[str, Any]):
        self.manifest.update(run_id=run_id, status="running", started_at=utc_now(), metadata=metadata)
        self.write()

    def set_release(self, **values: Any):
        self.manifest["release"].update(values)
        self.write()

    def step_started(self, step_name: str):
        self.manifest["steps"].append({"name": step_name, "status": "running", "started_at": utc_now()})
        self.write()

    def step_finished(self, step_name: str, status: str, error: Optional[str] = None):
        step = self._open_step(step_name)
        if step is None:
            self.logger.warning("Manifest has no running step named '%s'", step_name)
            return
        step["status"] = status
        step["finished_at"] = utc_now()
        step["duration_seconds"] = elapsed_seconds(step["started_at"], step["finished_at"])
        if error:
            step["error"] = error
        self.write()

    def finalize(self, status: str, error: Optional[str] = None):
        finished_at = utc_now()
        self.manifest.update(
            status=status,
            finished_at=finished_at,
            duration_seconds=elapsed_seconds(self.manifest["started_at"], finished_at),
            error=error,
        )
        self.write()

    def _open_step(self, step_name: str) -> Optional[Dict[str, Any]]:
        for step in reversed(self.manifest["steps"]):
            if step["name"] == step_name and step["status"] == "running":
                return step
        return None

    def write(self):
        try:
            write_json_atomic(self.manifest_file, self.manifest)
        except OSError as exc:
            self.logger.warning("Could not write manifest file '%s': %s", self.manifest_file, exc)
