"""Persisted record of the latest deployment run for an application root."""

import json
import os
from typing import Any, Dict, Optional

from zerodeploy.errors import DeployError
from zerodeploy.services.jsonfile import read_json, utc_now, write_json_atomic


class StateService:
    """Tracks progress of the current run and remembers how the previous one ended.

    Every deployment starts over from the first step. The saved state exists so
    that an operator can see where an interrupted run stopped and whether it left
    the site in maintenance.
    """

    SCHEMA_VERSION = 1

    def __init__(self, state_file: str, logger):
        self.state_file = state_file
        self.logger = logger

    def load(self) -> Optional[Dict[str, Any]]:
        if not os.path.exists(self.state_file):
            return None
        try:
            data = read_json(self.state_file)
        except (OSError, json.JSONDecodeError) as exc:
            raise DeployError(f"Could not read state file '{self.state_file}': {exc}") from exc
        if not isinstance(data, dict):
            raise DeployError(f"State file '{self.state_file}' has invalid format.")
        return data

    def save(self, state: Dict[str, Any]):
        state["schema_version"] = self.SCHEMA_VERSION
        state["updated_at"] = utc_now()
        try:
            write_json_atomic(self.state_file, state)
        except OSError as exc:
            raise DeployError(f"Could not write state file '{self.state_file}': {exc}") from exc

    def start(self, run_id: str, release_root: str, mode: str) -> Dict[str, Any]:
        previous = self.load()
        state = {
            "run_id": run_id,
            "created_at": utc_now(),
            "status": "running",
            "release_root": release_root,
            "mode": mode,
            "completed_steps": [],
            "current_step": None,
            "maintenance": None,
            "restart_pending": bool(previous and previous.get("restart_pending")),
            "last_error": None,
            "previous": self.summarize(previous) if previous else None,
        }
        self.save(state)
        return state

    @staticmethod
    def summarize(state: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "run_id": state.get("run_id"),
            "status": state.get("status"),
            "release_root": state.get("release_root"),
            "failed_step": state.get("current_step"),
            "maintenance": state.get("maintenance"),
            "restart_pending": state.get("restart_pending"),
            "last_error": state.get("last_error"),
        }

    def mark_step_started(self, state: Dict[str, Any], step_name: str):
        state["current_step"] = step_name
        self.save(state)

    def mark_step_completed(self, state: Dict[str, Any], step_name: str):
        if step_name not in state["completed_steps"]:
            state["completed_steps"].append(step_name)
        state["current_step"] = None
        self.save(state)

    def mark_step_failed(self, state: Dict[str, Any], step_name: str, error: str):
        state.update(current_step=step_name, status="failed", last_error=error)
        self.save(state)

    def mark_status(self, state: Dict[str, Any], status: str, error: Optional[str] = None):
        state["status"] = status
        if error:
            state["last_error"] = error
        self.save(state)

    def set_value(self, state: Dict[str, Any], key: str, value: Any):
        state[key] = value
        self.save(state)
