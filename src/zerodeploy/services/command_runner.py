"""Subprocess execution service for zerodeploy."""

import getpass
import os
import subprocess
from typing import Dict, Iterable, List, Optional

from zerodeploy.errors import CommandError


class CommandRunner:
    """Runs external commands with consistent error handling.

    Output and error messages pass through ``redact`` so credentials given on a
    command line or echoed by a tool never reach the logs.
    """

    def __init__(self, logger):
        self.logger = logger

    @staticmethod
    def as_user(cmd: List[str], user: Optional[str]) -> List[str]:
        """Wraps ``cmd`` with ``sudo -u`` when ``user`` is not the invoking user."""
        if not user or user == getpass.getuser():
            return list(cmd)
        return ["sudo", "-u", user] + list(cmd)

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
        input_text: Optional[str] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        redact: Iterable[str] = (),
    ) -> subprocess.CompletedProcess:
        secrets = [secret for secret in redact if secret]
        cmd_str = self._redact(" ".join(cmd), secrets)
        self.logger.debug("Executing: %s", cmd_str)

        try:
            result = subprocess.run(
                cmd,
                text=True,
                capture_output=capture_output,
                timeout=timeout,
                input=input_text,
                cwd=cwd,
                env={**os.environ, **env} if env else None,
            )
        except FileNotFoundError as exc:
            raise CommandError(
                f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandError(f"Command timed out after {timeout}s: {cmd_str}") from exc
        except OSError as exc:
            raise CommandError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", self._redact(result.stdout.strip(), secrets))

        if result.returncode == 0:
            return result

        message = self._failure_message(result, cmd_str, capture_output, secrets)
        if check:
            raise CommandError(message, returncode=result.returncode)
        self.logger.warning(message)
        return result

    def _failure_message(self, result, cmd_str: str, capture_output: bool, secrets: List[str]) -> str:
        message = f"Command failed ({result.returncode}): {cmd_str}"
        stderr = (result.stderr or "").strip() if capture_output else ""
        if stderr:
            message = f"{message}\n{self._redact(stderr, secrets)}"
        return message

    @staticmethod
    def _redact(text: str, secrets: Iterable[str]) -> str:
        for secret in secrets:
            text = text.replace(secret, "******")
        return text
