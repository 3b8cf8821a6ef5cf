"""Restart of the application runtime after a cutover."""

from typing import List, Optional

from zerodeploy.errors import CommandError, ServiceReloadError


class ServiceReloader:
    """Restarts the runtime process only when the live release changed."""

    def __init__(
        self,
        command_runner,
        logger,
        console,
        service_name: Optional[str] = None,
        restart_command: Optional[List[str]] = None,
        timeout: Optional[float] = None,
    ):
        self.command_runner = command_runner
        self.logger = logger
        self.console = console
        self.service_name = service_name
        self.restart_command = restart_command
        self.timeout = timeout

    def command(self) -> Optional[List[str]]:
        if self.restart_command:
            return list(self.restart_command)
        if self.service_name:
            return ["systemctl", "restart", self.service_name]
        return None

    def reload_if_changed(self, changed: bool) -> bool:
        """Returns whether a restart was issued."""
        if not changed:
            self.logger.info("Live release unchanged; skipping runtime restart")
            return False

        cmd = self.command()
        if cmd is None:
            raise ServiceReloadError("No runtime service configured: set `service_name` or `restart_command`.")

        self.console.print(f"[blue]Restarting {self.service_name or cmd[0]}...[/blue]")
        try:
            self.command_runner.run(cmd, capture_output=True, timeout=self.timeout)
        except CommandError as exc:
            raise ServiceReloadError(f"Runtime restart failed: {exc}") from exc
        self.logger.info("Runtime restarted")
        return True
