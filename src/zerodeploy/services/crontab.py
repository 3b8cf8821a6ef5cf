"""User crontab management for scheduled application jobs."""

from typing import Dict, Iterable, List, Optional, Tuple

from zerodeploy.constants import CRON_MARKER_PREFIX
from zerodeploy.errors import CommandError
from zerodeploy.models import ScheduledJob


class CrontabService:
    """Adds, enables and disables named entries in a user's crontab.

    Each managed job occupies two lines: a ``# zerodeploy: <name>`` marker and
    the job line itself. Disabled jobs keep their line, prefixed with ``#``.
    Lines the service does not manage are preserved untouched.
    """

    def __init__(
        self,
        command_runner,
        logger,
        user: Optional[str] = None,
        invoker: Optional[str] = None,
        responder: Optional[str] = None,
    ):
        self.command_runner = command_runner
        self.logger = logger
        self.user = user
        self.invoker = invoker
        self.responder = responder

    def _base_cmd(self) -> List[str]:
        cmd = ["crontab"]
        if self.user:
            cmd += ["-u", self.user]
        return cmd

    def read(self) -> List[str]:
        result = self.command_runner.run(self._base_cmd() + ["-l"], check=False, capture_output=True)
        if result.returncode == 0:
            return result.stdout.splitlines()

        stderr = (result.stderr or "").lower()
        if "no crontab" in stderr:
            return []
        raise CommandError(
            f"Could not read crontab{f' for {self.user}' if self.user else ''}: {result.stderr.strip()}",
            returncode=result.returncode,
        )

    def write(self, lines: List[str]):
        content = "\n".join(lines) + "\n" if lines else ""
        self.command_runner.run(self._base_cmd() + ["-"], input_text=content, capture_output=True)

    def render_line(self, job: ScheduledJob, enabled: bool) -> str:
        parts = [job.schedule]
        if self.invoker:
            parts.append(self.invoker)
        parts.append(job.command)
        line = " ".join(parts)
        if self.responder:
            line = f"{line}; {self.responder}"
        return line if enabled else f"#{line}"

    @staticmethod
    def parse(lines: List[str]) -> Tuple[List[Tuple[Optional[str], str]], Dict[str, str]]:
        """Splits crontab lines into ordered (name, line) entries and a name->job line map."""
        entries: List[Tuple[Optional[str], str]] = []
        managed: Dict[str, str] = {}
        index = 0
        while index < len(lines):
            line = lines[index]
            if line.startswith(CRON_MARKER_PREFIX):
                name = line[len(CRON_MARKER_PREFIX):].strip()
                job_line = lines[index + 1] if index + 1 < len(lines) else ""
                entries.append((name, job_line))
                managed[name] = job_line
                index += 2
                continue
            entries.append((None, line))
            index += 1
        return entries, managed

    def set_jobs_enabled(self, jobs: Iterable[ScheduledJob], enabled: bool) -> bool:
        """Ensures every job is present with the requested state. Returns whether the crontab changed."""
        jobs = list(jobs)
        if not jobs:
            return False

        current = self.read()
        entries, _ = self.parse(current)
        desired = {job.name: self.render_line(job, enabled and job.enabled) for job in jobs}

        updated: List[str] = []
        seen = set()
        for name, line in entries:
            if name is None:
                updated.append(line)
                continue
            updated.append(f"{CRON_MARKER_PREFIX}{name}")
            updated.append(desired.get(name, line))
            seen.add(name)

        for job in jobs:
            if job.name not in seen:
                updated.append(f"{CRON_MARKER_PREFIX}{job.name}")
                updated.append(desired[job.name])

        if updated == current:
            self.logger.debug("Crontab already has %s job(s) %s", len(jobs), "enabled" if enabled else "disabled")
            return False

        self.write(updated)
        self.logger.info("%s %s cron job(s)", "Enabled" if enabled else "Disabled", len(jobs))
        return True

    def jobs_enabled(self, jobs: Iterable[ScheduledJob]) -> Dict[str, Optional[bool]]:
        """Reports each job's current state; ``None`` when the job is not installed."""
        _, managed = self.parse(self.read())
        report: Dict[str, Optional[bool]] = {}
        for job in jobs:
            line = managed.get(job.name)
            report[job.name] = None if line is None else not line.lstrip().startswith("#")
        return report
