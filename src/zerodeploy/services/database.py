"""Direct SQL enforcement of baseline configuration rows."""

import re
from typing import Any, Iterable, List

from zerodeploy.errors import CommandError, ConfigError
from zerodeploy.models import ConfigRow, DatabaseSettings

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def unescape_template_braces(value: str) -> str:
    """Turns ``[[``/``]]`` back into ``{{``/``}}`` so values can carry template syntax through YAML."""
    return value.replace("[[", "{{").replace("]]", "}}")


def sql_literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    text = unescape_template_braces(str(value))
    escaped = text.replace("\\", "\\\\").replace("'", "\\'").replace("\0", "\\0")
    return f"'{escaped}'"


class DatabaseService:
    """Forces configuration rows to their declared values through the MySQL client.

    Every row is written with upsert semantics keyed on (scope, scope_id, path):
    a manual change to an enforced key is overwritten on each deployment.
    """

    def __init__(
        self,
        command_runner,
        logger,
        settings: DatabaseSettings,
        mysql_binary: str = "mysql",
        table: str = "core_config_data",
    ):
        if not _IDENTIFIER.match(table):
            raise ConfigError(f"Invalid configuration table name: {table}")
        self.command_runner = command_runner
        self.logger = logger
        self.settings = settings
        self.mysql_binary = mysql_binary
        self.table = table

    def client_cmd(self) -> List[str]:
        cmd = [self.mysql_binary, "--batch"]
        if self.settings.host:
            cmd.append(f"--host={self.settings.host}")
        if self.settings.username:
            cmd.append(f"--user={self.settings.username}")
        if self.settings.name:
            cmd.append(f"--database={self.settings.name}")
        return cmd

    def build_statement(self, row: ConfigRow) -> str:
        return (
            f"INSERT INTO {self.table} (scope, scope_id, path, value) "
            f"VALUES ({sql_literal(row.scope)}, {int(row.scope_id)}, "
            f"{sql_literal(row.path)}, {sql_literal(row.value)}) "
            "ON DUPLICATE KEY UPDATE value = VALUES(value);"
        )

    def execute(self, sql: str):
        env = {"MYSQL_PWD": self.settings.password} if self.settings.password else None
        self.command_runner.run(
            self.client_cmd(),
            input_text=sql + "\n",
            capture_output=True,
            env=env,
            redact=[self.settings.password or ""],
        )

    def enforce(self, rows: Iterable[ConfigRow]) -> List[str]:
        """Applies each row on its own. Returns the paths that could not be written."""
        failed: List[str] = []
        for row in rows:
            try:
                self.execute(self.build_statement(row))
                self.logger.debug("Enforced %s [%s/%s]", row.path, row.scope, row.scope_id)
            except CommandError as exc:
                self.logger.warning("Could not enforce %s [%s/%s]: %s", row.path, row.scope, row.scope_id, exc)
                failed.append(row.path)
        return failed
