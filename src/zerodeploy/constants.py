"""Shared defaults for zerodeploy."""

CONFIG_FILE_MODE = 0o600

DEFAULT_CONFIG_FILE = ".zerodeploy.yml"
DEFAULT_RELEASE_MARKER = "current"
DEFAULT_MAINTENANCE_FLAG = "var/.maintenance.flag"
DEFAULT_CONFIG_DEST = "app/etc/env.php"
DEFAULT_CONFIG_TEMPLATE = "env.php.j2"
DEFAULT_PURGE_PATHS = ("var/cache", "generated")
DEFAULT_UPGRADE_COMMANDS = ("setup:upgrade --keep-generated",)

DEFAULT_PHP_BINARY = "/usr/bin/php"
DEFAULT_APP_CLI = "bin/magento"
DEFAULT_MYSQL_BINARY = "mysql"
DEFAULT_CONFIG_TABLE = "core_config_data"

DEFAULT_CRON_SCHEDULE = "* * * * *"
CRON_MARKER_PREFIX = "# zerodeploy: "

ARCHIVE_EXTENSIONS = (".zip", ".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tar.xz")

DEFAULT_DOWNLOAD_TIMEOUT = 60.0
DEFAULT_RETRY_COUNT = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 2.0
DEFAULT_RESTART_TIMEOUT = 120.0
