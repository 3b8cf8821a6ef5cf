import logging
import os

import click
from rich.logging import RichHandler

from .constants import DEFAULT_CONFIG_FILE
from .core import ReleaseDeployer
from .errors import DeployError
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML deployment file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option(
    "--app-root",
    required=False,
    help="Live application path (the symlink that gets swapped).",
)
@click.option(
    "--artifact-url",
    required=False,
    help="URL or local path of the release archive (.zip/.tar.gz/.tgz/...).",
)
@click.option("--release-root", required=False, help="Directory the release is unpacked into.")
@click.option(
    "--skip-release",
    is_flag=True,
    default=None,
    help="Config-only run: re-render configuration and re-run post-deploy steps "
    "for an existing release.",
)
@click.option(
    "--install",
    is_flag=True,
    default=None,
    help="Run the destructive first-time install before upgrading the database.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option(
    "--allow-insecure-http",
    is_flag=True,
    default=None,
    help="Allow HTTP artifact URLs (insecure). By default only HTTPS URLs are accepted.",
)
@click.option(
    "--artifact-sha256",
    required=False,
    help="Expected SHA-256 checksum of the downloaded artifact.",
)
@click.option(
    "--state-file",
    required=False,
    type=click.Path(),
    help="Path to the run state file (default: <app_root>.zerodeploy-state.json).",
)
@click.option(
    "--download-timeout",
    required=False,
    type=float,
    default=None,
    help="HTTP download timeout in seconds.",
)
@click.option(
    "--retry-count",
    required=False,
    type=int,
    default=None,
    help="Number of retries for transient download failures.",
)
@click.option(
    "--retry-backoff-seconds",
    required=False,
    type=float,
    default=None,
    help="Base backoff in seconds between download retries.",
)
@click.option(
    "--restart-timeout",
    required=False,
    type=float,
    default=None,
    help="Timeout in seconds for the runtime service restart.",
)
def main(
    config,
    app_root,
    artifact_url,
    release_root,
    skip_release,
    install,
    verbose,
    log_file,
    allow_insecure_http,
    artifact_sha256,
    state_file,
    download_timeout,
    retry_count,
    retry_backoff_seconds,
    restart_timeout,
):
    """Deploy a release with an atomic symlink cutover and a maintenance window."""
    logger = logging.getLogger("zerodeploy")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except DeployError as exc:
        raise click.ClickException(str(exc)) from exc

    overrides = {
        "app_root": app_root,
        "artifact_url": artifact_url,
        "release_root": release_root,
        "skip_release": skip_release,
        "install": install,
        "verbose": verbose,
        "allow_insecure_http": allow_insecure_http,
        "artifact_sha256": artifact_sha256,
        "state_file": state_file,
        "download_timeout": download_timeout,
        "retry_count": retry_count,
        "retry_backoff_seconds": retry_backoff_seconds,
        "restart_timeout": restart_timeout,
    }
    values = dict(config_values)
    for key, cli_value in overrides.items():
        resolved = _resolve_option(cli_value, config_values, key)
        if resolved is not None:
            values[key] = resolved

    verbose = bool(values.get("verbose", False))
    log_file = _resolve_option(log_file, config_values, "log_file")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    try:
        deploy_config = config_loader.build(values)
        deployer = ReleaseDeployer(deploy_config)
    except DeployError as exc:
        raise click.ClickException(str(exc)) from exc

    raise SystemExit(deployer.run())


if __name__ == "__main__":
    main()
