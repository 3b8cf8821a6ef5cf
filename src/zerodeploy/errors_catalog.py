"""Actionable error catalog for zerodeploy."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "invalid_artifact_format": {
        "what": "Unsupported release artifact: {location}.",
        "next": "Publish the release as `.zip`, `.tar`, `.tar.gz`, `.tgz`, `.tar.bz2` or `.tar.xz`.",
    },
    "insecure_http": {
        "what": "{label} uses insecure HTTP.",
        "next": "Switch to HTTPS or use `--allow-insecure-http` only for trusted endpoints.",
    },
    "missing_artifact": {
        "what": "No release artifact configured for a full release.",
        "next": "Set `artifact_url` (or `--artifact-url`), or pass `--skip-release` for a config-only run.",
    },
    "missing_template_value": {
        "what": "Configuration template `{template}` needs a value that is not set: {detail}.",
        "next": "Add the missing key (database host/name/username/password, crypt_key, base_url) to the config.",
    },
    "deployment_locked": {
        "what": "Another deployment holds the lock {lock_path}.",
        "next": "Wait for it to finish. Remove the lock file only if no zerodeploy process is running.",
    },
    "migration_failed": {
        "what": "Migration step failed: {detail}",
        "next": "The site stays in maintenance with cron disabled. Fix the cause and run zerodeploy again.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
