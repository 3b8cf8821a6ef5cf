from pathlib import Path

import pytest

from zerodeploy.errors import ConfigError
from zerodeploy.models import ReleaseMode
from zerodeploy.services.config_loader import ConfigLoader

FULL_CONFIG = """\
app_root: /var/www/shop
releases_dir: /var/www/releases
artifact_url: https://builds.example.com/shop-1.2.tar.gz
user: www-data
group: www-data
service_name: php8.2-fpm
retry_count: 2
database:
  host: db.internal
  name: shop
  username: shop
  password: secret
shared_resources:
  - src: /srv/shared/media
    dest: pub/media
    mode: "0775"
  - src: /srv/shared/config.local.php
    dest: app/etc/config.local.php
    type: file
cron_jobs:
  - name: magento cron
    job: bin/magento cron:run
  - name: sitemap
    command: bin/magento sitemap:generate
    minute: 0
    hour: 3
config_rows:
  - path: web/secure/base_url
    value: "https://shop.example.com/"
  - path: design/head/default_title
    value: "[[ store_name ]]"
    scope: websites
    scope_id: 1
upgrade_commands:
  - setup:upgrade --keep-generated
  - setup:di:compile
restart_command: sudo systemctl reload php8.2-fpm
"""


def write_config(tmp_path, content):
    config_file = tmp_path / ".zerodeploy.yml"
    config_file.write_text(content, encoding="utf-8")
    return str(config_file)


def test_config_loader_builds_full_deploy_config(tmp_path):
    loader = ConfigLoader()

    config = loader.build(loader.load(write_config(tmp_path, FULL_CONFIG)))

    assert config.app_root == Path("/var/www/shop")
    assert config.releases_dir == Path("/var/www/releases")
    assert config.mode is ReleaseMode.FULL_RELEASE
    assert config.retry_count == 2
    assert config.database.password == "secret"
    assert config.shared_resources[0].mode == 0o775
    assert config.shared_resources[1].type == "file"
    assert config.cron_jobs[0].command == "bin/magento cron:run"
    assert config.cron_jobs[0].schedule == "* * * * *"
    assert config.cron_jobs[1].schedule == "0 3 * * *"
    assert config.config_rows[1].scope_id == 1
    assert config.upgrade_commands == ("setup:upgrade --keep-generated", "setup:di:compile")
    assert config.restart_command == ["sudo", "systemctl", "reload", "php8.2-fpm"]


def test_config_loader_rejects_unknown_keys(tmp_path):
    loader = ConfigLoader()

    with pytest.raises(ConfigError, match="Unknown configuration keys"):
        loader.load(write_config(tmp_path, "unknown_key: true\n"))


def test_config_loader_requires_app_root_and_release_location():
    loader = ConfigLoader()

    with pytest.raises(ConfigError, match="app_root"):
        loader.build({"release_root": "/srv/r", "service_name": "fpm"})
    with pytest.raises(ConfigError, match="releases_dir"):
        loader.build({"app_root": "/srv/live", "service_name": "fpm"})


def test_config_loader_requires_a_restart_target():
    with pytest.raises(ConfigError, match="service_name"):
        ConfigLoader().build({"app_root": "/srv/live", "release_root": "/srv/r"})


def test_config_loader_coerces_cli_strings_and_skip_release():
    config = ConfigLoader().build(
        {
            "app_root": "/srv/live",
            "release_root": "/srv/r",
            "service_name": "fpm",
            "skip_release": "yes",
            "download_timeout": "15",
        }
    )

    assert config.mode is ReleaseMode.CONFIG_ONLY
    assert config.download_timeout == 15.0


def test_config_loader_rejects_bad_values():
    loader = ConfigLoader()
    base = {"app_root": "/srv/live", "release_root": "/srv/r", "service_name": "fpm"}

    with pytest.raises(ConfigError, match="install"):
        loader.build(dict(base, install="maybe"))
    with pytest.raises(ConfigError, match="Duplicate cron job"):
        loader.build(dict(base, cron_jobs=[{"name": "a", "command": "x"}, {"name": "a", "command": "y"}]))
    with pytest.raises(ConfigError, match="Invalid file mode"):
        loader.build(dict(base, shared_resources=[{"src": "/a", "dest": "b", "mode": "rwx"}]))
    with pytest.raises(ConfigError, match="Unknown keys in `database`"):
        loader.build(dict(base, database={"hostname": "db"}))


def test_parse_mode_accepts_common_spellings():
    assert ConfigLoader.parse_mode("755") == 0o755
    assert ConfigLoader.parse_mode("0775") == 0o775
    assert ConfigLoader.parse_mode("0o750") == 0o750
    assert ConfigLoader.parse_mode("440") == 0o440
    assert ConfigLoader.parse_mode("400") == 0o400


@pytest.mark.parametrize("mode", ["440", "400", "755", "0644"])
def test_unquoted_yaml_modes_are_refused(tmp_path, mode):
    loader = ConfigLoader()
    content = (
        "app_root: /srv/live\n"
        "release_root: /srv/releases/1.2\n"
        "shared_resources:\n"
        "  - src: /srv/shared/secrets\n"
        "    dest: app/etc/secrets\n"
        f"    mode: {mode}\n"
    )

    with pytest.raises(ConfigError, match="Quote it"):
        loader.build(loader.load(write_config(tmp_path, content)))
