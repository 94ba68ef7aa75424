import pytest

from debupgrader.errors import UpgraderError
from debupgrader.services.config_loader import ConfigLoader


def test_config_loader_loads_yaml_mapping(tmp_path):
    config_file = tmp_path / ".debupgrader.yml"
    config_file.write_text(
        "mode: 1\nauto_confirm: true\nbackup_root: /srv/backups\n",
        encoding="utf-8",
    )

    loaded = ConfigLoader().load(str(config_file))

    assert loaded["mode"] == 1
    assert loaded["auto_confirm"] is True
    assert loaded["backup_root"] == "/srv/backups"


def test_config_loader_rejects_unknown_keys(tmp_path):
    config_file = tmp_path / ".debupgrader.yml"
    config_file.write_text("unknown_key: true\n", encoding="utf-8")

    with pytest.raises(UpgraderError, match="Unknown configuration keys"):
        ConfigLoader().load(str(config_file))


def test_config_loader_rejects_non_mapping_root(tmp_path):
    config_file = tmp_path / ".debupgrader.yml"
    config_file.write_text("- mode\n- 1\n", encoding="utf-8")

    with pytest.raises(UpgraderError, match="YAML mapping"):
        ConfigLoader().load(str(config_file))


def test_config_loader_finds_local_default(tmp_path):
    config_file = tmp_path / ".debupgrader.yml"
    config_file.write_text("mode: 4\n", encoding="utf-8")

    assert ConfigLoader().find_default(str(tmp_path)) == str(config_file)
