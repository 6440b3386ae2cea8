import logging

import pytest

from kubectl_remediate.config import (
    DEFAULT_PREFERRED_CLASSES,
    Settings,
    load_settings,
    setup_logging,
    validate_settings,
)
from kubectl_remediate.errors import ConfigError


def test_defaults():
    settings = load_settings(environ={})
    assert settings == Settings()
    assert settings.preferred_storage_classes == DEFAULT_PREFERRED_CLASSES
    assert settings.memory_floor == "256Mi"


def test_yaml_then_env_precedence(tmp_path):
    config = tmp_path / "remediate.yaml"
    config.write_text(
        "namespace: ethereum\n"
        "preferred-storage-classes: [gp3, gp2]\n"
        "bind_timeout: 60\n"
        "memory_floor: 512Mi\n"
    )
    settings = load_settings(
        str(config), environ={"KUBECTL_REMEDIATE_MEMORY_FLOOR": "1Gi"}
    )

    assert settings.namespace == "ethereum"
    assert settings.preferred_storage_classes == ("gp3", "gp2")
    assert settings.bind_timeout == 60.0
    assert settings.memory_floor == "1Gi"


def test_config_path_from_env(tmp_path):
    config = tmp_path / "c.yaml"
    config.write_text("namespace: from-file\n")
    settings = load_settings(environ={"KUBECTL_REMEDIATE_CONFIG": str(config)})
    assert settings.namespace == "from-file"


def test_env_list_is_comma_separated():
    settings = load_settings(
        environ={"KUBECTL_REMEDIATE_PREFERRED_STORAGE_CLASSES": "ssd, standard"}
    )
    assert settings.preferred_storage_classes == ("ssd", "standard")


def test_unknown_key_rejected(tmp_path):
    config = tmp_path / "bad.yaml"
    config.write_text("namespcae: typo\n")
    with pytest.raises(ConfigError, match="namespcae"):
        load_settings(str(config), environ={})


def test_missing_and_malformed_files(tmp_path):
    with pytest.raises(ConfigError):
        load_settings(str(tmp_path / "absent.yaml"), environ={})

    bad = tmp_path / "bad.yaml"
    bad.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_settings(str(bad), environ={})


@pytest.mark.parametrize(
    "overrides",
    [
        {"namespace": ""},
        {"delete_timeout": 0},
        {"ready_timeout": -5},
        {"plugin_dir": "/nonexistent/plugins"},
        {"memory_floor": "lots"},
        {"preferred_storage_classes": ("gp2", "")},
        {"manifest_path": "/nonexistent/manifest.yaml"},
    ],
)
def test_validation(overrides):
    with pytest.raises(ConfigError):
        validate_settings(Settings().merged(**overrides))


def test_merged_ignores_none():
    settings = Settings(namespace="a").merged(namespace=None, context="ctx")
    assert settings.namespace == "a"
    assert settings.context == "ctx"


def test_setup_logging_level():
    setup_logging("debug")
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("urllib3").level == logging.WARNING
    setup_logging("WARNING")
    assert logging.getLogger().level == logging.WARNING


def test_log_level_env_is_the_default(monkeypatch):
    assert Settings().log_level is None
    monkeypatch.setenv("LOG_LEVEL", "info")
    setup_logging(Settings().log_level)
    assert logging.getLogger().level == logging.INFO


def test_ready_timeout_from_env():
    settings = load_settings(environ={"KUBECTL_REMEDIATE_READY_TIMEOUT": "900"})
    assert settings.ready_timeout == 900.0
