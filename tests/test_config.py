"""Tests for configuration loading, overrides and validation."""

import tomllib
from pathlib import Path

import pytest

from mailtrigger.config import (
    DEFAULT_CHECK_INTERVAL,
    DEFAULT_PORT,
    DEFAULT_RETRY_INTERVAL,
    apply_overrides,
    dump_config,
    effective_check_interval,
    effective_retry_interval,
    init_config,
    load_config,
    validate_config,
)
from mailtrigger.config.template import CONFIG_TEMPLATE
from mailtrigger.errors import (
    ConfigFileError,
    InvalidIMAPPortError,
    InvalidIntervalError,
    MissingIMAPServerError,
    MissingTriggerError,
)

SAMPLE_CONFIG = """\
check-interval-seconds = 60

[imap]
server = "imap.example.com"
username = "me@example.com"
password = "hunter2"

[[monitor]]
mailbox = "INBOX"

[[monitor.triggers]]
subject = "deploy"
command = "make deploy"
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(SAMPLE_CONFIG)
    return path


class TestLoadConfig:
    """Tests for load_config()."""

    def test_file_values_layer_over_defaults(self, config_file):
        config = load_config(config_file)

        assert config["check-interval-seconds"] == 60
        assert config["imap"]["server"] == "imap.example.com"
        # Unset keys keep their defaults
        assert config["imap"]["port"] == DEFAULT_PORT
        assert config["imap"]["use-ssl"] is True
        assert config["imap"]["retry-interval-seconds"] == DEFAULT_RETRY_INTERVAL
        assert config["monitor"][0]["triggers"][0]["command"] == "make deploy"

    def test_missing_default_file_returns_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setattr("mailtrigger.config.CONFIG_FILE", tmp_path / "absent.toml")

        config = load_config()

        assert config["check-interval-seconds"] == DEFAULT_CHECK_INTERVAL
        assert config["imap"]["server"] == ""
        assert config["monitor"] == []

    def test_missing_explicit_file_fails(self, tmp_path):
        with pytest.raises(ConfigFileError, match="not found"):
            load_config(tmp_path / "absent.toml")

    def test_invalid_toml_fails(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[imap\nserver = ")

        with pytest.raises(ConfigFileError, match="invalid TOML"):
            load_config(path)


class TestApplyOverrides:
    """Tests for apply_overrides()."""

    def test_dotted_keys_set_nested_values(self, config_file):
        config = load_config(config_file)

        result = apply_overrides(
            config, {"imap.server": "mail.other.org", "check-interval-seconds": 10}
        )

        assert result["imap"]["server"] == "mail.other.org"
        assert result["check-interval-seconds"] == 10

    def test_none_values_are_skipped(self, config_file):
        config = load_config(config_file)

        result = apply_overrides(config, {"imap.server": None, "imap.use-ssl": False})

        assert result["imap"]["server"] == "imap.example.com"
        assert result["imap"]["use-ssl"] is False

    def test_original_is_not_modified(self, config_file):
        config = load_config(config_file)

        apply_overrides(config, {"imap.port": 143})

        assert config["imap"]["port"] == DEFAULT_PORT


class TestValidateConfig:
    """Tests for validate_config()."""

    def test_valid_config_passes(self, config):
        validate_config(config)

    def test_loaded_sample_passes(self, config_file):
        validate_config(load_config(config_file))

    def test_empty_server(self, config):
        config["imap"]["server"] = ""

        with pytest.raises(MissingIMAPServerError, match="IMAP server must be set"):
            validate_config(config)

    @pytest.mark.parametrize("port", [0, -1, 70000, "993", True])
    def test_bad_port(self, config, port):
        config["imap"]["port"] = port

        with pytest.raises(InvalidIMAPPortError):
            validate_config(config)

    def test_no_monitors(self, config):
        config["monitor"] = []

        with pytest.raises(MissingTriggerError, match="no monitor configurations"):
            validate_config(config)

    def test_empty_mailbox_name(self, config):
        config["monitor"][0]["mailbox"] = ""

        with pytest.raises(MissingTriggerError, match="mailbox is empty"):
            validate_config(config)

    def test_mailbox_without_triggers(self, config):
        del config["monitor"][0]["triggers"]

        with pytest.raises(MissingTriggerError, match="no triggers configured for mailbox INBOX"):
            validate_config(config)

    def test_trigger_without_conditions(self, config):
        config["monitor"][0]["triggers"] = [{"command": "true", "final": True}]

        with pytest.raises(MissingTriggerError, match="no trigger conditions"):
            validate_config(config)

    @pytest.mark.parametrize("value", [0, -5, 1.5, "30"])
    def test_bad_global_interval(self, config, value):
        config["check-interval-seconds"] = value

        with pytest.raises(InvalidIntervalError):
            validate_config(config)

    def test_bad_mailbox_interval(self, config):
        config["monitor"][0]["check-interval-seconds"] = 0

        with pytest.raises(InvalidIntervalError, match="mailbox INBOX"):
            validate_config(config)

    def test_bad_retry_interval(self, config):
        config["imap"]["retry-interval-seconds"] = -1

        with pytest.raises(InvalidIntervalError, match="retry-interval-seconds"):
            validate_config(config)


class TestEffectiveIntervals:
    """Tests for interval resolution."""

    def test_mailbox_value_wins(self, config):
        mailbox = {"mailbox": "Work", "check-interval-seconds": 5}

        assert effective_check_interval(config, mailbox) == 5

    def test_global_value_used(self, config):
        config["check-interval-seconds"] = 45

        assert effective_check_interval(config, {"mailbox": "INBOX"}) == 45

    def test_default_when_nothing_set(self):
        assert effective_check_interval({}, {"mailbox": "INBOX"}) == DEFAULT_CHECK_INTERVAL

    def test_retry_interval(self, config):
        assert effective_retry_interval(config) == DEFAULT_RETRY_INTERVAL

        config["imap"]["retry-interval-seconds"] = 7
        assert effective_retry_interval(config) == 7


class TestInitConfig:
    """Tests for init_config()."""

    def test_creates_template(self, tmp_path):
        path = tmp_path / "sub" / "config.toml"

        assert init_config(path) is True
        assert path.read_text() == CONFIG_TEMPLATE
        assert path.stat().st_mode & 0o777 == 0o600

    def test_does_not_overwrite(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("# mine\n")

        assert init_config(path) is False
        assert path.read_text() == "# mine\n"

    def test_overwrite(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("# mine\n")

        assert init_config(path, overwrite=True) is True
        assert path.read_text() == CONFIG_TEMPLATE

    def test_template_is_a_valid_config(self, tmp_path):
        path = tmp_path / "config.toml"
        init_config(path)

        config = load_config(path)
        validate_config(config)

        trigger = config["monitor"][0]["triggers"][0]
        assert trigger["regex-pattern"] == r"activate switch (\d+)"


class TestDumpConfig:
    """Tests for dump_config()."""

    def test_password_redacted(self, config):
        text = dump_config(config)

        assert "secret" not in text
        assert "***REDACTED***" in text
        assert tomllib.loads(text)["imap"]["server"] == "imap.example.com"

    def test_unset_password_marked(self, config):
        config["imap"]["password"] = ""

        assert "(not set)" in dump_config(config)

    def test_no_redaction(self, config):
        assert "secret" in dump_config(config, redact=False)

    def test_input_not_modified(self, config):
        dump_config(config)

        assert config["imap"]["password"] == "secret"
