"""
Unit tests for GateConfig and CLI argument handling.
"""

import pytest

from healthgate.config import GateConfig
from healthgate.__main__ import config_from_args


class TestGateConfig:
    """Tests for GateConfig."""

    def test_defaults(self):
        config = GateConfig()
        assert config.bind == ("0.0.0.0", 1580)
        assert config.check_uri == "http://localhost:8080/healthz"
        assert config.check_match == r"(?i)^ok\b"
        assert config.check_interval == 5.0
        assert config.idle_timeout == 3.0
        assert config.accept_timeout == 1.0
        assert config.buffer_size == 4096
        config.validate()

    def test_from_env(self):
        config = GateConfig.from_env({
            "HEALTHGATE_BIND_ADDRESS": "127.0.0.1",
            "HEALTHGATE_BIND_PORT": "9000",
            "HEALTHGATE_CHECK_URI": "http://db/ping",
            "HEALTHGATE_CHECK_INTERVAL": "2.5",
            "HEALTHGATE_SYSLOG_ENABLE": "true",
            "HEALTHGATE_LOG_LEVEL": "debug",
        })
        assert config.bind == ("127.0.0.1", 9000)
        assert config.check_uri == "http://db/ping"
        assert config.check_interval == 2.5
        assert config.syslog_enabled is True
        assert config.log_level == "debug"

    def test_from_env_empty_uses_defaults(self):
        assert GateConfig.from_env({}) == GateConfig()

    @pytest.mark.parametrize("changes", [
        {"bind_port": 70000},
        {"bind_port": -1},
        {"bind_address": ""},
        {"idle_timeout": 0},
        {"accept_timeout": -1.0},
        {"check_interval": 0},
        {"check_timeout": 0},
        {"buffer_size": 0},
        {"backlog": 0},
        {"check_match": "(unclosed"},
        {"syslog_protocol": "sctp"},
        {"syslog_address": "no-port"},
        {"log_level": "loud"},
    ])
    def test_validate_rejects(self, changes):
        with pytest.raises(ValueError):
            GateConfig(**changes).validate()

    def test_syslog_target(self):
        assert GateConfig().syslog_target() is None
        assert GateConfig(syslog_address="10.0.0.1:514").syslog_target() == ("10.0.0.1", 514)
        assert GateConfig(syslog_address="[::1]:514").syslog_target() == ("::1", 514)


class TestConfigFromArgs:
    """Tests for CLI parsing."""

    def test_flags(self, monkeypatch):
        monkeypatch.delenv("HEALTHGATE_BIND_PORT", raising=False)
        config = config_from_args([
            "--bind-address", "127.0.0.1",
            "--bind-port", "1581",
            "--check-uri", "http://backend/healthz",
            "--check-match", ".*",
            "--syslog-enable",
            "--syslog-addr", "logs:514",
            "--syslog-proto", "tcp",
            "--log-level", "trace",
        ])
        assert config.bind == ("127.0.0.1", 1581)
        assert config.check_uri == "http://backend/healthz"
        assert config.check_match == ".*"
        assert config.syslog_enabled is True
        assert config.syslog_target() == ("logs", 514)
        assert config.syslog_protocol == "tcp"
        assert config.log_level == "trace"

    def test_flag_overrides_environment(self, monkeypatch):
        monkeypatch.setenv("HEALTHGATE_BIND_PORT", "2000")
        assert config_from_args([]).bind_port == 2000
        assert config_from_args(["--bind-port", "3000"]).bind_port == 3000

    def test_invalid_config_exits_with_usage_error(self):
        with pytest.raises(SystemExit) as exc_info:
            config_from_args(["--check-match", "(unclosed"])
        assert exc_info.value.code == 2
