import io
import json
import logging

import pytest

from authguard.core.config import Settings, settings
from authguard.core.logging import SECURITY, _configure, get_error_logger, get_security_logger
from authguard.main import create_app
from authguard.services.audit import SecurityAuditLog


class TestChannels:
    def test_security_events_go_to_stdout(self, capsys):
        SecurityAuditLog(production=True).successful_login("a@x.com")

        out, err = capsys.readouterr()
        record = json.loads(out.strip().splitlines()[-1])
        assert record["level"] == "security"
        assert record["event"] == "LOGIN_SUCCESS"
        assert err == ""

    def test_warnings_go_to_stdout(self, capsys):
        SecurityAuditLog(production=True).warn("careful", {"password": "x"})

        out, err = capsys.readouterr()
        record = json.loads(out.strip().splitlines()[-1])
        assert record["level"] == "warn"
        assert record["context"] == {"password": "[REDACTED]"}
        assert err == ""

    def test_errors_go_to_stderr(self, capsys):
        SecurityAuditLog(production=True).log_error(Exception("boom"))

        out, err = capsys.readouterr()
        assert out == ""
        record = json.loads(err)
        assert record["message"] == "boom"
        assert "stack" not in record

    def test_development_errors_go_to_stderr_with_stack(self, capsys):
        SecurityAuditLog(production=False).log_error(Exception("boom"))

        out, err = capsys.readouterr()
        assert out == ""
        record = json.loads(err)
        assert "Exception: boom" in record["stack"]

    def test_error_channel_does_not_propagate(self, caplog):
        caplog.set_level(logging.DEBUG)
        assert get_error_logger().propagate is False

        SecurityAuditLog(production=True).log_error(Exception("boom"))
        assert [r for r in caplog.records if r.name == "security.errors"] == []

    def test_loggers_configured_once(self):
        assert len(get_security_logger().handlers) == 1
        assert len(get_error_logger().handlers) == 1


class TestLevels:
    @pytest.fixture
    def fresh_logger(self, request):
        logger = logging.getLogger(f"tests.levels.{request.node.name}")
        yield logger
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)

    @pytest.mark.parametrize("log_level", ["WARNING", "ERROR", "CRITICAL"])
    def test_log_level_cannot_silence_security_records(self, monkeypatch, fresh_logger, log_level):
        monkeypatch.setattr(settings, "LOG_LEVEL", log_level)
        stream = io.StringIO()
        logger = _configure(fresh_logger, logging.StreamHandler(stream), SECURITY)

        logger.log(SECURITY, "audit")
        logger.warning("warn")
        assert stream.getvalue() == "audit\nwarn\n"

    def test_log_level_can_lower_threshold(self, monkeypatch, fresh_logger):
        monkeypatch.setattr(settings, "LOG_LEVEL", "debug")
        logger = _configure(fresh_logger, logging.StreamHandler(io.StringIO()), SECURITY)
        assert logger.level == logging.DEBUG

    def test_unknown_log_level_falls_back_to_info(self, monkeypatch, fresh_logger):
        monkeypatch.setattr(settings, "LOG_LEVEL", "LOUD")
        logger = _configure(fresh_logger, logging.StreamHandler(io.StringIO()), SECURITY)
        assert logger.level == logging.INFO

    def test_configure_adds_single_handler(self, fresh_logger):
        stream = io.StringIO()
        _configure(fresh_logger, logging.StreamHandler(stream), SECURITY)
        _configure(fresh_logger, logging.StreamHandler(io.StringIO()), SECURITY)
        assert len(fresh_logger.handlers) == 1

        fresh_logger.log(SECURITY, '{"level": "security"}')
        assert stream.getvalue() == '{"level": "security"}\n'


class TestDeploymentMode:
    @pytest.mark.parametrize(
        "app_env,expected",
        [
            ("production", True),
            ("prod", True),
            ("PRODUCTION", True),
            ("development", False),
            ("dev", False),
            ("staging", False),
        ],
    )
    def test_is_production(self, monkeypatch, app_env, expected):
        monkeypatch.setenv("APP_ENV", app_env)
        assert Settings(_env_file=None).is_production is expected

    def test_defaults_to_production(self, monkeypatch):
        monkeypatch.delenv("APP_ENV", raising=False)
        assert Settings(_env_file=None).is_production is True

    @pytest.mark.parametrize("app_env,expected", [("development", False), ("production", True)])
    def test_create_app_resolves_flag_once(self, monkeypatch, app_env, expected):
        monkeypatch.setattr(settings, "APP_ENV", app_env)
        app = create_app()
        assert app.state.audit_log.production is expected
