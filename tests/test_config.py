"""Tests for settings and logging configuration."""
import structlog

from deslack.config import DeslackSettings, configure_logging, log_error


def test_defaults(monkeypatch):
    for key in ("DESLACK_LOG_LEVEL", "DESLACK_SERVER__EVICT_ON_LEAVE", "DESLACK_TRANSPORT__LISTEN_PORT"):
        monkeypatch.delenv(key, raising=False)
    settings = DeslackSettings(_env_file=None)

    assert settings.log_level == "INFO"
    assert settings.transport.listen_port == 8337
    assert settings.transport.max_message_size == 1024 * 1024
    assert settings.server.evict_on_leave is False
    assert settings.server.api_port == 8335


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DESLACK_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("DESLACK_TRANSPORT__LISTEN_PORT", "9000")
    monkeypatch.setenv("DESLACK_SERVER__EVICT_ON_LEAVE", "true")
    settings = DeslackSettings(_env_file=None)

    assert settings.log_level == "DEBUG"
    assert settings.transport.listen_port == 9000
    assert settings.server.evict_on_leave is True


def test_log_error_records_type_and_context():
    configure_logging("DEBUG", json_logs=False)
    with structlog.testing.capture_logs() as logs:
        log_error(structlog.get_logger(), ValueError("bad frame"), {"peer": "p1"})

    assert logs == [{
        "event": "error_occurred",
        "log_level": "error",
        "error_type": "ValueError",
        "error_message": "bad frame",
        "peer": "p1",
    }]
