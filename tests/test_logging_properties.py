"""Property-based tests for logging functionality.

Log entries rendered by ``configure_logging`` must carry a timestamp, the
severity level, the event name and any keyword context.
"""

import json
import logging
from datetime import datetime
from pathlib import Path

import structlog
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from taxonomy_sync.models.config import LoggingConfig
from taxonomy_sync.utils.logging_config import (
    REDACTED,
    SENSITIVE_KEYS,
    configure_logging,
    configure_logging_from_config,
    get_logger,
    redact_credentials,
)

context_keys = st.text(
    min_size=1,
    max_size=20,
    alphabet=st.characters(whitelist_categories=("Ll",), max_codepoint=122),
).filter(
    lambda key: key not in {"event", "level", "timestamp", "logger", "filename", "lineno", "func_name"}
    and key not in SENSITIVE_KEYS
)


def last_entry(output: str) -> dict:
    lines = [line for line in output.strip().splitlines() if line.strip()]
    return json.loads(lines[-1])


@given(
    log_level=st.sampled_from(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    error_message=st.text(min_size=1, max_size=200),
)
@settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
def test_log_entries_contain_required_fields(capsys, log_level: str, error_message: str) -> None:
    capsys.readouterr()
    configure_logging(log_level="DEBUG", json_logs=True)
    log = get_logger("taxonomy_sync.tests")

    getattr(log, log_level.lower())("image_sideload_failed", error=error_message)

    entry = last_entry(capsys.readouterr().out)
    assert entry["event"] == "image_sideload_failed"
    assert entry["level"].upper() == log_level
    assert entry["error"] == error_message
    datetime.fromisoformat(entry["timestamp"].replace("Z", "+00:00"))


@given(
    context_key=context_keys,
    context_value=st.one_of(
        st.text(max_size=100),
        st.integers(min_value=-(2**53), max_value=2**53),
        st.booleans(),
    ),
)
@settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
def test_keyword_context_is_preserved(capsys, context_key: str, context_value) -> None:
    capsys.readouterr()
    configure_logging(log_level="INFO", json_logs=True)
    log = get_logger("taxonomy_sync.tests")

    log.error("term_sync_failed", **{context_key: context_value})

    entry = last_entry(capsys.readouterr().out)
    assert entry[context_key] == context_value


def test_level_filtering(capsys) -> None:
    configure_logging(log_level="WARNING", json_logs=True)
    log = get_logger("taxonomy_sync.tests")

    log.info("attribute_sync_started")
    log.warning("sync_already_running")

    lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
    assert len(lines) == 1
    assert json.loads(lines[0])["event"] == "sync_already_running"


def test_callsite_parameters_are_added(capsys) -> None:
    configure_logging(log_level="INFO", json_logs=True)

    structlog.stdlib.get_logger("taxonomy_sync.tests").info("provider_starting", port=8000)

    entry = last_entry(capsys.readouterr().out)
    assert entry["filename"] == "test_logging_properties.py"
    assert entry["func_name"] == "test_callsite_parameters_are_added"
    assert entry["port"] == 8000


def test_console_renderer(capsys) -> None:
    configure_logging(log_level="INFO", json_logs=False)

    get_logger("taxonomy_sync.tests").info("sync_summary", message="Sync complete.")

    output = capsys.readouterr().out
    assert "sync_summary" in output
    assert "Sync complete." in output


def test_log_file_receives_entries(tmp_path: Path, capsys) -> None:
    log_file = tmp_path / "sync.log"
    configure_logging(log_level="INFO", json_logs=True, log_file=str(log_file))

    get_logger("taxonomy_sync.tests").info("attribute_sync_completed", attributes_created=3)
    for handler in logging.root.handlers:
        handler.flush()

    entry = last_entry(log_file.read_text())
    assert entry["event"] == "attribute_sync_completed"
    assert entry["attributes_created"] == 3


@given(
    key=st.sampled_from(sorted(SENSITIVE_KEYS)),
    secret=st.text(min_size=1, max_size=40).filter(lambda s: s != REDACTED),
)
@settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
def test_credentials_are_redacted(capsys, key: str, secret: str) -> None:
    capsys.readouterr()
    configure_logging(log_level="INFO", json_logs=True)

    get_logger("taxonomy_sync.tests").info("provider_transport_initialized", username="sync-bot", **{key: secret})

    entry = last_entry(capsys.readouterr().out)
    assert entry[key] == REDACTED
    assert entry["username"] == "sync-bot"


def test_empty_credentials_stay_visible() -> None:
    event = redact_credentials(None, "info", {"event": "client_config", "app_password": ""})

    assert event["app_password"] == ""


def test_configure_from_logging_section(tmp_path: Path, capsys) -> None:
    log_file = tmp_path / "client.log"
    configure_logging_from_config(LoggingConfig(log_level="ERROR", json_logs=True, log_file=str(log_file)))

    log = get_logger("taxonomy_sync.tests")
    log.warning("sync_already_running")
    log.error("attribute_fetch_failed", error="status code 401")
    for handler in logging.root.handlers:
        handler.flush()

    entry = last_entry(log_file.read_text())
    assert entry["event"] == "attribute_fetch_failed"
    assert len([line for line in log_file.read_text().splitlines() if line.strip()]) == 1


def test_http_client_loggers_are_quieted() -> None:
    configure_logging(log_level="DEBUG", json_logs=True)
    assert logging.getLogger("urllib3").getEffectiveLevel() == logging.WARNING

    configure_logging(log_level="ERROR", json_logs=True)
    assert logging.getLogger("urllib3").getEffectiveLevel() == logging.ERROR
