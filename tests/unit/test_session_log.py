"""
Unit tests for session log records.
"""

import json
import logging

import pytest

from lineterm.session import SessionLog, SessionLogger


@pytest.fixture
def entry() -> SessionLog:
    return SessionLog(
        session_id="a1b2c3d4",
        client_ip="10.0.0.7",
        client_port=51812,
        exit_reason="client_closed",
        lines_submitted=3,
        bytes_received=42,
        bytes_sent=118,
        duration_ms=1520.3333,
        timestamp="16/Oct/2026:10:55:36 +0000",
    )


class TestSessionLog:

    def test_to_text(self, entry):
        assert entry.to_text() == (
            "10.0.0.7:51812 [16/Oct/2026:10:55:36 +0000] a1b2c3d4 client_closed "
            "lines=3 in=42 out=118 1520.33ms"
        )

    def test_to_dict_rounds_duration(self, entry):
        data = entry.to_dict()

        assert data["duration_ms"] == 1520.33
        assert data["exit_reason"] == "client_closed"
        assert data["client_port"] == 51812


class TestSessionLogger:

    def test_json_format(self, entry, caplog):
        with caplog.at_level(logging.INFO, logger="lineterm.sessions"):
            SessionLogger(log_format="json").emit(entry)

        assert json.loads(caplog.records[-1].getMessage()) == entry.to_dict()

    def test_text_format(self, entry, caplog):
        with caplog.at_level(logging.INFO, logger="lineterm.sessions"):
            SessionLogger().emit(entry)

        assert caplog.records[-1].getMessage() == entry.to_text()

    def test_invalid_format(self):
        with pytest.raises(ValueError):
            SessionLogger(log_format="xml")
