"""Tests for the optional Sentry helpers."""

from unittest.mock import MagicMock

import pytest

from battery_runner import sentry_config


@pytest.fixture
def fake_sdk(monkeypatch):
    sdk = MagicMock(name="sentry_sdk")
    monkeypatch.setattr(sentry_config, "sentry_sdk", sdk)
    monkeypatch.setattr(sentry_config, "_sentry_initialized", True)
    return sdk


class TestSpans:
    def test_disabled_yields_none(self, monkeypatch):
        monkeypatch.setattr(sentry_config, "_sentry_initialized", False)
        with sentry_config.create_stage_span("upsert") as span:
            assert span is None

    def test_stage_span_uses_name(self, fake_sdk):
        with sentry_config.create_stage_span("ensure_schema") as span:
            assert span is fake_sdk.start_span.return_value.__enter__.return_value
        fake_sdk.start_span.assert_called_once_with(op="stage", name="ensure_schema")

    def test_init_without_dsn_is_noop(self, monkeypatch):
        monkeypatch.setattr(sentry_config, "_sentry_initialized", False)
        assert sentry_config.init_sentry(None) is False
