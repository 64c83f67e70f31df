"""Tests for building the default collector stack."""

import logging

import pytest

from houdini import create_collector
from houdini.adapters.dispatch import BackgroundDispatcher
from houdini.adapters.transport import HttpTransport
from houdini.core.config import DispatchConfig, TelemetryConfig

pytestmark = [pytest.mark.unit, pytest.mark.tier(1)]


class TestCreateCollector:
    def test_builds_background_http_stack(self, config: TelemetryConfig) -> None:
        collector = create_collector(
            config.with_overrides(dispatch=DispatchConfig(max_workers=2)),
            register_atexit=False,
        )
        try:
            dispatcher = collector._dispatcher
            assert isinstance(dispatcher, BackgroundDispatcher)
            assert isinstance(dispatcher._transport, HttpTransport)
            assert dispatcher._transport.dsn == config.dsn
            assert collector.enabled is True
        finally:
            collector.close()

        assert collector.enabled is False

    def test_warns_without_dsn(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="houdini"):
            collector = create_collector(TelemetryConfig(), register_atexit=False)
        collector.close()

        assert "DSN is not configured" in caplog.text
