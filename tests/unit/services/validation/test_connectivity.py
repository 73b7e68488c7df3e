"""Unit tests for the connectivity probe loop."""

import asyncio
from typing import Any

import pytest
from pytest_mock import MockerFixture

from src.services.validation.connectivity import ConnectivityMonitor


@pytest.mark.unit
class TestProbeLoop:
    """Test suite for the background probe."""

    async def test_loop_survives_a_crashed_probe(
        self, mocker: MockerFixture, log_records: list[dict[str, Any]]
    ) -> None:
        """Test that an unexpected probe error is logged and probing goes on."""
        monitor = ConnectivityMonitor(
            mocker.MagicMock(),
            mocker.MagicMock(),
            "20123456789",
            probe_interval_seconds=0,
        )
        probe = mocker.patch.object(
            monitor,
            "probe",
            mocker.AsyncMock(
                side_effect=[RuntimeError("boom"), "online", asyncio.CancelledError()]
            ),
        )

        with pytest.raises(asyncio.CancelledError):
            await monitor.run_probe_loop()

        assert probe.await_count == 3
        errors = [r["message"] for r in log_records if r["level"].name == "ERROR"]
        assert errors == ["Connectivity probe crashed"]
