"""Tests for the settle-all fan-out helper."""

import asyncio

import pytest

from lab_catalog.core.fanout import Outcome, gather_settled


async def _succeed(value, delay=0.0):
    await asyncio.sleep(delay)
    return value


async def _fail(message, delay=0.0):
    await asyncio.sleep(delay)
    raise ValueError(message)


class TestGatherSettled:
    def test_gather_settled_records_value_or_error_per_slot_in_input_order(self):
        """Each slot gets its own outcome; order follows the input, not completion."""
        # Arrange
        operations = [
            ("slow", _succeed("a", delay=0.02)),
            ("broken", _fail("boom")),
            ("fast", _succeed("c")),
        ]

        # Act
        outcomes = asyncio.run(gather_settled(operations))

        # Assert
        assert [outcome.key for outcome in outcomes] == ["slow", "broken", "fast"]
        assert outcomes[0] == Outcome(key="slow", value="a")
        assert outcomes[1].ok is False
        assert str(outcomes[1].error) == "boom"
        assert outcomes[2].value == "c"

    def test_gather_settled_failure_does_not_cancel_siblings(self):
        """A fast failure leaves slower siblings running to completion."""
        finished = []

        async def slow_marker():
            await asyncio.sleep(0.02)
            finished.append("slow")
            return "done"

        outcomes = asyncio.run(gather_settled([("fail", _fail("early")), ("slow", slow_marker())]))

        assert finished == ["slow"]
        assert outcomes[1].ok
        assert outcomes[1].value == "done"

    def test_gather_settled_empty_input_returns_empty_list(self):
        assert asyncio.run(gather_settled([])) == []

    def test_gather_settled_propagates_cancellation(self):
        """Cancellation is not an operation failure and is never recorded."""

        async def cancelled():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(gather_settled([("cancelled", cancelled())]))
