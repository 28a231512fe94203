"""
Tests for structured logging helpers.
"""

from skintrader.utils.logging import (
    CorrelationIDProcessor,
    ServiceInfoProcessor,
    clear_correlation_id,
    set_correlation_id,
)


class TestCorrelationID:
    """Test cases for correlation ID handling."""

    def teardown_method(self):
        clear_correlation_id()

    def test_generated_when_not_given(self):
        correlation_id = set_correlation_id()

        event = CorrelationIDProcessor()(None, "info", {"event": "x"})

        assert correlation_id
        assert event["correlation_id"] == correlation_id

    def test_processor_adds_id(self):
        set_correlation_id("listed:123")

        event = CorrelationIDProcessor()(None, "info", {"event": "Buying listing"})

        assert event["correlation_id"] == "listed:123"

    def test_processor_skips_when_cleared(self):
        clear_correlation_id()

        event = CorrelationIDProcessor()(None, "info", {"event": "x"})

        assert "correlation_id" not in event


class TestServiceInfoProcessor:
    def test_adds_service_and_marketplace(self):
        event = ServiceInfoProcessor("dmarket")(None, "info", {"event": "x"})

        assert event["service"] == "skintrader"
        assert event["marketplace"] == "dmarket"
