"""
Tests for adapter construction.
"""

import pytest

from skintrader.integrations.bitskins_api import BitSkinsAPIClient
from skintrader.integrations.errors import ConfigurationError
from skintrader.integrations.factory import create_adapter


class TestCreateAdapter:
    """Test cases for create_adapter."""

    def test_bitskins_adapter_gets_its_rate_budget(self, settings):
        adapter = create_adapter(settings)

        assert isinstance(adapter, BitSkinsAPIClient)
        assert adapter.rate_limiter.capacities == {"global": 5, "market": 1}

    def test_missing_credentials(self, settings_factory):
        settings = settings_factory(MARKETPLACE="dmarket", DMARKET_API_KEY="only-public")

        with pytest.raises(ConfigurationError):
            create_adapter(settings)
