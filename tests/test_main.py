"""
Tests for the command line entry point.
"""

import pytest

from skintrader.config.settings import get_settings
from skintrader.main import build_parser, load_settings, run


class TestCommandLine:
    """Test cases for the skintrader CLI."""

    def test_parser_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_parser_accepts_overrides(self):
        args = build_parser().parse_args(["--marketplace", "dmarket", "--log-level", "debug", "sync"])

        assert args.command == "sync"
        assert args.marketplace == "dmarket"

    def test_load_settings_applies_overrides(self, monkeypatch):
        monkeypatch.setenv("BITSKINS_API_KEY", "env-key")
        get_settings.cache_clear()
        args = build_parser().parse_args(["--log-level", "debug", "stats"])

        settings = load_settings(args)

        assert settings.LOG_LEVEL == "DEBUG"
        get_settings.cache_clear()

    @pytest.mark.asyncio
    async def test_missing_credentials_exit_code(self, settings_factory):
        settings = settings_factory(BITSKINS_API_KEY=None)

        assert await run(settings, "stats") == 1

    @pytest.mark.asyncio
    async def test_stats_command_on_empty_database(self, settings, capsys):
        assert await run(settings, "stats") == 0

        output = capsys.readouterr().out
        assert '"classes_analyzed": 0' in output
