"""Tests for the command line interface."""

from unittest.mock import Mock

import click
import pytest

from pi_dashboard import __version__
from pi_dashboard.cli import main
from pi_dashboard.core.cli_base import ContextAwareCommand, _CommandTracking
from pi_dashboard.core.context import AppContext, get_current_context, set_context
from pi_dashboard.services import DashboardServices


@pytest.fixture
def cli_services(services, monkeypatch):
    """Route CLI commands to the scripted services without loading configuration."""

    async def fake_initialize(app_ctx, config_file=None, currency=None):
        app_ctx.services['config_manager'] = Mock()
        if currency:
            app_ctx.currency.set(currency)

    def fake_from_config(config_manager, currency_context=None):
        services.price_service.currency_context = currency_context
        return services

    monkeypatch.setattr("pi_dashboard.cli.initialize_app", fake_initialize)
    monkeypatch.setattr(DashboardServices, "from_config", staticmethod(fake_from_config))
    return services


class TestMainGroup:
    """Test the top-level group."""

    def test_help_without_command(self, cli_runner):
        result = cli_runner.invoke(main, [])

        assert result.exit_code == 0
        for command in ("price", "predict", "news", "calculate", "serve", "cache"):
            assert command in result.output

    def test_version(self, cli_runner, cli_services):
        result = cli_runner.invoke(main, ['version'])

        assert result.exit_code == 0
        assert f"v{__version__}" in result.output

    def test_version_verbose(self, cli_runner, cli_services):
        result = cli_runner.invoke(main, ['--currency', 'gbp', '-v', 'version'])

        assert result.exit_code == 0
        assert "Currency: GBP" in result.output

    def test_unknown_currency(self, cli_runner):
        result = cli_runner.invoke(main, ['--currency', 'BTC', 'price'])

        assert result.exit_code == 2

    def test_missing_config_file(self, cli_runner, temp_dir):
        result = cli_runner.invoke(main, ['--config', str(temp_dir / "none.yaml"), 'price'])

        assert result.exit_code == 2


class TestMarketCommands:
    """Test price, history and predict."""

    def test_price(self, cli_runner, cli_services):
        result = cli_runner.invoke(main, ['price'])

        assert result.exit_code == 0
        assert "$0.500000" in result.output
        assert "Source: okx" in result.output

    def test_price_json_in_other_currency(self, cli_runner, cli_services, primary_client):
        result = cli_runner.invoke(main, ['--currency', 'EUR', 'price', '--format', 'json'])

        assert result.exit_code == 0
        assert '"currency": "EUR"' in result.output
        assert primary_client.price_calls == ["EUR"]

    def test_price_fallback_warning(self, cli_runner, cli_services, primary_client, fallback_client):
        from pi_dashboard.data.errors import UpstreamUnavailable

        primary_client.price_error = UpstreamUnavailable("down")
        fallback_client.price_error = UpstreamUnavailable("down")

        result = cli_runner.invoke(main, ['price'])

        assert result.exit_code == 0
        assert "Source: fallback" in result.output

    def test_history(self, cli_runner, cli_services):
        result = cli_runner.invoke(main, ['history', '--limit', '5', '--format', 'json'])

        assert result.exit_code == 0
        assert result.output.count('"timestamp"') == 30

    def test_predict(self, cli_runner, cli_services):
        result = cli_runner.invoke(main, ['predict', '--timeframe', '1hour', '--seed', '3'])

        assert result.exit_code == 0
        assert "Prediction (1hour)" in result.output
        assert "up" in result.output

    def test_predict_export(self, cli_runner, cli_services, temp_dir):
        target = temp_dir / "chart.html"

        result = cli_runner.invoke(main, ['predict', '--export', str(target), '--format', 'json'])

        assert result.exit_code == 0
        assert target.exists()

    def test_predict_export_unsupported(self, cli_runner, cli_services, temp_dir):
        result = cli_runner.invoke(main, ['predict', '--export', str(temp_dir / "chart.txt")])

        assert result.exit_code == 1
        assert "Unsupported export format" in result.output


class TestOtherCommands:
    """Test news, stats, calculate and cache."""

    def test_news_without_token(self, cli_runner, cli_services):
        result = cli_runner.invoke(main, ['news', '--category', 'announcements'])

        assert result.exit_code == 0
        assert "Twitter Bearer Token is not configured" in result.output
        assert "Pi Network Blog" in result.output

    def test_stats(self, cli_runner):
        result = cli_runner.invoke(main, ['stats', '--seed', '1', '--format', 'json'])

        assert result.exit_code == 0
        assert '"activeUsers"' in result.output

    def test_calculate(self, cli_runner, cli_services):
        result = cli_runner.invoke(main, ['calculate', '1000'])

        assert result.exit_code == 0
        assert "$500.00" in result.output

    def test_calculate_presets(self, cli_runner, cli_services):
        result = cli_runner.invoke(main, ['calculate'])

        assert result.exit_code == 0
        assert "$50,000" in result.output

    def test_calculate_invalid(self, cli_runner, cli_services):
        result = cli_runner.invoke(main, ['calculate', '12abc'])

        assert result.exit_code == 2
        assert "not a non-negative decimal number" in result.output

    def test_cache_status(self, cli_runner, cli_services):
        result = cli_runner.invoke(main, ['cache', 'status'])

        assert result.exit_code == 0
        assert "news" in result.output

    def test_cache_clear(self, cli_runner, cli_services):
        result = cli_runner.invoke(main, ['cache', 'clear', '--yes'])

        assert result.exit_code == 0
        assert "Cleared 0 cached payloads" in result.output


class TestCommandTracking:
    """Test the command stack kept on the application context."""

    def test_tracking_requires_a_context_source(self):
        class BareCommand(_CommandTracking, click.Command):
            pass

        with pytest.raises(TypeError):
            BareCommand("bare")

    def test_command_runs_in_its_own_context(self):
        parent = AppContext()
        parent.push_command("main")
        set_context(parent)
        seen = []

        command = ContextAwareCommand(
            "price", callback=lambda: seen.append(get_current_context().command_path))
        try:
            command.main([], prog_name="price", standalone_mode=False)
        finally:
            set_context(AppContext())

        assert seen == ["main price"]
        assert parent.command_stack == ["main"]
