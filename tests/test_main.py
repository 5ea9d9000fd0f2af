from __future__ import annotations

from config import ReleaseEngineSettings, Settings
from main import build_workflow
from sources import FredProvider, TradingEconomicsProvider


def _settings(tmp_path, **kwargs) -> Settings:
    return Settings(release_engine=ReleaseEngineSettings(state_dir=str(tmp_path), **kwargs))


def test_build_workflow_defaults_to_trading_economics_for_both_roles(tmp_path) -> None:
    workflow = build_workflow(_settings(tmp_path))
    assert isinstance(workflow.calendar, TradingEconomicsProvider)
    assert workflow.reports is workflow.calendar
    assert workflow.delivery is None
    assert workflow.store.path == tmp_path / "state.json"


def test_build_workflow_can_discover_from_fred(tmp_path) -> None:
    workflow = build_workflow(_settings(tmp_path, calendar_provider=" FRED "))
    assert isinstance(workflow.calendar, FredProvider)
    assert isinstance(workflow.reports, TradingEconomicsProvider)


def test_unknown_calendar_provider_falls_back_to_trading_economics() -> None:
    assert ReleaseEngineSettings(calendar_provider="bloomberg").calendar_provider == "tradingeconomics"
