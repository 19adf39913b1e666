import json

import pytest
from click.testing import CliRunner

from conftest import FakeCollector
from effectiveness_audit import __version__, cli as cli_module
from effectiveness_audit.cli import cli, main, score_color


ENV_KEYS = (
    "OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GOOGLE_API_KEY", "GEMINI_API_KEY",
    "PAGESPEED_API_KEY", "EFFECTIVENESS_LLM_PROVIDER", "EFFECTIVENESS_LLM_MODEL",
    "EFFECTIVENESS_CONFIG_PATH", "EFFECTIVENESS_LOG_LEVEL", "EFFECTIVENESS_INSIGHTS_MAX_RETRIES",
    "EFFECTIVENESS_RETRY_DELAY", "EFFECTIVENESS_RATE_LIMIT_DELAY",
)


@pytest.fixture
def offline(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    collector = FakeCollector(failures={"https://down.example"})
    monkeypatch.setattr(cli_module, "HttpDataCollector", lambda: collector)
    monkeypatch.setattr(cli_module, "PageSpeedClient", lambda api_key=None: None)
    return collector


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_without_command():
    result = CliRunner().invoke(cli, [])
    assert result.exit_code == 0
    assert "scan" in result.output


def test_scan_json(offline):
    result = CliRunner().invoke(cli, [
        "scan", "acme.example", "-c", "rival.example", "--json", "--log-level", "CRITICAL",
    ])

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["status"] == "completed"
    assert data["client"]["url"] == "https://acme.example"
    assert len(data["client"]["criterion_results"]) == 8
    assert data["competitors"][0]["url"] == "https://rival.example"
    assert data["insights"]["fallback"] is True
    assert data["progress"]["overall_percent"] == 100
    assert offline.calls == ["https://acme.example", "https://rival.example"]


def test_scan_without_insights(offline):
    result = CliRunner().invoke(cli, ["scan", "acme.example", "--json", "--no-insights", "--log-level", "CRITICAL"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["insights"] is None


def test_scan_table_output(offline):
    result = CliRunner().invoke(cli, ["scan", "acme.example", "-v", "--log-level", "CRITICAL"])

    assert result.exit_code == 0, result.output
    assert "Website Effectiveness" in result.output
    assert "brand story" in result.output
    assert "Insights" in result.output


def test_scan_failure_exits_non_zero(offline):
    result = CliRunner().invoke(cli, ["scan", "down.example", "--json", "--log-level", "CRITICAL"])

    assert result.exit_code == 1
    data = json.loads(result.stdout)
    assert data["status"] == "failed"
    assert "Data collection failed" in data["error"]


def test_unknown_provider_is_a_usage_error(offline, monkeypatch):
    monkeypatch.setenv("EFFECTIVENESS_LLM_PROVIDER", "nope")
    result = CliRunner().invoke(cli, ["scan", "acme.example", "--log-level", "CRITICAL"])
    assert result.exit_code == 2


def test_invalid_settings_are_a_usage_error(offline, monkeypatch):
    monkeypatch.setenv("EFFECTIVENESS_INSIGHTS_MAX_RETRIES", "0")
    result = CliRunner().invoke(cli, ["scan", "acme.example", "--log-level", "CRITICAL"])
    assert result.exit_code == 2
    assert "EFFECTIVENESS_INSIGHTS_MAX_RETRIES" in result.output


def test_health_without_provider(offline):
    result = CliRunner().invoke(cli, ["health", "--json"])

    assert result.exit_code == 1
    assert json.loads(result.stdout)["status"] == "unhealthy"


def test_score_color():
    assert score_color(9.0) == "green"
    assert score_color(6.5) == "yellow"
    assert score_color(4.0) == "orange1"
    assert score_color(1.0) == "red"


@pytest.mark.parametrize("argv, expected", [
    (["effectiveness-audit", "acme.example"], ["effectiveness-audit", "scan", "acme.example"]),
    (["effectiveness-audit", "localhost"], ["effectiveness-audit", "scan", "localhost"]),
    (["effectiveness-audit", "health"], ["effectiveness-audit", "health"]),
    (["effectiveness-audit", "--version"], ["effectiveness-audit", "--version"]),
])
def test_main_url_shortcut(monkeypatch, argv, expected):
    seen = []
    monkeypatch.setattr("sys.argv", list(argv))
    monkeypatch.setattr(cli_module, "cli", lambda: seen.append(list(cli_module.sys.argv)))

    main()
    assert seen == [expected]
