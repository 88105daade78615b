import json

from agentusage.models import AggregatedResults, PercentKind, ProviderName, UsageData, UsageEntry
from agentusage.report import error_to_json, results_to_json, usage_to_json


def _codex() -> UsageData:
    return UsageData(
        ProviderName.CODEX,
        [
            UsageEntry.from_percent("5h limit", 97, PercentKind.LEFT, reset_info="resets 11:07", reset_minutes=67),
            UsageEntry.from_percent("Weekly limit", 20, PercentKind.LEFT, reset_info="resets soon"),
        ],
    )


def test_results_shape_with_warning() -> None:
    results = AggregatedResults()
    results.add_success(_codex())
    results.add_failure(ProviderName.GEMINI, "gemini CLI not found.", 2)

    payload = json.loads(results_to_json(results))
    assert payload["success"] is True
    five_hour = payload["results"]["codex"]["5h limit"]
    assert five_hour == {
        "percent_used": 3,
        "percent_remaining": 97,
        "reset_info": "resets 11:07",
        "reset_minutes": 67,
    }
    assert "reset_minutes" not in payload["results"]["codex"]["Weekly limit"]
    assert payload["warnings"] == {"gemini": "gemini CLI not found."}


def test_all_failed_keeps_results_and_warnings() -> None:
    results = AggregatedResults()
    results.add_failure(ProviderName.CLAUDE, "Timed out after 5s waiting for claude usage data", 3)
    results.add_failure(ProviderName.GEMINI, "gemini CLI not found.", 2)
    payload = json.loads(results_to_json(results))
    assert payload == {
        "success": False,
        "results": {},
        "warnings": {
            "claude": "Timed out after 5s waiting for claude usage data",
            "gemini": "gemini CLI not found.",
        },
        "error": "All providers failed.",
    }


def test_extras_are_included_when_present() -> None:
    data = UsageData(
        ProviderName.GEMINI,
        [UsageEntry.from_percent("gemini-2.5-pro", 90, PercentKind.LEFT, requests="4", spent=None)],
    )
    entry = json.loads(usage_to_json(data))["results"]["gemini"]["gemini-2.5-pro"]
    assert entry["requests"] == "4"
    assert "spent" not in entry


def test_duplicate_labels_do_not_collide() -> None:
    data = UsageData(
        ProviderName.CODEX,
        [UsageEntry.from_percent("5h limit", 90, PercentKind.LEFT), UsageEntry.from_percent("5h limit", 80, PercentKind.LEFT)],
    )
    assert list(json.loads(usage_to_json(data))["results"]["codex"]) == ["5h limit", "5h limit (2)"]


def test_error_json() -> None:
    assert json.loads(error_to_json("nope")) == {"success": False, "error": "nope"}
