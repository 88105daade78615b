from __future__ import annotations

from dataclasses import asdict
import json

from agentusage.models import AggregatedResults, UsageData, UsageEntry

OPTIONAL_FIELDS = ("reset_minutes", "spent", "requests")


def entry_to_dict(entry: UsageEntry) -> dict[str, object]:
    raw = asdict(entry)
    raw.pop("label")
    for key in OPTIONAL_FIELDS:
        if raw.get(key) is None:
            raw.pop(key, None)
    return raw


def usage_to_dict(data: UsageData) -> dict[str, dict[str, object]]:
    out: dict[str, dict[str, object]] = {}
    for entry in data.entries:
        label = entry.label
        n = 2
        while label in out:
            label = f"{entry.label} ({n})"
            n += 1
        out[label] = entry_to_dict(entry)
    return out


def results_to_dict(results: AggregatedResults) -> dict[str, object]:
    payload: dict[str, object] = {
        "success": not results.all_failed,
        "results": {name.value: usage_to_dict(data) for name, data in results.successes.items()},
    }
    if results.failures:
        payload["warnings"] = {name.value: msg for name, msg in results.failures.items()}
    if results.all_failed:
        payload["error"] = "All providers failed."
    return payload


def results_to_json(results: AggregatedResults) -> str:
    return json.dumps(results_to_dict(results), indent=2)


def usage_to_json(data: UsageData) -> str:
    return json.dumps({"success": True, "results": {data.provider.value: usage_to_dict(data)}}, indent=2)


def error_to_json(message: str) -> str:
    return json.dumps({"success": False, "error": message}, indent=2)
