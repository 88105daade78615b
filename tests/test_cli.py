import json
import os
import subprocess
import sys
from pathlib import Path

from agentusage.cli import build_parser, main


def _run(tmp_path: Path, *args: str) -> subprocess.CompletedProcess:
    env = dict(os.environ, HOME=str(tmp_path), PATH=str(tmp_path / "bin"))
    return subprocess.run(
        [sys.executable, "-m", "agentusage.cli", "--config", str(tmp_path / "config.toml"), *args],
        check=False,
        capture_output=True,
        text=True,
        env=env,
    )


def test_cli_cleanup_runs(tmp_path: Path) -> None:
    proc = _run(tmp_path, "--cleanup")
    assert proc.returncode == 0
    assert "stopped 0 session(s)" in proc.stdout


def test_missing_tool_exits_2_with_json(tmp_path: Path) -> None:
    proc = _run(tmp_path, "--codex", "--json")
    assert proc.returncode == 2
    payload = json.loads(proc.stdout)
    assert payload["success"] is False
    assert payload["error"].startswith("codex CLI not found")


def test_all_tools_missing_exits_2(tmp_path: Path) -> None:
    proc = _run(tmp_path, "--json")
    assert proc.returncode == 2
    payload = json.loads(proc.stdout)
    assert payload["success"] is False
    assert payload["results"] == {}
    assert payload["error"] == "All providers failed."
    assert payload["warnings"]["gemini"].startswith("gemini CLI not found")


def test_doctor_reports_missing_tools(tmp_path: Path) -> None:
    proc = _run(tmp_path, "--doctor")
    assert proc.returncode == 2
    assert "not found" in proc.stdout


def test_invalid_timeout_is_a_config_error(tmp_path: Path) -> None:
    assert main(["--config", str(tmp_path / "config.toml"), "--timeout", "0", "--json"]) == 1


def test_parser_defaults() -> None:
    args = build_parser().parse_args(["--claude", "-C", "/tmp"])
    assert args.claude and not args.codex
    assert args.directory == Path("/tmp")
    assert args.timeout is None
    assert args.approval_policy is None


def test_all_providers_disabled_runs_nothing(tmp_path: Path) -> None:
    (tmp_path / "config.toml").write_text(
        "[providers.claude]\nenabled = false\n"
        "[providers.codex]\nenabled = false\n"
        "[providers.gemini]\nenabled = false\n"
    )
    proc = _run(tmp_path, "--json")
    assert proc.returncode == 1
    payload = json.loads(proc.stdout)
    assert payload["success"] is False
    assert "no providers enabled" in payload["error"]


def test_nan_timeout_is_a_config_error(tmp_path: Path) -> None:
    assert main(["--config", str(tmp_path / "config.toml"), "--timeout", "nan", "--json"]) == 1
