from __future__ import annotations

import argparse
import logging
import shutil
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from agentusage.config import CONFIG_PATH, Config, UsageConfig, load_config
from agentusage.errors import AgentUsageError, ConfigError
from agentusage.models import AggregatedResults, ApprovalPolicy, ProviderName, UsageData
from agentusage.orchestrator import Orchestrator
from agentusage.providers import get_profile
from agentusage.registry import STATE_PATH, SessionRegistry
from agentusage.report import error_to_json, results_to_json, usage_to_json


def _bar_color(pct: float) -> str:
    if pct >= 80.0:
        return "red"
    if pct >= 50.0:
        return "yellow"
    return "green"


def _cli_bar(value: int, width: int = 30) -> Text:
    filled = int(round((min(100, max(0, value)) / 100.0) * width))
    color = _bar_color(value)
    bar = Text()
    bar.append("━" * filled, style=f"bold {color}")
    bar.append("╌" * (width - filled), style="bright_black")
    bar.append(f"  {value:3d}% used", style=f"bold {color}")
    return bar


def _fmt_minutes(minutes: int | None) -> str:
    if minutes is None:
        return ""
    days, rest = divmod(minutes, 1440)
    hours, mins = divmod(rest, 60)
    if days:
        return f"in {days}d {hours}h"
    if hours:
        return f"in {hours}h {mins}m"
    return f"in {mins}m"


def _render_panel(data: UsageData) -> Panel:
    table = Table.grid(padding=(0, 1), expand=True)
    table.add_column("label", no_wrap=True, style="bold bright_white", ratio=1)
    table.add_column("value", ratio=3)

    for i, entry in enumerate(data.entries):
        if i > 0:
            table.add_row("", Text())
        table.add_row(Text(entry.label, style="bold cyan"), _cli_bar(entry.percent_used))
        table.add_row(Text("  remaining", style="dim"), Text(f"{entry.percent_remaining}%", style="bright_white"))
        if entry.reset_info:
            reset = Text(entry.reset_info, style="bright_white")
            if entry.reset_minutes is not None:
                reset.append(f"  ({_fmt_minutes(entry.reset_minutes)})", style="dim")
            table.add_row(Text("  resets", style="dim"), reset)
        if entry.spent:
            table.add_row(Text("  spent", style="dim"), Text(entry.spent, style="bright_white"))
        if entry.requests:
            table.add_row(Text("  requests", style="dim"), Text(entry.requests, style="bright_white"))

    return Panel(
        table,
        title=f"[bold bright_white] {data.provider.value.upper()} [/]",
        border_style="#2be38f",
        padding=(1, 2),
    )


def _print_results(console: Console, results: AggregatedResults) -> None:
    for name in ProviderName:
        if name in results.successes:
            console.print(_render_panel(results.successes[name]))
    for name, message in results.failures.items():
        console.print(Text(f"{name.value}: {message}", style="yellow"))


def _doctor(console: Console, cfg: Config) -> int:
    table = Table(title="agentusage doctor")
    table.add_column("provider", style="bold")
    table.add_column("binary")
    table.add_column("status")
    missing = 0
    overrides = cfg.binary_overrides()
    for name in ProviderName:
        binary = get_profile(name, overrides.get(name)).binary
        path = shutil.which(binary)
        if path is None:
            missing += 1
            table.add_row(name.value, binary, Text("not found", style="bold red"))
        else:
            table.add_row(name.value, binary, Text(path, style="green"))
    console.print(table)
    return 0 if missing == 0 else 2


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentusage",
        description="Read usage limits from the claude, codex and gemini CLIs by driving them in a terminal.",
    )
    for name in ProviderName:
        parser.add_argument(f"--{name.value}", action="store_true", help=f"only query {name.value}")
    parser.add_argument("--json", action="store_true", help="print JSON instead of panels")
    parser.add_argument("--timeout", type=float, default=None, help="seconds to wait per provider (default 45)")
    parser.add_argument("--verbose", action="store_true", help="debug logging on stderr")
    parser.add_argument(
        "--approval-policy",
        choices=[p.value for p in ApprovalPolicy],
        default=None,
        help="fail on trust/update/terms/sandbox dialogs, or accept them",
    )
    parser.add_argument("-C", "--directory", type=Path, default=None, help="directory to launch the CLIs in")
    parser.add_argument("--config", type=Path, default=CONFIG_PATH, help="config file path")
    parser.add_argument("--cleanup", action="store_true", help="stop any sessions this process is tracking and exit")
    parser.add_argument("--doctor", action="store_true", help="check that each provider CLI is installed")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)
    console = Console()

    if args.cleanup:
        stopped = SessionRegistry(STATE_PATH).sweep_stale()
        console.print(f"stopped {stopped} session(s)")
        return 0

    try:
        cfg = load_config(args.config)
        usage_cfg = UsageConfig(
            timeout=args.timeout if args.timeout is not None else cfg.general.timeout,
            verbose=args.verbose,
            approval_policy=ApprovalPolicy(args.approval_policy or cfg.general.approval_policy),
            directory=args.directory,
        )
    except ConfigError as exc:
        if args.json:
            print(error_to_json(str(exc)))
        else:
            console.print(Text(str(exc), style="bold red"))
        return exc.exit_code

    if args.doctor:
        return _doctor(console, cfg)

    explicit = [name for name in ProviderName if getattr(args, name.value)]
    selected = explicit
    if not explicit:
        selected = cfg.enabled_providers()
        if not selected:
            exc = ConfigError(f"no providers enabled in {args.config}")
            if args.json:
                print(error_to_json(str(exc)))
            else:
                console.print(Text(str(exc), style="bold red"))
            return exc.exit_code

    registry = SessionRegistry(STATE_PATH)
    with Orchestrator(usage_cfg, registry=registry, binaries=cfg.binary_overrides()) as orch:
        orch.install_signal_handlers()

        if len(explicit) == 1:
            try:
                data = orch.run_provider(selected[0])
            except AgentUsageError as exc:
                if args.json:
                    print(error_to_json(str(exc)))
                else:
                    console.print(Text(str(exc), style="bold red"))
                return exc.exit_code
            if args.json:
                print(usage_to_json(data))
            else:
                console.print(_render_panel(data))
            return 0

        results = orch.run_all(selected)

    if args.json:
        print(results_to_json(results))
    else:
        _print_results(console, results)
    return results.exit_code()


if __name__ == "__main__":
    raise SystemExit(main())
