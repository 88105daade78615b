from datetime import datetime, timezone

from agentusage.providers.base import clean_text
from agentusage.providers.claude import PROFILE, is_ready, parse_claude_output

NOW = datetime(2026, 2, 13, 12, 0, tzinfo=timezone.utc)

USAGE_SCREEN = """
 Settings:  Status   Config   Usage  (tab to cycle)

 Current session
 █████▌                                             11% used
 Resets 2pm (America/Chicago)

 Current week (all models)
 ██████████████████                                 36% used
 Resets Feb 20 at 9am (America/Chicago)

 Current week (Sonnet only)
 █                                                  2% used
 Reses Feb 20 at 9am (America/Chicago)

 Extra usage
 ██████████                                         20% used
 $4.12 / $20.00 spent · Resets Mar 1 (America/Chicago)

 Esc to cancel
"""


def test_single_line_session_entry() -> None:
    entries = parse_claude_output("Current session: 1% used · Resets 2pm (America/Chicago)", NOW)
    assert len(entries) == 1
    entry = entries[0]
    assert entry.label == "Current session"
    assert entry.percent_used == 1
    assert entry.percent_remaining == 99
    assert entry.reset_info == "Resets 2pm (America/Chicago)"
    assert entry.reset_minutes == 480


def test_full_usage_screen_keeps_order() -> None:
    entries = parse_claude_output(USAGE_SCREEN, NOW)
    assert [e.label for e in entries] == [
        "Current session",
        "Current week (all models)",
        "Current week (Sonnet only)",
        "Extra usage",
    ]
    assert [e.percent_used for e in entries] == [11, 36, 2, 20]
    assert entries[1].reset_minutes == 10260


def test_reses_typo_is_normalised() -> None:
    entries = parse_claude_output(USAGE_SCREEN, NOW)
    assert entries[2].reset_info == "Resets Feb 20 at 9am (America/Chicago)"


def test_extra_usage_spend_is_kept_verbatim() -> None:
    entries = parse_claude_output(USAGE_SCREEN, NOW)
    assert entries[3].spent == "$4.12 / $20.00 spent"
    assert entries[0].spent is None


def test_fractional_percentages_round() -> None:
    entries = parse_claude_output("Current session\n  12.6% used\n", NOW)
    assert entries[0].percent_used == 13


def test_fallback_assigns_known_labels_in_order() -> None:
    entries = parse_claude_output("░░ 5% used\nResets 2pm (America/Chicago)\n░░ 40% used\n", NOW)
    assert [(e.label, e.percent_used) for e in entries] == [
        ("Current session", 5),
        ("Current week (all models)", 40),
    ]
    assert entries[0].reset_minutes == 480


def test_no_usage_yields_nothing() -> None:
    assert parse_claude_output("Welcome back!\n> ", NOW) == []


def test_ready_and_data_signals() -> None:
    assert is_ready("╭───╮\n│ > │")
    assert not is_ready("loading")
    assert PROFILE.has_data("36% used")
    assert not PROFILE.has_data("/usage")


def test_cursor_movement_is_turned_into_layout() -> None:
    raw = (
        b"\x1b[1mCurrent\x1b[1Csession\x1b[0m"
        b"\x1b[5;3H\xe2\x96\x88 11%\x1b[1Cused"
        b"\x1b[6;3HResets\x1b[1C2pm\x1b[1C(America/Chicago)"
    )
    entries = parse_claude_output(clean_text(raw), NOW)
    assert entries[0].label == "Current session"
    assert entries[0].percent_used == 11
    assert entries[0].reset_minutes == 480
