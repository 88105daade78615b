from datetime import datetime

from agentusage.providers.codex import PROFILE, is_ready, parse_codex_output

STATUS_CARD = """
╭──────────────────────────────────────────────────────────────────────────╮
│  >_ OpenAI Codex (v0.46.0)                                               │
│                                                                          │
│  Model:            gpt-5-codex (reasoning medium)                        │
│  Directory:        ~/src/project                                         │
│                                                                          │
│  5h limit:         [████████████████████] 97% left (resets 11:07)        │
│  Weekly limit:     [████░░░░░░░░░░░░░░░░] 20% left (resets 11:07 on 16 Feb) │
│  GPT-5-Codex-Mini limit:                                                 │
│    5h limit:       [████████████████████] 100% left (resets 12:30)       │
╰──────────────────────────────────────────────────────────────────────────╯
"""


def test_compact_limit_line() -> None:
    entries = parse_codex_output("5h limit: 97% left · resets 11:07")
    assert len(entries) == 1
    entry = entries[0]
    assert entry.label == "5h limit"
    assert entry.percent_remaining == 97
    assert entry.percent_used == 3
    assert entry.reset_info == "resets 11:07"


def test_status_card_with_sections() -> None:
    now = datetime(2026, 2, 13, 10, 0).astimezone()
    entries = parse_codex_output(STATUS_CARD, now)
    assert [e.label for e in entries] == ["5h limit", "Weekly limit", "GPT-5-Codex-Mini 5h limit"]
    assert [e.percent_used for e in entries] == [3, 80, 0]
    assert entries[0].reset_minutes == 67
    assert entries[1].reset_info == "resets 11:07 on 16 Feb"
    assert entries[1].reset_minutes == 3 * 1440 + 67


def test_used_percentages_are_taken_as_used() -> None:
    entries = parse_codex_output("Weekly limit: [██] 12% used (resets 09:00)")
    assert entries[0].percent_used == 12


def test_section_resets_on_plain_line() -> None:
    text = "Mini limit:\nsomething else\n5h limit: 50% left"
    assert parse_codex_output(text)[0].label == "5h limit"


def test_ready_and_data_signals() -> None:
    assert is_ready("  ? for shortcuts")
    assert not is_ready("Loading")
    assert PROFILE.has_data("97% left")
    assert PROFILE.command == "/status"
