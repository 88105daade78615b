import pytest

from agentusage.dialogs import classify, has_numbered_skip, resolve
from agentusage.errors import DialogDetected, ManualActionRequired
from agentusage.models import ApprovalPolicy, DialogKind, ProviderName
from agentusage.providers import claude, codex, gemini
from agentusage.terminal import DOWN, ENTER, ESC

ALL_DIALOGS = [claude.DIALOGS, codex.DIALOGS, gemini.DIALOGS]


@pytest.mark.parametrize("dialogs", ALL_DIALOGS)
def test_login_confirmation_is_not_an_auth_prompt(dialogs) -> None:
    assert classify("Authenticated as alice@example.com", dialogs) is None
    assert classify("Logged in as alice@example.com\nWaiting for auth... done", dialogs) is None


@pytest.mark.parametrize("dialogs", ALL_DIALOGS)
def test_login_prompt_is_an_auth_dialog(dialogs) -> None:
    match = classify("Please sign in to continue.\n  1. Sign in with your account", dialogs)
    assert match is not None
    assert match.kind == DialogKind.AUTHENTICATION
    assert not match.auto_dismissible


def test_auth_wins_over_dismissible_dialogs() -> None:
    text = "Do you trust the contents of this directory?\nAuthentication required"
    match = classify(text, codex.DIALOGS)
    assert match.kind == DialogKind.AUTHENTICATION


def test_first_run_wins_over_trust() -> None:
    text = "Do you trust this folder?\nSelect a theme"
    assert classify(text, gemini.DIALOGS).kind == DialogKind.FIRST_RUN


def test_codex_trust_and_sandbox() -> None:
    trust = classify("Do you trust the contents of this directory?", codex.DIALOGS)
    assert trust.kind == DialogKind.TRUST
    assert trust.keys == (ENTER,)
    sandbox = classify("This sandbox requires you to trust the workspace", codex.DIALOGS)
    assert sandbox.kind == DialogKind.SANDBOX


def test_codex_update_skips_instead_of_updating() -> None:
    plain = classify("Update available for codex: 0.47.0", codex.DIALOGS)
    assert plain.kind == DialogKind.UPDATE
    assert plain.keys == (DOWN, ENTER)
    numbered = classify("Update available for codex\n 1. Update now\n 2. Skip\n 3. Skip until next version", codex.DIALOGS)
    assert numbered.keys == ("2", ENTER)


def test_claude_update_is_escaped() -> None:
    match = classify("A new version of Claude Code is available", claude.DIALOGS)
    assert match.kind == DialogKind.UPDATE
    assert match.keys == (ESC,)


def test_gemini_extension_update_is_not_a_dialog() -> None:
    assert classify("Extension update available: foo", gemini.DIALOGS) is None
    assert classify("Gemini CLI update available!", gemini.DIALOGS).kind == DialogKind.UPDATE


def test_gemini_terms_needs_both_words() -> None:
    assert classify("Read the terms of service", gemini.DIALOGS) is None
    assert classify("Do you agree to the Terms of Service?", gemini.DIALOGS).kind == DialogKind.TERMS


def test_numbered_skip_tolerates_spacing() -> None:
    assert has_numbered_skip("  2.   Skip  ")
    assert not has_numbered_skip("1. Update now")


@pytest.mark.parametrize("kind_text", [
    "Do you trust the contents of this directory?",
    "Update available for codex",
    "Please accept the terms to continue",
    "sandbox mode requires trust",
])
def test_dismissible_dialogs_follow_policy(kind_text: str) -> None:
    match = classify(kind_text, codex.DIALOGS)
    assert match.auto_dismissible
    assert resolve(match, ApprovalPolicy.ACCEPT, ProviderName.CODEX, "codex") == match.keys
    with pytest.raises(DialogDetected) as excinfo:
        resolve(match, ApprovalPolicy.FAIL, ProviderName.CODEX, "codex")
    assert excinfo.value.dialog == match.kind
    assert "--approval-policy accept" in str(excinfo.value)
    assert excinfo.value.exit_code == 3


@pytest.mark.parametrize("policy", list(ApprovalPolicy))
def test_manual_dialogs_fail_under_any_policy(policy: ApprovalPolicy) -> None:
    for text in ("Please log in to continue", "Welcome to Claude Code! Let's get you set up."):
        match = classify(text, claude.DIALOGS)
        with pytest.raises(ManualActionRequired):
            resolve(match, policy, ProviderName.CLAUDE, "claude")


def test_manual_action_message_names_the_fix() -> None:
    match = classify("Please log in to continue", claude.DIALOGS)
    with pytest.raises(ManualActionRequired, match="Run 'claude' manually and sign in first"):
        resolve(match, ApprovalPolicy.ACCEPT, ProviderName.CLAUDE, "claude")


def test_no_dialog_in_plain_output() -> None:
    assert classify("5h limit: 97% left · resets 11:07", codex.DIALOGS) is None
