"""Recognise interactive prompts that block a provider's usage output.

Signatures are phrase based. Each one lists groups of phrases; every group
must have at least one phrase present in the lower-cased text, and none of
the ``excludes`` may appear. Authentication and first-run signatures are
always evaluated first and are never dismissed automatically.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re

from agentusage.errors import DialogDetected, ManualActionRequired
from agentusage.models import ApprovalPolicy, DialogKind, ProviderName
from agentusage.terminal import ENTER

logger = logging.getLogger(__name__)

AUTH_PHRASES = (
    "sign in required",
    "log in required",
    "login required",
    "please sign in",
    "please log in",
    "you need to sign in",
    "you need to log in",
    "sign in to continue",
    "log in to continue",
    "sign in with",
    "log in with",
    "must authenticate",
    "please authenticate",
    "authentication required",
    "authenticate before using",
)

NUMBERED_SKIP_RE = re.compile(r"2\.skip")


@dataclass(frozen=True)
class DialogSignature:
    kind: DialogKind
    groups: tuple[tuple[str, ...], ...]
    excludes: tuple[str, ...] = ()
    dismiss_keys: tuple[str, ...] = (ENTER,)

    @property
    def auto_dismissible(self) -> bool:
        return self.kind.auto_dismissible

    def matches(self, lowered: str) -> bool:
        if any(phrase in lowered for phrase in self.excludes):
            return False
        return all(any(phrase in lowered for phrase in group) for group in self.groups)


@dataclass(frozen=True)
class DialogMatch:
    kind: DialogKind
    auto_dismissible: bool
    keys: tuple[str, ...]


AUTH_SIGNATURE = DialogSignature(DialogKind.AUTHENTICATION, (AUTH_PHRASES,), dismiss_keys=())


def signature(
    kind: DialogKind,
    *groups: tuple[str, ...],
    excludes: tuple[str, ...] = (),
    dismiss_keys: tuple[str, ...] = (ENTER,),
) -> DialogSignature:
    if not kind.auto_dismissible:
        dismiss_keys = ()
    return DialogSignature(kind, tuple(groups), excludes, dismiss_keys)


def _priority(sig: DialogSignature) -> int:
    return 1 if sig.auto_dismissible else 0


def classify(text: str, signatures: tuple[DialogSignature, ...]) -> DialogMatch | None:
    """Return the highest-priority dialog visible in ``text``, or ``None``."""
    lowered = text.lower()
    # sorted() is stable, so declaration order holds within each tier
    for sig in sorted(signatures, key=_priority):
        if not sig.matches(lowered):
            continue
        keys = sig.dismiss_keys
        if sig.kind == DialogKind.UPDATE and has_numbered_skip(text):
            keys = ("2", ENTER)
        return DialogMatch(kind=sig.kind, auto_dismissible=sig.auto_dismissible, keys=keys)
    return None


def has_numbered_skip(text: str) -> bool:
    compact = "".join(text.lower().split())
    return NUMBERED_SKIP_RE.search(compact) is not None


def dialog_message(provider: ProviderName, binary: str, kind: DialogKind) -> str:
    if kind == DialogKind.AUTHENTICATION:
        return f"{binary} requires authentication. Run '{binary}' manually and sign in first."
    if kind == DialogKind.FIRST_RUN:
        return f"{binary} needs first-run setup. Run '{binary}' manually once to complete it."
    what = {
        DialogKind.TRUST: "a trust folder dialog",
        DialogKind.UPDATE: "an update prompt",
        DialogKind.TERMS: "a terms acceptance dialog",
        DialogKind.SANDBOX: "a sandbox permission dialog",
    }.get(kind, "an unrecognised dialog")
    return (
        f"{provider.value} is showing {what}. "
        f"Run '{binary}' manually and accept, or use --approval-policy accept."
    )


def resolve(
    match: DialogMatch,
    policy: ApprovalPolicy,
    provider: ProviderName,
    binary: str,
) -> tuple[str, ...]:
    """Keys to send for ``match`` under ``policy``; raises when the run cannot continue."""
    message = dialog_message(provider, binary, match.kind)
    if not match.auto_dismissible:
        raise ManualActionRequired(match.kind, message)
    if policy != ApprovalPolicy.ACCEPT:
        raise DialogDetected(match.kind, message)
    logger.info("%s: dismissing %s dialog", provider.value, match.kind.value)
    return match.keys
