"""Agent-review detection patterns.

Shared by the issue_comment handler and the scheduled review check so both
paths classify a comment the same way.
"""

from __future__ import annotations

import re

# A comment matching any of these is an agent review.
AGENT_REVIEW_PATTERNS = [
    re.compile(r"## Code Review Summary", re.IGNORECASE),
    re.compile(r"### Agent Review", re.IGNORECASE),
    re.compile(r"## 🔍 Code Review", re.IGNORECASE),
    re.compile(r"\*\*Verdict:\*\*", re.IGNORECASE),
    re.compile(r"## Review Result", re.IGNORECASE),
    re.compile(r"## Code Review: PR #\d+", re.IGNORECASE),
]

APPROVED_PATTERNS = [
    re.compile(r"verdict.*approved", re.IGNORECASE),
    re.compile(r"✅.*approved", re.IGNORECASE),
    re.compile(r"lgtm", re.IGNORECASE),
    re.compile(r"looks good to me", re.IGNORECASE),
    re.compile(r"\[x\].*approve", re.IGNORECASE),
]

CHANGES_REQUESTED_PATTERNS = [
    re.compile(r"changes.*requested", re.IGNORECASE),
    re.compile(r"⚠️.*changes", re.IGNORECASE),
    re.compile(r"needs.*changes", re.IGNORECASE),
    re.compile(r"\[x\].*request changes", re.IGNORECASE),
]


def is_agent_review(body: str | None) -> bool:
    return bool(body) and any(p.search(body) for p in AGENT_REVIEW_PATTERNS)


def classify_verdict(body: str) -> str:
    """Return "approved", "changes_requested" or "pending" for an agent-review comment."""
    if any(p.search(body) for p in APPROVED_PATTERNS):
        return "approved"
    if any(p.search(body) for p in CHANGES_REQUESTED_PATTERNS):
        return "changes_requested"
    return "pending"


def is_copilot(login: str | None) -> bool:
    return bool(login) and "copilot" in login.lower()
