"""Footer metadata codec.

PR and issue embeds carry a compact status snapshot in their footer so that
status, not just identity, can be recovered from the Discord message alone
when the state database is gone.

Format: ``rr:v1:`` followed by compact JSON, tagged by entity kind:

    rr:v1:{"k":"pr","n":7,"ci":"success","rv":"reviewed","rc":3,"ar":"approved"}
    rr:v1:{"k":"issue","n":12}

Changing the JSON shape means bumping the prefix. Text with any other
prefix (older versions included) decodes to None; old shapes are never
partially parsed.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Union

from relay_store.models import AGENT_REVIEW_STATES, CI_STATES, REVIEWER_STATES

logger = logging.getLogger(__name__)

FOOTER_PREFIX = "rr:v1:"

# Discord rejects embed footers longer than this.
_MAX_FOOTER_LENGTH = 2048


@dataclass(frozen=True)
class PrFooter:
    number: int
    ci_status: str = "pending"
    reviewer_status: str = "pending"
    agent_review_status: str = "pending"
    reviewer_comments: int | None = None


@dataclass(frozen=True)
class IssueFooter:
    number: int


FooterStatus = Union[PrFooter, IssueFooter]


def encode(status: FooterStatus) -> str:
    """Serialise a footer snapshot to its prefixed text form."""
    if isinstance(status, PrFooter):
        data: dict = {
            "k": "pr",
            "n": status.number,
            "ci": status.ci_status,
            "rv": status.reviewer_status,
            "ar": status.agent_review_status,
        }
        if status.reviewer_comments is not None:
            data["rc"] = status.reviewer_comments
    elif isinstance(status, IssueFooter):
        data = {"k": "issue", "n": status.number}
    else:
        raise TypeError(f"Cannot encode footer for {type(status).__name__}")
    return FOOTER_PREFIX + json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def decode(text: str | None) -> FooterStatus | None:
    """Parse footer text back into a snapshot.

    Returns None for anything that is not a well-formed current-version
    footer. Never raises: footers are read from arbitrary channel messages.
    """
    if not isinstance(text, str) or not text.startswith(FOOTER_PREFIX) or len(text) > _MAX_FOOTER_LENGTH:
        return None
    try:
        data = json.loads(text[len(FOOTER_PREFIX) :])
    except ValueError:
        logger.debug("Ignoring footer with invalid JSON: %.80s", text)
        return None
    if not isinstance(data, dict):
        return None

    number = data.get("n")
    if not _is_positive_int(number):
        return None

    kind = data.get("k")
    if kind == "issue":
        if set(data) != {"k", "n"}:
            return None
        return IssueFooter(number=number)

    if kind != "pr" or not set(data) <= {"k", "n", "ci", "rv", "rc", "ar"}:
        return None
    ci = data.get("ci")
    reviewer = data.get("rv")
    agent = data.get("ar")
    if ci not in CI_STATES or reviewer not in REVIEWER_STATES or agent not in AGENT_REVIEW_STATES:
        return None
    comments = data.get("rc")
    if comments is not None and not (_is_int(comments) and comments >= 0):
        return None
    return PrFooter(
        number=number,
        ci_status=ci,
        reviewer_status=reviewer,
        agent_review_status=agent,
        reviewer_comments=comments,
    )


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_positive_int(value: object) -> bool:
    return _is_int(value) and value > 0
