from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

_MENTION_RE = re.compile(r"<@([A-Za-z0-9_]+)(?:\|[^>]*)?>")
# "$25" or "25 $bren"
_AMOUNT_RE = re.compile(r"\$(\d+)\b|\b(\d+)\s*\$bren\b", re.IGNORECASE)

_CAST_INVITE_RE = re.compile(r"\binvite\b", re.IGNORECASE)
_CAST_TIP_RE = re.compile(r"\$bren", re.IGNORECASE)
_CAST_AMOUNT_RE = re.compile(r"\$?\s*(\d+)\s*\$?\s*bren\b", re.IGNORECASE)


@dataclass(frozen=True)
class TipCommand:
    recipient_id: str
    amount: int


class CastKind(StrEnum):
    INVITE = "invite"
    TIP = "tip"
    IGNORED = "ignored"


def extract_mentions(text: str) -> list[str]:
    return [match.group(1) for match in _MENTION_RE.finditer(text)]


def is_bot_mentioned(text: str, bot_user_id: str) -> bool:
    return bot_user_id in extract_mentions(text)


def extract_amount(text: str) -> int | None:
    for match in _AMOUNT_RE.finditer(text):
        raw = match.group(1) or match.group(2)
        amount = int(raw)
        if amount > 0:
            return amount
    return None


def parse_tip_command(text: str | None, bot_user_id: str) -> TipCommand | None:
    """Parse "<@BOT> tip $10 to <@U123>" style messages.

    Returns None unless the bot is mentioned, at least one other user is
    mentioned, and a positive amount is present. Self-tips are not detected
    here; mention ids must first be resolved to usernames.
    """
    if not text:
        return None
    mentions = extract_mentions(text)
    if len(mentions) < 2 or bot_user_id not in mentions:
        return None
    recipients = [mention for mention in mentions if mention != bot_user_id]
    if not recipients:
        return None
    amount = extract_amount(text)
    if amount is None:
        return None
    return TipCommand(recipient_id=recipients[0], amount=amount)


def classify_cast(text: str) -> CastKind:
    if _CAST_INVITE_RE.search(text):
        return CastKind.INVITE
    if _CAST_TIP_RE.search(text):
        return CastKind.TIP
    return CastKind.IGNORED


def extract_cast_amount(text: str) -> int | None:
    match = _CAST_AMOUNT_RE.search(text)
    if match is None:
        return None
    return int(match.group(1))
