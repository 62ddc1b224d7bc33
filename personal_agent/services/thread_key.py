"""Structured thread keys and their dash-delimited text form."""
from dataclasses import dataclass
from typing import Optional

from personal_agent.errors import MalformedKey

SEPARATOR = "-"


def _escape(component: str) -> str:
    return component.replace("%", "%25").replace(SEPARATOR, "%2D")


def _unescape(component: str) -> str:
    return component.replace("%2D", SEPARATOR).replace("%2d", SEPARATOR).replace("%25", "%")


@dataclass(frozen=True)
class ThreadKey:
    """
    Identity of a conversation: source channel, originating user and an
    optional sub-thread.

    The text form is ``source-channel-user[-subthread]``. Dashes and percent
    signs inside the first three components are percent-escaped so that
    identifiers containing dashes survive a round trip. Everything after the
    third separator is the sub-thread, taken verbatim.

    Only the number of components is checked: empty components are kept as
    empty strings, and an empty sub-thread is the same as none, so
    ``slack-C1-U1-`` and ``slack-C1-U1`` name the same thread.
    """
    source: str
    channel: str
    user: str
    subthread: Optional[str] = None

    @classmethod
    def parse(cls, raw: str) -> "ThreadKey":
        if not isinstance(raw, str):
            raise MalformedKey(f"Thread key must be a string, got {type(raw).__name__}")

        parts = raw.split(SEPARATOR, 3)
        if len(parts) < 3:
            raise MalformedKey(
                f"Invalid thread key {raw!r}. Expected: source-channel-user[-subthread]"
            )

        source, channel, user = (_unescape(p) for p in parts[:3])
        subthread = parts[3] if len(parts) == 4 and parts[3] else None
        return cls(source=source, channel=channel, user=user, subthread=subthread)

    def __str__(self) -> str:
        key = SEPARATOR.join(_escape(p) for p in (self.source, self.channel, self.user))
        if self.subthread:
            key = f"{key}{SEPARATOR}{self.subthread}"
        return key
