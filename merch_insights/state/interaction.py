"""
Notification Interaction State

Read and dismissed notification identities. Concurrent updates merge by set
union against the persisted copy, never by overwrite.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Set

from merch_insights.domain import NotificationCategory, NotificationKey


def _key_from_triple(triple) -> NotificationKey:
    category, subject, rule = triple
    return NotificationKey(category=NotificationCategory(category), subject=subject, rule=rule)


@dataclass
class InteractionState:
    """
    Operator interaction with notifications, keyed by content identity.

    Example:
        state = InteractionState()
        state.mark_read([key], at=now)
        merged = state.merge(persisted)
    """

    read: Dict[NotificationKey, datetime] = field(default_factory=dict)
    dismissed: Set[NotificationKey] = field(default_factory=set)

    def mark_read(self, keys: Iterable[NotificationKey], at: datetime) -> "InteractionState":
        for key in keys:
            # first read wins
            self.read.setdefault(key, at)
        return self

    def dismiss(self, keys: Iterable[NotificationKey]) -> "InteractionState":
        self.dismissed.update(keys)
        return self

    def absorb(self, other: "InteractionState") -> "InteractionState":
        """Union ``other`` into this state in place; the earliest read time is kept"""
        for key, at in other.read.items():
            if key not in self.read or at < self.read[key]:
                self.read[key] = at
        self.dismissed |= other.dismissed
        return self

    def copy(self) -> "InteractionState":
        return InteractionState(read=dict(self.read), dismissed=set(self.dismissed))

    def merge(self, other: "InteractionState") -> "InteractionState":
        """New state holding the union of both"""
        return self.copy().absorb(other)

    def is_read(self, key: NotificationKey) -> bool:
        return key in self.read

    def is_dismissed(self, key: NotificationKey) -> bool:
        return key in self.dismissed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "read": [
                {"key": list(key.as_tuple()), "at": at.isoformat()}
                for key, at in sorted(self.read.items(), key=lambda item: item[0].as_tuple())
            ],
            "dismissed": sorted(list(key.as_tuple()) for key in self.dismissed),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InteractionState":
        data = data or {}
        return cls(
            read={
                _key_from_triple(item["key"]): datetime.fromisoformat(item["at"])
                for item in data.get("read", [])
            },
            dismissed={_key_from_triple(triple) for triple in data.get("dismissed", [])},
        )
