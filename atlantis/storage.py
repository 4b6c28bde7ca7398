"""Client-side key-value scopes that hold the serialized session.

The portal keeps its session in one of two browser stores: a per-tab
ephemeral scope and a persistent scope that survives restarts.  Both are
modelled here as plain in-memory maps owned by a :class:`ClientStorage`.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Tuple

# Authoritative key written and read by the session manager.
SESSION_STORAGE_KEY = "userSession"
# Written by the patient login page and read by the dashboard logger.  Not
# read by the session manager; see DESIGN.md.
LEGACY_SESSION_STORAGE_KEY = "atlantis_session"

EPHEMERAL_SCOPE = "ephemeral"
PERSISTENT_SCOPE = "persistent"


class KeyValueStore:
    """A string-to-string map with the Web Storage method names."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def keys(self) -> List[str]:
        return list(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"KeyValueStore(name={self.name!r}, keys={self.keys()!r})"


class ClientStorage:
    """The two scopes a client writes its session into."""

    def __init__(
        self,
        ephemeral: Optional[KeyValueStore] = None,
        persistent: Optional[KeyValueStore] = None,
    ) -> None:
        self.ephemeral = ephemeral or KeyValueStore(EPHEMERAL_SCOPE)
        self.persistent = persistent or KeyValueStore(PERSISTENT_SCOPE)

    def scope_for(self, remember_me: bool) -> KeyValueStore:
        """Return the scope a session is written to."""

        return self.persistent if remember_me else self.ephemeral

    def lookup_order(self) -> Tuple[KeyValueStore, KeyValueStore]:
        """Scopes in read precedence order: ephemeral first, then persistent."""

        return (self.ephemeral, self.persistent)

    def first_value(self, key: str) -> Tuple[Optional[KeyValueStore], Optional[str]]:
        """Return the first scope holding a non-empty value for ``key``."""

        for scope in self.lookup_order():
            raw = scope.get_item(key)
            if raw:
                return scope, raw
        return None, None

    def remove_everywhere(self, key: str) -> None:
        for scope in self.lookup_order():
            scope.remove_item(key)

    def clear(self) -> None:
        self.ephemeral.clear()
        self.persistent.clear()


__all__ = [
    "SESSION_STORAGE_KEY",
    "LEGACY_SESSION_STORAGE_KEY",
    "EPHEMERAL_SCOPE",
    "PERSISTENT_SCOPE",
    "KeyValueStore",
    "ClientStorage",
]
