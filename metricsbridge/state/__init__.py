"""Typed bridge runtime state container."""
from collections.abc import Iterator, MutableMapping
from typing import Any


REQUIRED_STATE_KEYS = (
    "settings",
    "user_store",
    "session_manager",
    "sampler",
    "console_sink",
    "aggregator",
    "gateway",
    "authorizer",
    "admin_required",
    "host_ref",
    "get_host",
    "log_bridge_action",
    "log_bridge_system",
    "log_bridge_exception",
)
REQUIRED_STATE_KEY_SET = frozenset(REQUIRED_STATE_KEYS)


class BridgeState(MutableMapping[str, Any]):
    """Strict runtime mapping with attribute and dict-style access.

    Only the members named in ``REQUIRED_STATE_KEYS`` may be read or
    replaced; a missing member at construction time is a wiring bug.
    """

    __slots__ = ("_data",)

    def __init__(self, data: dict[str, Any]):
        missing = [key for key in REQUIRED_STATE_KEYS if key not in data]
        if missing:
            raise KeyError(f"Missing state members: {', '.join(missing)}")
        self._data = {key: data[key] for key in REQUIRED_STATE_KEYS}

    def __getitem__(self, key: str) -> Any:
        try:
            return self._data[key]
        except KeyError as exc:
            raise KeyError(key) from exc

    def __setitem__(self, key: str, value: Any) -> None:
        if key not in REQUIRED_STATE_KEY_SET:
            raise KeyError(key)
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        raise TypeError("BridgeState does not support deleting members")

    def __iter__(self) -> Iterator[str]:
        return iter(REQUIRED_STATE_KEYS)

    def __len__(self) -> int:
        return len(REQUIRED_STATE_KEYS)

    def __getattr__(self, name: str) -> Any:
        """Support attribute-style state reads used across routes."""
        if name in REQUIRED_STATE_KEY_SET:
            return self._data[name]
        raise AttributeError(name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "_data":
            object.__setattr__(self, name, value)
            return
        if name in REQUIRED_STATE_KEY_SET:
            self._data[name] = value
            return
        raise AttributeError(name)
