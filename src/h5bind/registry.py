"""Handle Registry.

Every native identifier produced by h5bind is wrapped into a registry entry
the moment the creating call returns, while the concurrency guard is still
held. Entries are reference counted: ``Handle.share()`` hands out another
reference to the same entry, and the native release function runs exactly
once, either on an explicit ``close()`` or when the last reference is
garbage collected.

Safety Model:
    1. A closed entry is invalid for every reference sharing it.
    2. Closing twice is a no-op that never reaches the native library.
    3. A failed native release still leaves the entry invalid.
    4. Validity checks never call into the native library.
"""

from __future__ import annotations

import atexit
import logging
import threading
from collections import Counter
from enum import Enum
from typing import Dict, Optional, Tuple

from .errors import H5BindError, InvalidHandle
from .guard import guard
from .translator import native_call

__all__ = ["HandleKind", "Handle", "Registry", "registry"]

logger = logging.getLogger("h5bind.registry")


# =============================================================================
# Handle Kinds
# =============================================================================

class HandleKind(Enum):
    """Kind of native object behind a handle, with its release function."""

    FILE = ("file", "H5Fclose")
    GROUP = ("group", "H5Gclose")
    DATASET = ("dataset", "H5Dclose")
    ATTRIBUTE = ("attribute", "H5Aclose")
    DATATYPE = ("datatype", "H5Tclose")
    DATASPACE = ("dataspace", "H5Sclose")
    PROPERTY_LIST = ("property_list", "H5Pclose")

    def __init__(self, label: str, releaser: str):
        self.label = label
        self.releaser = releaser


# Objects before their containers when everything is closed at once.
_CLOSE_ORDER = (
    HandleKind.ATTRIBUTE,
    HandleKind.DATASET,
    HandleKind.DATATYPE,
    HandleKind.DATASPACE,
    HandleKind.PROPERTY_LIST,
    HandleKind.GROUP,
    HandleKind.FILE,
)


class _Entry:
    """Registry-private record of one native identifier."""

    __slots__ = ("raw_id", "kind", "owning", "refs", "closed")

    def __init__(self, raw_id: int, kind: HandleKind, owning: bool):
        self.raw_id = raw_id
        self.kind = kind
        self.owning = owning
        self.refs = 1
        self.closed = False


# =============================================================================
# Handle
# =============================================================================

class Handle:
    """
    Shared reference to one registry entry.

    Handles are never constructed directly; use ``Registry.wrap`` or
    ``Registry.open``.
    """

    __slots__ = ("_entry", "_registry", "_dropped", "__weakref__")

    def __init__(self, entry: _Entry, registry: "Registry"):
        self._entry = entry
        self._registry = registry
        self._dropped = False

    def __del__(self):
        if not self._dropped:
            self._dropped = True
            self._registry._drop(self._entry)

    def __enter__(self) -> "Handle":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def raw(self) -> int:
        """The native identifier. Raises InvalidHandle once closed."""
        entry = self._entry
        if entry.closed:
            raise InvalidHandle(f"{entry.kind.label} handle is closed")
        return entry.raw_id

    @property
    def kind(self) -> HandleKind:
        return self._entry.kind

    @property
    def owning(self) -> bool:
        return self._entry.owning

    @property
    def valid(self) -> bool:
        return not self._entry.closed

    @property
    def shares(self) -> int:
        """Number of live references to this handle's entry."""
        return self._entry.refs

    def share(self) -> "Handle":
        """Another reference to the same native identifier."""
        return self._registry.share(self)

    def close(self) -> None:
        self._registry.close(self)

    def expect(self, *kinds: HandleKind) -> "Handle":
        """Return self if valid and of one of ``kinds``, else raise InvalidHandle."""
        entry = self._entry
        if entry.closed:
            raise InvalidHandle(f"{entry.kind.label} handle is closed")
        if kinds and entry.kind not in kinds:
            expected = "/".join(k.label for k in kinds)
            raise InvalidHandle(f"expected a {expected} handle, got {entry.kind.label}")
        return self

    def same_entry(self, other: "Handle") -> bool:
        return self._entry is other._entry

    def __repr__(self) -> str:
        entry = self._entry
        state = "closed" if entry.closed else f"id={entry.raw_id}"
        own = "" if entry.owning else ", borrowed"
        return f"Handle({entry.kind.label}, {state}{own})"


# =============================================================================
# Registry
# =============================================================================

class Registry:
    """Arena of live native identifiers keyed by (kind, raw id)."""

    def __init__(self):
        self._lock = threading.RLock()
        self._live: Dict[Tuple[HandleKind, int], _Entry] = {}
        self._released: Counter = Counter()

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def wrap(self, raw_id: int, kind: HandleKind, owning: bool = True) -> Handle:
        """
        Take ownership of a freshly returned native identifier.

        Raises:
            InvalidHandle: If ``raw_id`` is negative or already live for ``kind``.
        """
        if raw_id < 0:
            raise InvalidHandle(f"cannot wrap negative {kind.label} id {raw_id}")
        key = (kind, raw_id)
        with self._lock:
            if key in self._live:
                raise InvalidHandle(f"{kind.label} id {raw_id} is already registered")
            entry = _Entry(raw_id, kind, owning)
            self._live[key] = entry
        logger.debug("wrap %s id=%d%s", kind.label, raw_id, "" if owning else " (borrowed)")
        return Handle(entry, self)

    def open(self, kind: HandleKind, func: str, *args, context: str = "") -> Handle:
        """
        Issue a creating/opening native call and wrap its result.

        The guard is held from the call until the identifier is registered.
        """
        with guard:
            raw_id = native_call(func, *args, context=context)
            try:
                return self.wrap(raw_id, kind)
            except InvalidHandle:
                native_call(kind.releaser, raw_id)
                raise

    def share(self, handle: Handle) -> Handle:
        with self._lock:
            entry = handle._entry
            if entry.closed:
                raise InvalidHandle(f"cannot share a closed {entry.kind.label} handle")
            entry.refs += 1
        return Handle(entry, self)

    # -------------------------------------------------------------------------
    # Release
    # -------------------------------------------------------------------------

    def _retire(self, entry: _Entry) -> bool:
        """Mark ``entry`` closed; True if the caller must release it natively."""
        with self._lock:
            if entry.closed:
                return False
            entry.closed = True
            self._live.pop((entry.kind, entry.raw_id), None)
            if entry.owning:
                self._released[entry.kind] += 1
            return entry.owning

    def _release(self, entry: _Entry) -> None:
        logger.debug("release %s id=%d", entry.kind.label, entry.raw_id)
        native_call(entry.kind.releaser, entry.raw_id, context=f"closing {entry.kind.label}")

    def close(self, handle: Handle) -> None:
        """
        Release the native identifier behind ``handle`` exactly once.

        Closing an already closed handle does nothing.

        Raises:
            NativeLibraryError: If the native release fails (the handle is
                invalid afterwards regardless).
        """
        entry = handle._entry
        if self._retire(entry):
            self._release(entry)

    def _drop(self, entry: _Entry) -> None:
        """Called when one reference is garbage collected."""
        with self._lock:
            entry.refs -= 1
            if entry.refs > 0:
                return
        if self._retire(entry):
            try:
                self._release(entry)
            except H5BindError as e:
                logger.warning("releasing %s id=%d failed: %s", entry.kind.label, entry.raw_id, e)

    def close_all(self) -> None:
        """Close every live entry, objects before their files."""
        with self._lock:
            entries = sorted(self._live.values(), key=lambda e: _CLOSE_ORDER.index(e.kind))
        for entry in entries:
            if self._retire(entry):
                try:
                    self._release(entry)
                except H5BindError as e:
                    logger.warning("releasing %s id=%d failed: %s", entry.kind.label, entry.raw_id, e)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def is_valid(self, handle: Handle) -> bool:
        return not handle._entry.closed

    def live_count(self, kind: Optional[HandleKind] = None) -> int:
        with self._lock:
            if kind is None:
                return len(self._live)
            return sum(1 for k, _ in self._live if k is kind)

    def release_count(self, kind: Optional[HandleKind] = None) -> int:
        with self._lock:
            if kind is None:
                return sum(self._released.values())
            return self._released[kind]


# Global registry instance
registry = Registry()
atexit.register(registry.close_all)
