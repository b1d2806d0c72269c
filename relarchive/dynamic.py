"""A registry of trait-object implementations addressed by stable type hashes.

An archived trait object stores only a 64-bit hash of its concrete type's
name. At access time the hash and the trait name select a registered
implementation, which is identified by a process-unique ``vtable`` number.
"""

from __future__ import annotations

import hashlib
import inspect
import itertools
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

__all__ = [
    "hash_type",
    "DynError",
    "ImplConflictError",
    "ImplId",
    "ImplDebugInfo",
    "ImplData",
    "ImplRegistry",
    "register_impl",
    "ArchivedDynMetadata",
]

T = TypeVar("T")

_MASK_64 = (1 << 64) - 1

# Vtable numbers are unique across all registries and never zero, so zero can
# mean "not cached yet".
_vtable_numbers = itertools.count(1)


def hash_type(type_name: str) -> int:
    """Return a stable 64-bit hash of a type name."""
    digest = hashlib.blake2b(type_name.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "little") & _MASK_64


class DynError(Exception):
    """An error raised while working with archived trait objects."""


class ImplConflictError(DynError):
    """Two implementations were registered under the same id."""

    def __init__(self, impl_id: ImplId, existing: ImplData, new: ImplData) -> None:
        self.impl_id = impl_id
        self.existing = existing
        self.new = new
        super().__init__(
            "impl id conflict, a trait implementation was likely added twice "
            "(but it's possible there was a hash collision); "
            f"existing impl registered at {existing.debug_info}, "
            f"new impl registered at {new.debug_info}"
        )


@dataclass(frozen=True)
class ImplId:
    """Identifies one implementation of a trait for one type."""

    trait_id: int
    type_id: int

    @classmethod
    def from_names(cls, type_name: str, trait_name: str) -> ImplId:
        """Build the id from the concrete type name and the trait name."""
        return cls.from_type_id(trait_name, hash_type(type_name))

    @classmethod
    def from_type_id(cls, trait_name: str, type_id: int) -> ImplId:
        """Build the id from a trait name and an already hashed type id.

        The lowest bit of the type id is always set so that a stored id can
        never be confused with an empty vtable cache.
        """
        return cls(trait_id=hash_type(trait_name), type_id=(type_id | 1) & _MASK_64)


@dataclass(frozen=True)
class ImplDebugInfo:
    """Where an implementation was registered."""

    file: str
    line: int
    column: int = 0

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


@dataclass(frozen=True)
class ImplData:
    """A registered implementation and its vtable number."""

    vtable: int
    implementation: Any
    debug_info: ImplDebugInfo


def _caller_debug_info(skip: int) -> ImplDebugInfo:
    frame = inspect.currentframe()
    try:
        for _ in range(skip + 1):
            if frame is None or frame.f_back is None:
                break
            frame = frame.f_back
        if frame is None:
            return ImplDebugInfo("<unknown>", 0)
        return ImplDebugInfo(frame.f_code.co_filename, frame.f_lineno)
    finally:
        del frame


class ImplRegistry:
    """Maps implementation ids to registered implementations."""

    def __init__(self) -> None:
        self._by_id: dict[ImplId, ImplData] = {}

    def add(
        self,
        type_name: str,
        trait_name: str,
        implementation: Any,
        debug_info: ImplDebugInfo | None = None,
    ) -> ImplData:
        """Register ``implementation`` of ``trait_name`` for ``type_name``.

        Raises ``ImplConflictError`` if the id is already taken.
        """
        if debug_info is None:
            debug_info = _caller_debug_info(1)
        impl_id = ImplId.from_names(type_name, trait_name)
        data = ImplData(next(_vtable_numbers), implementation, debug_info)
        existing = self._by_id.get(impl_id)
        if existing is not None:
            raise ImplConflictError(impl_id, existing, data)
        self._by_id[impl_id] = data
        return data

    def get(self, trait_name: str, type_id: int) -> ImplData | None:
        """Look up the implementation for a trait and a hashed type id."""
        return self._by_id.get(ImplId.from_type_id(trait_name, type_id))

    def __len__(self) -> int:
        return len(self._by_id)


def register_impl(
    registry: ImplRegistry, type_name: str, trait_name: str
) -> Callable[[T], T]:
    """Decorator that registers the decorated object as an implementation."""

    def decorator(implementation: T) -> T:
        try:
            lines = inspect.getsourcelines(implementation)  # type: ignore[arg-type]
            file = inspect.getsourcefile(implementation) or "<unknown>"  # type: ignore[arg-type]
            debug_info = ImplDebugInfo(file, lines[1])
        except (TypeError, OSError):
            debug_info = _caller_debug_info(1)
        registry.add(type_name, trait_name, implementation, debug_info)
        return implementation

    return decorator


class ArchivedDynMetadata:
    """The archived metadata of a trait object: its type id and vtable cache."""

    def __init__(
        self,
        trait_name: str,
        type_id: int,
        registry: ImplRegistry,
        cache: bool = True,
    ) -> None:
        self.trait_name = trait_name
        self.type_id = type_id & _MASK_64
        self.registry = registry
        self.cache = cache
        self.cached_vtable = 0

    def _lookup(self) -> ImplData:
        data = self.registry.get(self.trait_name, self.type_id)
        if data is None:
            raise DynError("attempted to get vtable for an unregistered impl")
        return data

    def vtable(self) -> int:
        """Return the vtable number, caching it on first lookup if enabled."""
        if self.cache and self.cached_vtable != 0:
            return self.cached_vtable
        vtable = self._lookup().vtable
        if self.cache:
            self.cached_vtable = vtable
        return vtable

    def implementation(self) -> Any:
        """Return the registered implementation for this trait object."""
        self.vtable()
        return self._lookup().implementation

    def __repr__(self) -> str:
        return (
            f"ArchivedDynMetadata(trait_name={self.trait_name!r}, "
            f"type_id={self.type_id}, cached_vtable={self.cached_vtable})"
        )