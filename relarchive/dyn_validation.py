"""Validation of archived trait objects.

Every implementation that can be checked registers, under its vtable number,
the layout of its archived value and a function that checks that value.
Checking a trait object then means checking its metadata against the
implementation registry, finding the checker for its vtable, claiming the
value's memory and running the checker.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from relarchive.dynamic import ArchivedDynMetadata, DynError
from relarchive.validation import Layout

__all__ = [
    "DynMetadataError",
    "InvalidImplIdError",
    "MismatchedCachedVtableError",
    "CheckDynError",
    "InvalidMetadataError",
    "CheckBytesUnimplementedError",
    "ImplValidation",
    "CheckBytesRegistry",
    "check_dyn_metadata",
    "check_dyn",
]

CheckBytesFn = Callable[[int, Any], Any]


class DynMetadataError(DynError):
    """The metadata of an archived trait object is invalid."""


class InvalidImplIdError(DynMetadataError):
    """The trait object has a type id with no registered implementation."""

    def __init__(self, type_id: int) -> None:
        self.type_id = type_id
        super().__init__(f"invalid impl id: {type_id} not registered")


class MismatchedCachedVtableError(DynMetadataError):
    """The cached vtable does not match the vtable for the type id."""

    def __init__(self, type_id: int, expected: int, found: int) -> None:
        self.type_id = type_id
        self.expected = expected
        self.found = found
        super().__init__(
            f"mismatched cached vtable for {type_id}: "
            f"expected {expected} but found {found}"
        )


class CheckDynError(DynError):
    """Checking the bytes of a trait object failed; ``error`` is the cause."""

    def __init__(self, error: BaseException) -> None:
        self.error: BaseException | None = error
        super().__init__(f"check bytes: {error}")


class InvalidMetadataError(CheckDynError):
    """The pointer metadata did not match any registered checker."""

    def __init__(self, vtable: int) -> None:
        self.vtable = vtable
        self.error = None
        DynError.__init__(self, f"invalid metadata: {vtable}")


class CheckBytesUnimplementedError(DynError):
    """The archived type registered no way to check its bytes."""

    def __init__(self) -> None:
        super().__init__("check bytes is not implemented for this type")


def _check_bytes_unimplemented(pos: int, context: Any) -> Any:
    raise CheckBytesUnimplementedError()


@dataclass(frozen=True)
class ImplValidation:
    """The layout of an archived value and the function that checks it."""

    layout: Layout
    check_bytes: CheckBytesFn = _check_bytes_unimplemented


class CheckBytesRegistry:
    """Maps vtable numbers to the validation of their archived values."""

    def __init__(self) -> None:
        self._by_vtable: dict[int, ImplValidation] = {}

    def add(
        self,
        vtable: int,
        layout: Layout,
        check_bytes: CheckBytesFn | None = None,
    ) -> ImplValidation:
        """Register validation for ``vtable``.

        Without ``check_bytes`` the entry always fails with
        ``CheckBytesUnimplementedError``. Raises ``DynError`` if the vtable is
        already registered.
        """
        if vtable in self._by_vtable:
            raise DynError(
                "vtable conflict, a trait implementation was likely added twice "
                "(but it's possible there was a hash collision)"
            )
        validation = (
            ImplValidation(layout)
            if check_bytes is None
            else ImplValidation(layout, check_bytes)
        )
        self._by_vtable[vtable] = validation
        return validation

    def get(self, vtable: int) -> ImplValidation | None:
        """Return the validation registered for ``vtable``, if any."""
        return self._by_vtable.get(vtable)

    def __len__(self) -> int:
        return len(self._by_vtable)

    def __contains__(self, vtable: object) -> bool:
        return vtable in self._by_vtable


def check_dyn_metadata(metadata: ArchivedDynMetadata) -> ArchivedDynMetadata:
    """Check that the metadata names a registered impl and a consistent cache."""
    data = metadata.registry.get(metadata.trait_name, metadata.type_id)
    if data is None:
        raise InvalidImplIdError(metadata.type_id)
    cached = metadata.cached_vtable
    if cached != 0 and cached != data.vtable:
        raise MismatchedCachedVtableError(metadata.type_id, data.vtable, cached)
    return metadata


def check_dyn(
    registry: CheckBytesRegistry,
    metadata: ArchivedDynMetadata,
    pos: int,
    context: Any,
) -> Any:
    """Check the trait object at ``pos`` described by ``metadata``.

    The value's memory is bounds checked and claimed in ``context`` before the
    registered checker runs as ``check_bytes(pos, context)``; its result is
    returned. Failures other than bad metadata are raised as ``CheckDynError``.
    """
    check_dyn_metadata(metadata)
    vtable = metadata.vtable()
    validation = registry.get(vtable)
    if validation is None:
        raise InvalidMetadataError(vtable)
    try:
        context.claim_owned_ptr(pos, validation.layout)
        return validation.check_bytes(pos, context)
    except CheckDynError:
        raise
    except Exception as exc:
        raise CheckDynError(exc) from exc