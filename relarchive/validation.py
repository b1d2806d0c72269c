"""Bounds, ownership and sharing checks for relative pointers in an archive.

Positions are byte offsets from the start of the archive. The archive itself
may sit at any address (``begin``), which only matters for alignment checks.
"""

from __future__ import annotations

from bisect import bisect_left
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any, TypeVar

__all__ = [
    "Layout",
    "ArchiveBoundsError",
    "UnderalignedError",
    "OutOfBoundsError",
    "OverrunError",
    "UnalignedError",
    "ArchiveMemoryError",
    "ClaimOverlapError",
    "SharedArchiveError",
    "TypeMismatchError",
    "CheckArchiveError",
    "CheckBytesError",
    "ContextError",
    "Interval",
    "ArchiveBoundsValidator",
    "ArchiveValidator",
    "SharedArchiveValidator",
    "default_validator",
    "check_archive",
    "check_archive_with_context",
]

R = TypeVar("R")


@dataclass(frozen=True)
class Layout:
    """Size and alignment of a type."""

    size: int
    align: int = 1

    def __post_init__(self) -> None:
        if self.size < 0:
            raise ValueError("size must not be negative")
        if self.align <= 0 or self.align & (self.align - 1):
            raise ValueError("align must be a power of two")

    @classmethod
    def of_array(cls, element: Layout, count: int) -> Layout:
        """Layout of ``count`` consecutive elements of ``element``."""
        if count < 0:
            raise ValueError("count must not be negative")
        stride = -(-element.size // element.align) * element.align
        return cls(stride * count, element.align)


class ArchiveBoundsError(Exception):
    """A relative pointer or memory block failed a bounds check."""


class UnderalignedError(ArchiveBoundsError):
    """The archive is under-aligned for one of the types inside."""

    def __init__(self, expected_align: int, actual_align: int) -> None:
        self.expected_align = expected_align
        self.actual_align = actual_align
        super().__init__(
            f"archive underaligned: need alignment {expected_align} "
            f"but have alignment {actual_align}"
        )


class OutOfBoundsError(ArchiveBoundsError):
    """A pointer pointed outside the bounds of the archive."""

    def __init__(self, base: int, offset: int, archive_len: int) -> None:
        self.base = base
        self.offset = offset
        self.archive_len = archive_len
        super().__init__(
            f"out of bounds pointer: base {base} offset {offset} "
            f"in archive len {archive_len}"
        )


class OverrunError(ArchiveBoundsError):
    """There was not enough space for the type at the pointed location."""

    def __init__(self, pos: int, size: int, archive_len: int) -> None:
        self.pos = pos
        self.size = size
        self.archive_len = archive_len
        super().__init__(
            f"archive overrun: pos {pos} size {size} in archive len {archive_len}"
        )


class UnalignedError(ArchiveBoundsError):
    """The pointer was not aligned properly for the type."""

    def __init__(self, pos: int, align: int) -> None:
        self.pos = pos
        self.align = align
        super().__init__(
            f"unaligned pointer: pos {pos} unaligned for alignment {align}"
        )


@dataclass(frozen=True, order=True)
class Interval:
    """A half-open range of bytes ``[start, end)`` in an archive."""

    start: int
    end: int

    def overlaps(self, other: Interval) -> bool:
        """Whether the two ranges share at least one byte."""
        return self.start < other.end and other.start < self.end


class ArchiveMemoryError(Exception):
    """An error related to ownership of archive memory."""


class ClaimOverlapError(ArchiveMemoryError):
    """Multiple objects claim to own the same memory region."""

    def __init__(self, previous: Interval, current: Interval) -> None:
        self.previous = previous
        self.current = current
        super().__init__(
            f"memory claim overlap: current [{current.start:#x}..{current.end:#x}] "
            f"overlaps previous [{previous.start:#x}..{previous.end:#x}]"
        )


class SharedArchiveError(Exception):
    """An error related to shared archive memory."""


class TypeMismatchError(SharedArchiveError):
    """The same location was checked as two different types."""

    def __init__(self, previous: Hashable, current: Hashable) -> None:
        self.previous = previous
        self.current = current
        super().__init__(
            "the same memory region has been claimed as two different types "
            f"({previous!r} and {current!r})"
        )


_CONTEXT_ERRORS = (ArchiveBoundsError, ArchiveMemoryError, SharedArchiveError)


class CheckArchiveError(Exception):
    """Checking an archive failed; ``error`` holds the underlying cause."""

    _prefix = ""

    def __init__(self, error: BaseException) -> None:
        self.error = error
        super().__init__(f"{self._prefix}: {error}")


class CheckBytesError(CheckArchiveError):
    """Validating the object itself failed."""

    _prefix = "check bytes error"


class ContextError(CheckArchiveError):
    """The validation context rejected the object's location."""

    _prefix = "context error"


class ArchiveBoundsValidator:
    """Bounds checks pointers within one archive."""

    def __init__(self, data: Any, begin: int = 0) -> None:
        if begin < 0:
            raise ValueError("begin must not be negative")
        self.data = data
        self.begin = begin
        self._len = len(data)

    def __len__(self) -> int:
        return self._len

    def check_rel_ptr(self, base: int, offset: int) -> int:
        """Resolve ``base + offset``, raising if it leaves the archive."""
        if offset < -base or offset > self._len - base:
            raise OutOfBoundsError(base, offset, self._len)
        return base + offset

    def bounds_check_ptr(self, pos: int, layout: Layout) -> None:
        """Check that ``layout`` fits, aligned, at position ``pos``."""
        mask = layout.align - 1
        if self.begin & mask:
            actual = self.begin & -self.begin
            raise UnderalignedError(layout.align, actual)
        if pos & mask:
            raise UnalignedError(pos, layout.align)
        if self._len - pos < layout.size:
            raise OverrunError(pos, layout.size, self._len)


class ArchiveValidator:
    """Adds ownership tracking so no byte range is claimed twice."""

    def __init__(self, inner: ArchiveBoundsValidator) -> None:
        self.inner = inner
        self._intervals: list[Interval] = []

    @property
    def intervals(self) -> tuple[Interval, ...]:
        """The claimed ranges, sorted."""
        return tuple(self._intervals)

    def check_rel_ptr(self, base: int, offset: int) -> int:
        return self.inner.check_rel_ptr(base, offset)

    def bounds_check_ptr(self, pos: int, layout: Layout) -> None:
        self.inner.bounds_check_ptr(pos, layout)

    def claim_bytes(self, start: int, length: int) -> None:
        """Claim ``length`` bytes at ``start``, raising on any overlap."""
        interval = Interval(start, start + length)
        intervals = self._intervals
        index = bisect_left(intervals, interval)
        if index < len(intervals):
            following = intervals[index]
            if following == interval or following.overlaps(interval):
                raise ClaimOverlapError(following, interval)
            if following.start == interval.end:
                intervals[index] = Interval(interval.start, following.end)
                return
        if index > 0:
            preceding = intervals[index - 1]
            if preceding.overlaps(interval):
                raise ClaimOverlapError(preceding, interval)
            if preceding.end == interval.start:
                intervals[index - 1] = Interval(preceding.start, interval.end)
                return
        intervals.insert(index, interval)

    def claim_owned_ptr(self, pos: int, layout: Layout) -> None:
        """Bounds check and claim the memory of a value at ``pos``."""
        self.bounds_check_ptr(pos, layout)
        self.claim_bytes(pos, layout.size)

    def claim_owned_rel_ptr(self, base: int, offset: int, layout: Layout) -> int:
        """Claim the memory a relative pointer refers to; return its position."""
        pos = self.check_rel_ptr(base, offset)
        self.claim_owned_ptr(pos, layout)
        return pos


class SharedArchiveValidator:
    """Adds shared-pointer tracking on top of an ownership context."""

    def __init__(self, inner: ArchiveValidator) -> None:
        self.inner = inner
        self._shared_blocks: dict[int, Hashable] = {}

    def check_rel_ptr(self, base: int, offset: int) -> int:
        return self.inner.check_rel_ptr(base, offset)

    def bounds_check_ptr(self, pos: int, layout: Layout) -> None:
        self.inner.bounds_check_ptr(pos, layout)

    def claim_bytes(self, start: int, length: int) -> None:
        self.inner.claim_bytes(start, length)

    def claim_owned_ptr(self, pos: int, layout: Layout) -> None:
        """Bounds check and claim the memory of a value at ``pos``."""
        self.bounds_check_ptr(pos, layout)
        self.claim_bytes(pos, layout.size)

    def claim_owned_rel_ptr(self, base: int, offset: int, layout: Layout) -> int:
        """Claim the memory a relative pointer refers to; return its position."""
        pos = self.check_rel_ptr(base, offset)
        self.claim_owned_ptr(pos, layout)
        return pos

    def claim_shared_bytes(self, start: int, length: int, type_id: Hashable) -> bool:
        """Claim shared bytes; return whether they still need checking."""
        previous = self._shared_blocks.get(start)
        if previous is not None:
            if previous != type_id:
                raise TypeMismatchError(previous, type_id)
            return False
        self._shared_blocks[start] = type_id
        self.inner.claim_bytes(start, length)
        return True

    def claim_shared_ptr(
        self, base: int, offset: int, layout: Layout, type_id: Hashable
    ) -> int | None:
        """Claim a shared pointer target; return its position if unchecked so far."""
        pos = self.check_rel_ptr(base, offset)
        self.bounds_check_ptr(pos, layout)
        if self.claim_shared_bytes(pos, layout.size, type_id):
            return pos
        return None


def default_validator(data: Any, begin: int = 0) -> SharedArchiveValidator:
    """Build the validator stack that supports all builtin checks."""
    return SharedArchiveValidator(ArchiveValidator(ArchiveBoundsValidator(data, begin)))


def check_archive(
    data: Any,
    pos: int,
    layout: Layout,
    check_bytes: Callable[[Any, int, Any], R],
) -> R:
    """Validate the value at ``pos`` with a fresh default validator."""
    return check_archive_with_context(
        data, pos, layout, check_bytes, default_validator(data)
    )


def check_archive_with_context(
    data: Any,
    pos: int,
    layout: Layout,
    check_bytes: Callable[[Any, int, Any], R],
    context: Any,
) -> R:
    """Validate the value at ``pos`` using ``context``.

    ``check_bytes(data, pos, context)`` validates the value itself and returns
    whatever represents it.
    """
    try:
        target = context.check_rel_ptr(0, pos)
        context.bounds_check_ptr(target, layout)
        context.claim_bytes(target, layout.size)
    except _CONTEXT_ERRORS as exc:
        raise ContextError(exc) from exc
    try:
        return check_bytes(data, target, context)
    except CheckArchiveError:
        raise
    except Exception as exc:
        raise CheckBytesError(exc) from exc