"""Byte containers that keep their contents aligned to 16 bytes."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar, overload

__all__ = ["Aligned", "AlignedVec", "ALIGNMENT"]

ALIGNMENT = 16

# Largest capacity a reservation may round up to (the top power of two of a
# 64-bit size).
_MAX_POWER_OF_TWO = 1 << 63

T = TypeVar("T")


def _next_power_of_two(n: int) -> int:
    if n <= 1:
        return 1
    return 1 << (n - 1).bit_length()


def _as_bytes(data: Any) -> bytes:
    if isinstance(data, int):
        raise TypeError("expected a bytes-like object or an iterable of ints, got int")
    return bytes(data)


@dataclass(frozen=True)
class Aligned(Generic[T]):
    """Wraps a value and marks it as aligned to 16 bytes."""

    value: T
    ALIGNMENT: ClassVar[int] = ALIGNMENT

    def __len__(self) -> int:
        return len(self.value)  # type: ignore[arg-type]

    def __getitem__(self, index: Any) -> Any:
        return self.value[index]  # type: ignore[index]


class AlignedVec:
    """A growable byte vector whose storage is aligned to 16 bytes.

    Capacity follows explicit rules: reservations round up to the next power
    of two, ``with_capacity`` reserves exactly, and ``shrink_to_fit`` trims
    capacity down to the length.
    """

    ALIGNMENT: ClassVar[int] = ALIGNMENT
    __hash__ = None  # type: ignore[assignment]

    def __init__(self, data: Any = b"") -> None:
        self._data = bytearray()
        self._capacity = 0
        chunk = _as_bytes(data)
        if chunk:
            self.extend(chunk)

    @classmethod
    def with_capacity(cls, capacity: int) -> AlignedVec:
        """Create an empty vector able to hold exactly ``capacity`` bytes."""
        if capacity < 0:
            raise ValueError("capacity must not be negative")
        vec = cls()
        vec._capacity = capacity
        return vec

    @property
    def capacity(self) -> int:
        """Number of bytes the vector can hold without growing."""
        return self._capacity

    def clear(self) -> None:
        """Remove all bytes; the capacity is left unchanged."""
        self._data.clear()

    def shrink_to_fit(self) -> None:
        """Reduce the capacity to the current length (no-op when empty)."""
        if not self._data:
            self.clear()
        else:
            self._capacity = len(self._data)

    def reserve(self, additional: int) -> None:
        """Make room for at least ``additional`` more bytes.

        Growth rounds the required size up to the next power of two.
        """
        if additional < 0:
            raise ValueError("additional must not be negative")
        needed = len(self._data) + additional
        if needed > self._capacity:
            if needed > _MAX_POWER_OF_TWO:
                raise OverflowError("cannot reserve a larger AlignedVec")
            self._capacity = _next_power_of_two(needed)

    def reserve_exact(self, additional: int) -> None:
        """Set the capacity to the power of two covering ``len + additional``."""
        if additional < 0:
            raise ValueError("additional must not be negative")
        needed = len(self._data) + additional
        if needed > _MAX_POWER_OF_TWO:
            raise OverflowError("reserve amount overflowed")
        self._capacity = _next_power_of_two(needed)

    def extend(self, data: Any) -> None:
        """Append every byte of ``data`` in order."""
        chunk = _as_bytes(data)
        self.reserve(len(chunk))
        self._data.extend(chunk)

    def push(self, value: int) -> None:
        """Append a single byte."""
        if not 0 <= value <= 0xFF:
            raise ValueError("byte must be in range(0, 256)")
        self.reserve(1)
        self._data.append(value)

    def pop(self) -> int | None:
        """Remove and return the last byte, or ``None`` when empty."""
        if not self._data:
            return None
        return self._data.pop()

    def set_len(self, new_len: int) -> None:
        """Force the length to ``new_len``; newly exposed bytes are zero."""
        if not 0 <= new_len <= self._capacity:
            raise ValueError(
                f"new length {new_len} exceeds capacity {self._capacity}"
            )
        current = len(self._data)
        if new_len < current:
            del self._data[new_len:]
        else:
            self._data.extend(bytes(new_len - current))

    def to_bytes(self) -> bytes:
        """Return the contents as an immutable ``bytes`` object."""
        self.shrink_to_fit()
        return bytes(self._data)

    def copy(self) -> AlignedVec:
        """Return a copy whose capacity equals its length."""
        result = AlignedVec.with_capacity(len(self._data))
        result._data.extend(self._data)
        return result

    def write(self, data: Any) -> int:
        """File-like write: append ``data`` and return its length."""
        chunk = _as_bytes(data)
        self.extend(chunk)
        return len(chunk)

    def writelines(self, buffers: Iterable[Any]) -> int:
        """Append several buffers, reserving for all of them up front."""
        chunks = [_as_bytes(buffer) for buffer in buffers]
        total = sum(len(chunk) for chunk in chunks)
        self.reserve(total)
        for chunk in chunks:
            self.extend(chunk)
        return total

    def flush(self) -> None:
        """Writes land directly in storage; this only ensures capacity covers them."""
        self.reserve(0)

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return bool(self._data)

    @overload
    def __getitem__(self, index: int) -> int: ...

    @overload
    def __getitem__(self, index: slice) -> bytes: ...

    def __getitem__(self, index: int | slice) -> int | bytes:
        if isinstance(index, slice):
            return bytes(self._data[index])
        return self._data[index]

    def __setitem__(self, index: int | slice, value: Any) -> None:
        if isinstance(index, slice):
            chunk = _as_bytes(value)
            if len(range(*index.indices(len(self._data)))) != len(chunk):
                raise ValueError("slice assignment cannot change the vector length")
            self._data[index] = chunk
        else:
            self._data[index] = value

    def __iter__(self) -> Iterator[int]:
        return iter(bytes(self._data))

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, AlignedVec):
            return self._data == other._data
        if isinstance(other, (bytes, bytearray, memoryview)):
            return self._data == bytes(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"AlignedVec({bytes(self._data)!r})"