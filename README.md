# relarchive

Building blocks for archives laid out as a single byte buffer, in which
objects refer to one another through relative pointers (byte offsets from a
base position).

## Modules

### `relarchive.aligned`

- `AlignedVec`: a growable byte vector with explicit capacity rules.
  `reserve` rounds the required size up to the next power of two,
  `reserve_exact` sets the capacity to the power of two covering
  `len + additional`, `with_capacity` reserves exactly the given amount and
  `shrink_to_fit` trims the capacity down to the length. It supports
  `push`, `pop` (returns `None` when empty), `extend`, `clear`, `set_len`
  (newly exposed bytes are zero), `copy`, `to_bytes`, indexing and slicing
  (slice assignment may not change the length), iteration, `bytes()` and
  comparison with other vectors or bytes-like objects. It also acts as a
  writable binary stream through `write`, `writelines` and `flush`.
- `Aligned`: a frozen wrapper that marks a value as 16-byte aligned and
  forwards `len()` and indexing to it.

### `relarchive.validation`

Validation contexts for untrusted archives. Positions are offsets into the
buffer; the optional `begin` argument gives the buffer's own address and is
used only for alignment checks.

- `Layout(size, align)` describes a type; `Layout.of_array` builds the
  layout of consecutive elements.
- `ArchiveBoundsValidator` checks that relative pointers stay inside the
  buffer (`check_rel_ptr`) and that a value is aligned and fits at a
  position (`bounds_check_ptr`).
- `ArchiveValidator` adds ownership tracking: `claim_bytes` raises
  `ClaimOverlapError` if any byte is claimed twice, and adjacent claims are
  merged into one `Interval`. `claim_owned_ptr` and `claim_owned_rel_ptr`
  combine the bounds check and the claim.
- `SharedArchiveValidator` adds shared blocks: `claim_shared_bytes` and
  `claim_shared_ptr` let the same position be reached more than once as long
  as it is always claimed with the same type id, and report whether the
  block still needs to be checked.
- `default_validator(data, begin=0)` builds the full stack.
- `check_archive` and `check_archive_with_context` check the root value at a
  position and then run a caller-supplied `check_bytes(data, pos, context)`.

### `relarchive.dynamic`

- `hash_type` gives a stable 64-bit hash of a type name.
- `ImplRegistry` maps an `ImplId` (hashed trait name and type name) to an
  `ImplData` holding the implementation, a process-unique non-zero `vtable`
  number and `ImplDebugInfo` saying where it was registered. Registering the
  same id twice raises `ImplConflictError`. `register_impl` is a decorator
  form of `ImplRegistry.add`.
- `ArchivedDynMetadata` resolves a stored type id back to its registered
  implementation (`vtable`, `implementation`), caching the vtable number on
  first lookup unless `cache=False`. An unregistered id raises `DynError`.

### `relarchive.dyn_validation`

- `check_dyn_metadata` raises `InvalidImplIdError` for an unregistered type
  id and `MismatchedCachedVtableError` when a non-zero cached vtable does not
  match the registry.
- `CheckBytesRegistry` maps vtable numbers to an `ImplValidation` (layout and
  checker). An entry added without a checker always fails with
  `CheckBytesUnimplementedError`.
- `check_dyn` checks the metadata, finds the checker (raising
  `InvalidMetadataError` if there is none), claims the value's memory in the
  given context and runs the checker; other failures are raised as
  `CheckDynError`.

## Example

```python
from relarchive.aligned import AlignedVec
from relarchive.validation import Layout, check_archive

buf = AlignedVec()
buf.write((42).to_bytes(4, "little"))

def check_u32(data, pos, context):
    return int.from_bytes(bytes(data[pos:pos + 4]), "little")

value = check_archive(bytes(buf), 0, Layout(size=4, align=4), check_u32)
assert value == 42
```

## Errors

Bounds problems are raised as subclasses of `ArchiveBoundsError`
(`OutOfBoundsError`, `OverrunError`, `UnalignedError`, `UnderalignedError`),
ownership conflicts as `ClaimOverlapError`, shared-type conflicts as
`TypeMismatchError`, and failures inside `check_archive` as `ContextError`
(the context rejected the location) or `CheckBytesError` (the checker
failed), both subclasses of `CheckArchiveError` with the cause in `error`.

## What this package does not do

It does not serialize or deserialize values and has no way to derive an
archived layout from a Python class. Callers lay out the bytes themselves
and supply the layouts and `check_bytes` functions that describe them.

## Running the tests

```
pip install -e ".[test]"
pytest
```