import pytest

from relarchive.dyn_validation import (
    CheckBytesRegistry,
    CheckBytesUnimplementedError,
    CheckDynError,
    DynMetadataError,
    ImplValidation,
    InvalidImplIdError,
    InvalidMetadataError,
    MismatchedCachedVtableError,
    check_dyn,
    check_dyn_metadata,
)
from relarchive.dynamic import (
    ArchivedDynMetadata,
    DynError,
    ImplDebugInfo,
    ImplRegistry,
    hash_type,
)
from relarchive.validation import (
    ClaimOverlapError,
    Interval,
    Layout,
    OverrunError,
    default_validator,
)

TRAIT = "dyn ExampleTrait"
TYPE = "ArchivedIntStruct"


@pytest.fixture
def impls():
    registry = ImplRegistry()
    data = registry.add(TYPE, TRAIT, "impl", ImplDebugInfo("example.py", 1))
    return registry, data


def make_metadata(impls, cache=True):
    registry, _ = impls
    return ArchivedDynMetadata(TRAIT, hash_type(TYPE), registry, cache)


def test_invalid_impl_id_message():
    err = InvalidImplIdError(42)
    assert str(err) == "invalid impl id: 42 not registered"
    assert err.type_id == 42
    assert isinstance(err, DynMetadataError)


def test_mismatched_cached_vtable_message():
    err = MismatchedCachedVtableError(7, 1, 2)
    assert str(err) == "mismatched cached vtable for 7: expected 1 but found 2"
    assert (err.type_id, err.expected, err.found) == (7, 1, 2)


def test_check_dyn_error_messages():
    assert str(InvalidMetadataError(9)) == "invalid metadata: 9"
    assert InvalidMetadataError(9).vtable == 9
    wrapped = CheckDynError(CheckBytesUnimplementedError())
    assert str(wrapped) == "check bytes: check bytes is not implemented for this type"


def test_check_dyn_metadata_ok_uncached(impls):
    metadata = make_metadata(impls)
    assert check_dyn_metadata(metadata) is metadata


def test_check_dyn_metadata_ok_cached(impls):
    _, data = impls
    metadata = make_metadata(impls)
    assert metadata.vtable() == data.vtable
    assert check_dyn_metadata(metadata) is metadata


def test_check_dyn_metadata_unregistered(impls):
    registry, _ = impls
    type_id = hash_type("Unknown")
    metadata = ArchivedDynMetadata(TRAIT, type_id, registry)
    with pytest.raises(InvalidImplIdError) as info:
        check_dyn_metadata(metadata)
    assert info.value.type_id == metadata.type_id


def test_check_dyn_metadata_mismatched_cache(impls):
    _, data = impls
    metadata = make_metadata(impls)
    metadata.cached_vtable = data.vtable + 1000
    with pytest.raises(MismatchedCachedVtableError) as info:
        check_dyn_metadata(metadata)
    assert info.value.expected == data.vtable
    assert info.value.found == data.vtable + 1000


def test_registry_add_and_get():
    registry = CheckBytesRegistry()
    layout = Layout(4, 4)
    validation = registry.add(3, layout, lambda pos, ctx: pos)
    assert registry.get(3) is validation
    assert registry.get(4) is None
    assert len(registry) == 1
    assert 3 in registry
    assert validation.layout == layout


def test_registry_conflict():
    registry = CheckBytesRegistry()
    registry.add(3, Layout(1))
    with pytest.raises(DynError):
        registry.add(3, Layout(1))
    assert len(registry) == 1


def test_default_validation_is_unimplemented():
    validation = ImplValidation(Layout(1))
    with pytest.raises(CheckBytesUnimplementedError):
        validation.check_bytes(0, None)


def test_check_dyn_success_claims_memory(impls):
    _, data = impls
    buf = bytes(range(16))
    checks = CheckBytesRegistry()
    checks.add(
        data.vtable, Layout(4, 4), lambda pos, ctx: buf[pos : pos + 4]
    )
    context = default_validator(buf)
    result = check_dyn(checks, make_metadata(impls), 4, context)
    assert result == buf[4:8]
    assert context.inner.intervals == (Interval(4, 8),)


def test_check_dyn_unimplemented(impls):
    _, data = impls
    checks = CheckBytesRegistry()
    checks.add(data.vtable, Layout(4, 4))
    with pytest.raises(CheckDynError) as info:
        check_dyn(checks, make_metadata(impls), 0, default_validator(bytes(8)))
    assert isinstance(info.value.error, CheckBytesUnimplementedError)


def test_check_dyn_missing_checker(impls):
    _, data = impls
    checks = CheckBytesRegistry()
    with pytest.raises(InvalidMetadataError) as info:
        check_dyn(checks, make_metadata(impls), 0, default_validator(bytes(8)))
    assert info.value.vtable == data.vtable


def test_check_dyn_overrun(impls):
    _, data = impls
    checks = CheckBytesRegistry()
    checks.add(data.vtable, Layout(8, 4), lambda pos, ctx: True)
    with pytest.raises(CheckDynError) as info:
        check_dyn(checks, make_metadata(impls), 4, default_validator(bytes(8)))
    assert isinstance(info.value.error, OverrunError)


def test_check_dyn_double_claim(impls):
    _, data = impls
    checks = CheckBytesRegistry()
    checks.add(data.vtable, Layout(4, 4), lambda pos, ctx: pos)
    context = default_validator(bytes(16))
    assert check_dyn(checks, make_metadata(impls), 0, context) == 0
    with pytest.raises(CheckDynError) as info:
        check_dyn(checks, make_metadata(impls), 0, context)
    assert isinstance(info.value.error, ClaimOverlapError)


def test_check_dyn_wraps_checker_error(impls):
    _, data = impls

    def failing(pos, ctx):
        raise ValueError("bad value")

    checks = CheckBytesRegistry()
    checks.add(data.vtable, Layout(2, 2), failing)
    with pytest.raises(CheckDynError) as info:
        check_dyn(checks, make_metadata(impls), 0, default_validator(bytes(4)))
    assert isinstance(info.value.error, ValueError)
    assert str(info.value) == "check bytes: bad value"


def test_check_dyn_bad_metadata_propagates(impls):
    registry, _ = impls
    metadata = ArchivedDynMetadata(TRAIT, hash_type("Missing"), registry)
    with pytest.raises(InvalidImplIdError):
        check_dyn(CheckBytesRegistry(), metadata, 0, default_validator(bytes(4)))