import pytest

from loxvm.errors import ErrorKind, VmError


@pytest.mark.parametrize("kind", list(ErrorKind))
def test_message_is_kind_description(kind):
    error = VmError(kind)
    assert error.kind is kind
    assert str(error) == kind.value


def test_raised_error_keeps_kind():
    error = VmError(ErrorKind.INDEX_OUT_OF_RANGE)
    assert error.kind is ErrorKind.INDEX_OUT_OF_RANGE
    with pytest.raises(VmError) as info:
        raise error
    assert info.value is error
    assert info.value.kind is ErrorKind.INDEX_OUT_OF_RANGE


def test_match_on_message():
    error = VmError(ErrorKind.GLOBAL_NOT_DEFINED)
    assert "global not defined" in str(error)
    with pytest.raises(VmError, match="global not defined"):
        raise error


def test_is_an_exception():
    error = VmError(ErrorKind.UNKNOWN_IMPORT)
    try:
        raise error
    except Exception as exc:
        caught = exc
    assert caught is error
    assert caught.kind is ErrorKind.UNKNOWN_IMPORT


def test_repr_names_kind():
    assert repr(VmError(ErrorKind.UNKNOWN_IMPORT)) == "VmError(UNKNOWN_IMPORT)"


def test_kinds_have_distinct_messages():
    messages = [str(VmError(kind)) for kind in ErrorKind]
    assert len(messages) == len(set(messages))