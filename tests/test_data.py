"""Tests for the `pyjeprof` data structures."""
import pickle

import pytest

from pyjeprof import data


def test_Thread():
    thread = data.Thread('5', 1, 224, 2, 448)
    assert thread.id == '5'
    assert thread.inuse_count == 1
    assert thread.inuse_space == 224
    assert thread.alloc_count == 2
    assert thread.alloc_space == 448


@pytest.mark.parametrize(
    'thread_id, expected',
    (
            ('*', True),
            ('0', False),
            ('123', False),
    )
)
def test_Thread_is_aggregate(thread_id, expected):
    assert data.Thread(thread_id, 0, 0, 0, 0).is_aggregate == expected


def test_Thread_is_immutable():
    thread = data.Thread('5', 1, 224, 0, 0)
    with pytest.raises(AttributeError):
        thread.inuse_count = 2


def test_Stack_depth():
    stack = data.Stack([4, 3, 2, 1], [data.Thread('*', 1, 224, 0, 0)])
    assert stack.depth == 4


def test_MappedLibrary_size():
    lib = data.MappedLibrary(0x7f8f2f600000, 0x7f8f2f622000, '/usr/lib/x86_64-linux-gnu/libc.so.6')
    assert lib.size == 0x22000


def test_MappedLibrary__str__():
    lib = data.MappedLibrary(0x1000, 0x2000, '/lib/a b.so')
    assert str(lib) == '0x1000-0x2000 /lib/a b.so'


@pytest.mark.parametrize(
    'totals, expected',
    (
            ([], None),
            ([data.Thread('0', 1, 1, 0, 0)], None),
            (
                    [data.Thread('0', 1, 1, 0, 0), data.Thread('*', 2, 2, 0, 0)],
                    data.Thread('*', 2, 2, 0, 0),
            ),
    )
)
def test_Profile_aggregate(totals, expected):
    profile = data.Profile(1, totals, [], [])
    assert profile.aggregate == expected


def test_ParseFailure__str__():
    err = data.ParseFailure('Expected \'t\'', 3, 5)
    assert str(err) == "line 3 column 5: Expected 't'"
    assert err.reason == "Expected 't'"
    assert err.line_num == 3
    assert err.column == 5


@pytest.mark.parametrize(
    'error_class',
    (
            data.MalformedHeader,
            data.InvalidNumber,
            data.EmptyStack,
            data.MalformedMapEntry,
            data.InvalidHexLiteral,
    )
)
def test_sub_errors_are_parse_failures(error_class):
    err = error_class('reason', 1, 2)
    assert isinstance(err, data.ParseFailure)
    assert isinstance(err, data.ExceptionJeProfBase)


def test_ParseFailure_pickle():
    err = data.InvalidNumber('reason', 4, 9)
    result = pickle.loads(pickle.dumps(err))
    assert type(result) is data.InvalidNumber
    assert (result.reason, result.line_num, result.column) == ('reason', 4, 9)


def test_UnsupportedFormat_is_not_parse_failure():
    assert not issubclass(data.UnsupportedFormat, data.ParseFailure)
    assert issubclass(data.UnsupportedFormat, data.ExceptionJeProfBase)
