'''
Data structures used by pyjeprof.

These mirror the sections of a jemalloc ``heap_v2`` dump::

    heap_v2/524288                                          -> Profile.sampling_rate
      t*: 28106: 56637512 [0: 0]                            -> Profile.totals
      t0: 0: 0 [0: 0]
    @ 0x7f8f2f6c1e9d 0x7f8f2f6c2a1f                         -> Stack.addrs
      t*: 13: 6688 [0: 0]                                   -> Stack.threads
      t2: 13: 6688 [0: 0]

    MAPPED_LIBRARIES:
    55d3a9e3d000-55d3a9e40000 r--p 00000000 fd:01 1835072   /usr/bin/cat -> Profile.mapped_libraries

All of these are built once by :py:mod:`pyjeprof.heap_v2` and never changed afterwards.
String fields are ordinary ``str`` copies so a Profile does not keep the source text alive.
'''
import typing


class ExceptionJeProfBase(Exception):
    pass


class UnsupportedFormat(ExceptionJeProfBase):
    """Raised when the input does not start with the ``heap_v2`` magic."""
    pass


class ParseFailure(ExceptionJeProfBase):
    """Raised when the input does not match the heap_v2 grammar.

    ``line_num`` and ``column`` are 1-based, ``line_num`` is 0 when the text being parsed was not
    taken from a document (for example a single token given to :py:func:`pyjeprof.heap_v2.parse_hex`)."""
    def __init__(self, reason: str, line_num: int = 0, column: int = 1):
        super().__init__(reason, line_num, column)
        self.reason = reason
        self.line_num = line_num
        self.column = column

    def __str__(self):
        return f'line {self.line_num} column {self.column}: {self.reason}'


class MalformedHeader(ParseFailure):
    pass


class InvalidNumber(ParseFailure):
    pass


class EmptyStack(ParseFailure):
    pass


class MalformedMapEntry(ParseFailure):
    pass


class InvalidHexLiteral(ParseFailure):
    pass


#: The thread id of the cross-thread aggregate row.
AGGREGATE_THREAD_ID = '*'


class Thread(typing.NamedTuple):
    """Represents a single statistics line. For example:

    .. code-block:: text

        t5: 1: 224 [0: 0]

    Decomposes to ``Thread('5', 1, 224, 0, 0)``.
    """
    id: str
    inuse_count: int
    inuse_space: int
    alloc_count: int
    alloc_space: int

    @property
    def is_aggregate(self) -> bool:
        return self.id == AGGREGATE_THREAD_ID


class Stack(typing.NamedTuple):
    """One call chain, innermost frame first, and the per thread breakdown for it."""
    addrs: typing.List[int]
    threads: typing.List[Thread]

    @property
    def depth(self) -> int:
        return len(self.addrs)


class MappedLibrary(typing.NamedTuple):
    """One row of the process memory map."""
    first: int
    last: int
    path: str

    @property
    def size(self) -> int:
        return self.last - self.first

    def __str__(self):
        return f'0x{self.first:x}-0x{self.last:x} {self.path}'


class Profile(typing.NamedTuple):
    sampling_rate: int
    totals: typing.List[Thread]
    stacks: typing.List[Stack]
    mapped_libraries: typing.List[MappedLibrary]

    @property
    def aggregate(self) -> typing.Optional[Thread]:
        """The ``t*`` row of the totals block or None if the dump has none."""
        for thread in self.totals:
            if thread.is_aggregate:
                return thread
        return None
