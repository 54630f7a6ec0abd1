"""
Parses the textual heap profile that jemalloc writes with ``prof.dump`` (the ``heap_v2`` format).

Example, from a small process with ``MALLOC_CONF=prof:true,lg_prof_sample:19``:

.. code-block:: text

    heap_v2/524288
      t*: 28106: 56637512 [0: 0]
      t0: 28106: 56637512 [0: 0]
    @ 0x7f8f2f6c1e9d 0x7f8f2f6c2a1f 0x55d3a9e3e2b0
      t*: 13: 6688 [0: 0]
      t0: 13: 6688 [0: 0]

    MAPPED_LIBRARIES:
    55d3a9e3d000-55d3a9e40000 r--p 00000000 fd:01 1835072                    /usr/bin/cat
    7ffd5b7fe000-7ffd5b800000 r-xp 00000000 00:00 0                          [vdso]

The sections are, in order and with no backtracking between them:

- The header ``heap_v2/<sampling rate>``.
- One or more indented thread records, the totals for the whole program.
- One or more stacks, each an ``@`` line of hexadecimal addresses followed by one or more indented thread records.
- Any number of blank lines.
- The ``MAPPED_LIBRARIES:`` marker followed by rows in the ``/proc/<pid>/maps`` layout.

A thread record is ``t<id>: <inuse count>: <inuse space> [<alloc count>: <alloc space>]`` where ``<id>`` is a
thread number or ``*`` for the total across all threads.

Each sub-grammar has its own function (:py:func:`parse_hex`, :py:func:`parse_header`, :py:func:`parse_thread`,
:py:func:`parse_stack`, :py:func:`parse_mapped_library`) and :py:func:`parse_profile` sequences them.
Nothing here does any I/O or keeps any state beyond a :py:class:`LineCursor`, so these can be called concurrently on
different inputs.

Failures raise a subclass of :py:class:`pyjeprof.data.ParseFailure` with the line and column of the mismatch.
There is no recovery, a profile parses completely or not at all.
"""
import logging
import re
import typing

from pyjeprof.data import (
    EmptyStack,
    InvalidHexLiteral,
    InvalidNumber,
    MalformedHeader,
    MalformedMapEntry,
    MappedLibrary,
    ParseFailure,
    Profile,
    Stack,
    Thread,
    UnsupportedFormat,
)

logger = logging.getLogger(__file__)

#: The magic at the start of every supported profile.
HEAP_V2_MAGIC = 'heap_v2'
#: The header is this followed by the sampling rate.
HEAP_V2_HEADER_PREFIX = HEAP_V2_MAGIC + '/'
#: The line that introduces the memory map.
MAPPED_LIBRARIES_MARKER = 'MAPPED_LIBRARIES:'
#: Addresses and counters are unsigned 64 bit values.
MAX_UINT64 = 2 ** 64 - 1
MAX_UINT64_DIGITS = len(str(MAX_UINT64))

#: Separates tokens. Only spaces and tabs, line breaks are handled by :py:class:`LineCursor`.
RE_WHITESPACE = re.compile(r'[ \t]+')
#: Matches::
#:
#:      '0x7f8f2f6c1e9d', '0X7F8F2F6C1E9D', '7f8f2f6c1e9d', '0x7f8f_2f6c_1e9d'
#:
#: The single group is the digits with any underscores.
RE_HEX_LITERAL = re.compile(r'(?:0[xX])?([0-9a-fA-F](?:_*[0-9a-fA-F])*)')
RE_DIGITS = re.compile(r'[0-9]+')
#: A candidate number in a thread record, checked by :py:func:`parse_decimal`.
RE_NUMBER_TOKEN = re.compile(r'[^ \t:\[\]]*')
#: ``'*'`` or ``'123'`` in ``'t123: 5000: 6000 [7000: 8000]'``
RE_THREAD_ID = re.compile(r'[0-9A-Za-z*]+')
#: A candidate address in an ``@`` line.
RE_ADDRESS_TOKEN = re.compile(r'[^ \t]*')
#: The first address of a map row, up to the ``'-'``.
RE_MAP_FIRST_TOKEN = re.compile(r'[^- \t]*')
#: ``'r-xp'``
RE_MAP_PERMISSIONS = re.compile(r'[rwxps-]{4}')
#: ``'00000000'``
RE_MAP_OFFSET = re.compile(r'[0-9a-fA-F]{8}')
#: ``'103:02'`` or ``'fd:01'``, the kernel writes these with ``%02x:%02x``.
#: Hex digits rather than only decimal ``DIGITS ":" DIGITS`` so that real device numbers such as ``fd:01`` match.
RE_MAP_DEVICE = re.compile(r'[0-9a-fA-F]+:[0-9a-fA-F]+')


def _to_uint64(text: str, error_class: typing.Type[ParseFailure], what: str, line_num: int, column: int) -> int:
    if RE_DIGITS.fullmatch(text) is None:
        raise error_class(f'Expected {what} as decimal digits, found {text!r}', line_num, column)
    # Length checked before int() which refuses very long digit strings.
    significant = text.lstrip('0') or '0'
    if len(significant) > MAX_UINT64_DIGITS or int(significant) > MAX_UINT64:
        raise error_class(f'The {what} overflows 64 bits', line_num, column)
    return int(significant)


def parse_decimal(digits: str, line_num: int = 0, column: int = 1) -> int:
    """Returns the unsigned 64 bit value of a run of decimal digits.
    May raise an InvalidNumber on any other character or on overflow."""
    return _to_uint64(digits, InvalidNumber, 'number', line_num, column)


def parse_hex(token: str, line_num: int = 0, column: int = 1) -> int:
    """Returns the value of a hexadecimal token such as ``'0x7f8f2f6c1e9d'``.

    The ``0x``/``0X`` prefix is optional, digits are case insensitive and underscores between digits are ignored
    so ``'0x1F'``, ``'0X1f'`` and ``'1f'`` are all 31 and ``'0x00_00_00_01'`` is 1.
    The result is unsigned, in ``[0, 2**64)``.

    May raise an InvalidHexLiteral if there are no digits, any other character or the value overflows 64 bits.
    """
    m = RE_HEX_LITERAL.fullmatch(token)
    if m is None:
        raise InvalidHexLiteral(f'Invalid hexadecimal literal {token!r}', line_num, column)
    value = int(m.group(1).replace('_', ''), 16)
    if value > MAX_UINT64:
        raise InvalidHexLiteral(f'Hexadecimal literal {token!r} overflows 64 bits', line_num, column)
    return value


class _LineScanner:
    """Walks a single line left to right. Mismatches raise ``error_class`` with the current column."""
    def __init__(self, line: str, line_num: int, error_class: typing.Type[ParseFailure] = ParseFailure):
        self.line = line
        self.line_num = line_num
        self.error_class = error_class
        self.pos = 0

    @property
    def column(self) -> int:
        return self.pos + 1

    def at_end(self) -> bool:
        return self.pos >= len(self.line)

    def rest(self) -> str:
        return self.line[self.pos:]

    def fail(self, reason: str, error_class: typing.Optional[typing.Type[ParseFailure]] = None) -> ParseFailure:
        return (error_class or self.error_class)(reason, self.line_num, self.column)

    def expect(self, literal: str) -> None:
        if not self.line.startswith(literal, self.pos):
            raise self.fail(f'Expected {literal!r} found {self.rest()!r}')
        self.pos += len(literal)

    def expect_end(self) -> None:
        if not self.at_end():
            raise self.fail(f'Unexpected trailing text {self.rest()!r}')

    def take(self, regex: re.Pattern, what: str) -> str:
        """Consumes and returns the match of ``regex`` at the current position, it must not be empty."""
        m = regex.match(self.line, self.pos)
        if m is None or not m.group(0):
            raise self.fail(f'Expected {what} found {self.rest()!r}')
        self.pos = m.end()
        return m.group(0)

    def take_token(self, regex: re.Pattern) -> typing.Tuple[str, int]:
        """Consumes the match of ``regex``, possibly empty, returning it and its column."""
        column = self.column
        m = regex.match(self.line, self.pos)
        self.pos = m.end()
        return m.group(0), column

    def take_decimal(self, what: str, error_class: typing.Type[ParseFailure] = InvalidNumber) -> int:
        token, column = self.take_token(RE_NUMBER_TOKEN)
        return _to_uint64(token, error_class, what, self.line_num, column)

    def take_hex(self, regex: re.Pattern) -> int:
        token, column = self.take_token(regex)
        return parse_hex(token, self.line_num, column)


def parse_header(line: str, line_num: int = 1) -> int:
    """Returns the sampling rate from a header line such as ``'heap_v2/524288'``.
    May raise a MalformedHeader."""
    scanner = _LineScanner(line, line_num, MalformedHeader)
    scanner.expect(HEAP_V2_HEADER_PREFIX)
    sampling_rate = scanner.take_decimal('sampling rate', MalformedHeader)
    scanner.expect_end()
    return sampling_rate


def _scan_thread(scanner: _LineScanner) -> Thread:
    scanner.expect('t')
    thread_id = scanner.take(RE_THREAD_ID, 'thread id')
    scanner.expect(': ')
    inuse_count = scanner.take_decimal('inuse count')
    scanner.expect(': ')
    inuse_space = scanner.take_decimal('inuse space')
    scanner.expect(' [')
    alloc_count = scanner.take_decimal('alloc count')
    scanner.expect(': ')
    alloc_space = scanner.take_decimal('alloc space')
    scanner.expect(']')
    scanner.expect_end()
    return Thread(thread_id, inuse_count, inuse_space, alloc_count, alloc_space)


def parse_thread(line: str, line_num: int = 0) -> Thread:
    """Decomposes a thread record such as ``'t123: 5000: 6000 [7000: 8000]'`` without any indentation.

    May raise an InvalidNumber for a bad counter or a ParseFailure if the punctuation is wrong."""
    return _scan_thread(_LineScanner(line, line_num))


def _parse_indented_thread(line: str, line_num: int) -> Thread:
    scanner = _LineScanner(line, line_num)
    scanner.take(RE_WHITESPACE, 'indentation')
    return _scan_thread(scanner)


def parse_stack_addrs(line: str, line_num: int = 0) -> typing.List[int]:
    """Returns the addresses, in the order written, from a line such as ``'@ 0x000000000004 0x000000000003'``.

    May raise an EmptyStack if there are no addresses or an InvalidHexLiteral for a bad address."""
    scanner = _LineScanner(line, line_num)
    scanner.expect('@')
    addrs: typing.List[int] = []
    while not scanner.at_end():
        scanner.take(RE_WHITESPACE, 'whitespace before an address')
        addrs.append(scanner.take_hex(RE_ADDRESS_TOKEN))
    if not addrs:
        raise scanner.fail('Stack has no addresses', EmptyStack)
    return addrs


class LineCursor:
    """The position in the input as the document grammar walks it a line at a time.

    Only ``'\\n'`` terminated lines are visited, with any ``'\\r'`` before the ``'\\n'`` removed.
    A final unterminated fragment is never visited and is part of :py:meth:`remainder`.
    """
    def __init__(self, text: str):
        self._raw_lines = text.split('\n')
        self._fragment = self._raw_lines.pop()
        self.lines = [line[:-1] if line.endswith('\r') else line for line in self._raw_lines]
        self.index = 0

    @property
    def line_num(self) -> int:
        """The 1-based line number of the next line."""
        return self.index + 1

    def at_end(self) -> bool:
        return self.index >= len(self.lines)

    def peek(self) -> typing.Optional[str]:
        """The next line or None at the end of input."""
        if self.at_end():
            return None
        return self.lines[self.index]

    def next(self) -> str:
        if self.at_end():
            raise ParseFailure('Unexpected end of input', self.line_num, 1)
        line = self.lines[self.index]
        self.index += 1
        return line

    def remainder(self) -> str:
        """The text not yet consumed."""
        return '\n'.join(self._raw_lines[self.index:] + [self._fragment])


def _is_indented(line: typing.Optional[str]) -> bool:
    return line is not None and line[:1] in (' ', '\t')


def _parse_thread_lines(cursor: LineCursor) -> typing.List[Thread]:
    """Consumes every following indented line as a thread record."""
    threads: typing.List[Thread] = []
    while _is_indented(cursor.peek()):
        line_num = cursor.line_num
        threads.append(_parse_indented_thread(cursor.next(), line_num))
    return threads


def parse_stack(cursor: LineCursor) -> Stack:
    """Consumes an ``@`` line and the thread records that follow it.

    May raise an EmptyStack if either part is missing."""
    line_num = cursor.line_num
    addrs = parse_stack_addrs(cursor.next(), line_num)
    threads = _parse_thread_lines(cursor)
    if not threads:
        raise EmptyStack('Stack has no thread records', cursor.line_num, 1)
    return Stack(addrs, threads)


def parse_mapped_library(line: str, line_num: int = 0) -> MappedLibrary:
    """Decomposes a row of the memory map such as:

    .. code-block:: text

        00000001-00000004 r--p 00000000 103:02 5000                      /usr/lib/x86_64-linux-gnu/libgcc_s.so.1

    Only the address range and the path are kept; permissions, offset, device and inode are checked then discarded.
    The path is the rest of the line, embedded whitespace included. It is empty for an anonymous mapping.

    May raise a MalformedMapEntry or an InvalidHexLiteral.
    """
    scanner = _LineScanner(line, line_num, MalformedMapEntry)
    first = scanner.take_hex(RE_MAP_FIRST_TOKEN)
    scanner.expect('-')
    last = scanner.take_hex(RE_ADDRESS_TOKEN)
    scanner.take(RE_WHITESPACE, 'whitespace')
    scanner.take(RE_MAP_PERMISSIONS, 'four permission characters')
    scanner.take(RE_WHITESPACE, 'whitespace')
    scanner.take(RE_MAP_OFFSET, 'an offset of eight hexadecimal digits')
    scanner.take(RE_WHITESPACE, 'whitespace')
    scanner.take(RE_MAP_DEVICE, 'a major:minor device')
    scanner.take(RE_WHITESPACE, 'whitespace')
    scanner.take(RE_DIGITS, 'an inode')
    path = ''
    if not scanner.at_end():
        scanner.take(RE_WHITESPACE, 'whitespace')
        path = scanner.rest()
    return MappedLibrary(first, last, path)


def parse_profile(text: str) -> typing.Tuple[Profile, str]:
    """Parses a complete heap_v2 document.

    Returns the Profile and the text that was not consumed. That is empty unless the memory map is followed by an
    empty line (which ends the map) or the input ends with an unterminated line.
    Mapped libraries with no path are left out of the Profile.

    May raise a ParseFailure or one of its subclasses.
    """
    cursor = LineCursor(text)
    if cursor.at_end():
        raise MalformedHeader('Header is not terminated by a line break', 1, len(text) + 1)
    sampling_rate = parse_header(cursor.next(), 1)
    totals = _parse_thread_lines(cursor)
    if not totals:
        raise ParseFailure('Expected an indented thread record after the header', cursor.line_num, 1)
    stacks: typing.List[Stack] = []
    while cursor.peek() is not None and cursor.peek().startswith('@'):
        stacks.append(parse_stack(cursor))
    if not stacks:
        raise ParseFailure('Expected a stack starting with "@"', cursor.line_num, 1)
    while cursor.peek() == '':
        cursor.next()
    line_num = cursor.line_num
    if cursor.peek() != MAPPED_LIBRARIES_MARKER:
        raise ParseFailure(f'Expected "{MAPPED_LIBRARIES_MARKER}"', line_num, 1)
    cursor.next()
    mapped_libraries: typing.List[MappedLibrary] = []
    # An empty line or the end of input finishes the map.
    while cursor.peek():
        line_num = cursor.line_num
        mapped_libraries.append(parse_mapped_library(cursor.next(), line_num))
    profile = Profile(
        sampling_rate,
        totals,
        stacks,
        [library for library in mapped_libraries if library.path],
    )
    return profile, cursor.remainder()


def parse(text: typing.Union[str, bytes]) -> Profile:
    """Parses a heap_v2 profile.

    bytes are decoded as latin-1 so that any byte in a library path is accepted.

    May raise an UnsupportedFormat if the text does not start with ``heap_v2``, this is checked before any other
    parsing. Otherwise may raise a ParseFailure.
    """
    if isinstance(text, bytes):
        text = text.decode('latin-1')
    if not text.startswith(HEAP_V2_MAGIC):
        raise UnsupportedFormat(f'Only heap_v2 profiles are supported, input starts with {text[:16]!r}')
    profile, _remainder = parse_profile(text)
    return profile


def read_profile(path: str) -> Profile:
    """Reads and parses the heap_v2 profile at ``path``."""
    logger.info('Reading heap profile "%s"', path)
    with open(path, encoding='latin-1') as file:
        profile = parse(file.read())
    logger.info(
        'Sampling rate %d, %d totals, %d stacks, %d mapped libraries',
        profile.sampling_rate, len(profile.totals), len(profile.stacks), len(profile.mapped_libraries),
    )
    return profile
