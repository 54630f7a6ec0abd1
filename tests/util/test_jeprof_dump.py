import io

import pytest

from pyjeprof import heap_v2
from pyjeprof.util import jeprof_dump

EXAMPLE_PROFILE = """heap_v2/131072
  t*: 4385: 810327 [1: 2]
  t5: 4385: 810327 [1: 2]
@ 0x004 0x003 0x002 0x001
  t*: 1: 224 [0: 0]
  t5: 1: 224 [0: 0]
MAPPED_LIBRARIES:
55d3a9e3d000-55d3a9e40000 r--p 00000000 fd:01 1835072                    /usr/bin/cat
55d3a9e5b000-55d3a9e7c000 rw-p 00000000 00:00 0
"""


@pytest.fixture
def profile_path(tmp_path):
    path = tmp_path / 'jeprof.1234.0.f.heap'
    path.write_text(EXAMPLE_PROFILE)
    return str(path)


def test_pprint_profile():
    st = io.StringIO()
    jeprof_dump.pprint_profile(heap_v2.parse(EXAMPLE_PROFILE), st)
    assert st.getvalue() == (
        'Profile:\n'
        '           Sampling rate:      131,072\n'
        '             Totals rows:            2\n'
        '                  Stacks:            1\n'
        '        Mapped libraries:            1\n'
        '      In use count (all):        4,385\n'
        '      In use space (all):      810,327\n'
        '       Alloc count (all):            1\n'
        '       Alloc space (all):            2\n'
    )


def test_pprint_profile_no_aggregate():
    st = io.StringIO()
    profile = heap_v2.parse(EXAMPLE_PROFILE.replace('  t*: 4385: 810327 [1: 2]\n', '', 1))
    jeprof_dump.pprint_profile(profile, st)
    assert 'Totals rows:            1\n' in st.getvalue()
    assert 'In use count' not in st.getvalue()


def test_main(profile_path, capsys):
    assert jeprof_dump.main(['-l', '40', profile_path]) == 0
    out = capsys.readouterr().out
    assert 'sampling_rate=131072' in out
    assert "path='/usr/bin/cat'" in out
    assert 'Process time: ' in out


def test_main_summary_memory(profile_path, capsys):
    assert jeprof_dump.main(['-l', '40', '-s', '-m', profile_path]) == 0
    out = capsys.readouterr().out
    assert 'Sampling rate:      131,072' in out
    assert 'RSS change: ' in out
    assert 'sampling_rate=' not in out


@pytest.mark.parametrize(
    'text, expected',
    (
            ('heap_v1/131072\n', 'Only heap_v2 profiles are supported'),
            (EXAMPLE_PROFILE.replace('0x003', '0xq'), 'line 4 column 9: '),
            (EXAMPLE_PROFILE.replace('MAPPED_LIBRARIES:', 'MAPPED'), 'line 7 column 1: '),
    )
)
def test_main_parse_failure(tmp_path, capsys, text, expected):
    path = tmp_path / 'bad.heap'
    path.write_text(text)
    assert jeprof_dump.main(['-l', '40', str(path)]) == 1
    out = capsys.readouterr().out
    assert expected in out
    assert 'Process time: ' not in out


def test_main_missing_file(tmp_path):
    assert jeprof_dump.main(['-l', '50', str(tmp_path / 'missing.heap')]) == 2
