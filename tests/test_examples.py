from pyjeprof.examples import example_heap_v2


def test_example_heap_v2(capsys):
    assert example_heap_v2.main() == 0
    out = capsys.readouterr().out
    assert 'Stack 0 depth 4 in use 224 bytes: 0x4 0x3 0x2 0x1\n' in out
    assert '0x55d3a9e3d000-0x55d3a9e40000 /usr/bin/cat\n' in out
    assert 'Mapped libraries:            2\n' in out
