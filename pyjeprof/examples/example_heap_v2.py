"""
An example of parsing a heap_v2 profile held in memory. Typical output:

.. code-block:: text

    Profile:
               Sampling rate:      131,072
                 Totals rows:            2
                      Stacks:            2
            Mapped libraries:            2
          In use count (all):        4,385
          In use space (all):      810,327
           Alloc count (all):            0
           Alloc space (all):            0
    Stack 0 depth 4 in use 224 bytes: 0x4 0x3 0x2 0x1
    Stack 1 depth 3 in use 4,096 bytes: 0x7f8f2f6c1e9d 0x7f8f2f6c2a1f 0x55d3a9e3e2b0
    0x55d3a9e3d000-0x55d3a9e40000 /usr/bin/cat
    0x7f8f2f600000-0x7f8f2f622000 /usr/lib/x86_64-linux-gnu/libc.so.6

"""
import sys

from pyjeprof import heap_v2
from pyjeprof.util import jeprof_dump

EXAMPLE_PROFILE = """heap_v2/131072
  t*: 4385: 810327 [0: 0]
  t5: 4385: 810327 [0: 0]
@ 0x004 0x003 0x002 0x001
  t*: 1: 224 [0: 0]
  t5: 1: 224 [0: 0]
@ 0x7f8f2f6c1e9d 0x7f8f2f6c2a1f 0x55d3a9e3e2b0
  t*: 1: 4096 [0: 0]
  t5: 1: 4096 [0: 0]

MAPPED_LIBRARIES:
55d3a9e3d000-55d3a9e40000 r--p 00000000 fd:01 1835072                    /usr/bin/cat
55d3a9e5b000-55d3a9e7c000 rw-p 00000000 00:00 0
7f8f2f600000-7f8f2f622000 r--p 00000000 fd:01 1840531                    /usr/lib/x86_64-linux-gnu/libc.so.6
"""


def main():
    profile = heap_v2.parse(EXAMPLE_PROFILE)
    jeprof_dump.pprint_profile(profile, sys.stdout)
    for i, stack in enumerate(profile.stacks):
        addrs = ' '.join(f'0x{addr:x}' for addr in stack.addrs)
        print(f'Stack {i} depth {stack.depth} in use {stack.threads[0].inuse_space:,d} bytes: {addrs}')
    for library in profile.mapped_libraries:
        print(library)
    return 0


if __name__ == '__main__':
    sys.exit(main())
