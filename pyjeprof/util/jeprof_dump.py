"""
Reads a jemalloc heap_v2 profile and writes out what was parsed.

Example:

.. code-block:: console

    $ python -m pyjeprof.util.jeprof_dump -s -m jeprof.12345.0.f.heap
    Profile:
               Sampling rate:      524,288
                 Totals rows:            2
                      Stacks:          311
            Mapped libraries:           47
          In use count (all):       28,106
          In use space (all):   56,637,512
           Alloc count (all):            0
           Alloc space (all):            0
    RSS change: +1.2 (MB)
    Process time: 0.013 (s)

Without ``-s`` this pretty prints the whole :py:class:`pyjeprof.data.Profile`.
"""
import argparse
import logging
import pprint
import sys
import time

import colorama
import psutil

from pyjeprof import heap_v2
from pyjeprof.data import ParseFailure, Profile, UnsupportedFormat

logger = logging.getLogger(__file__)

colorama.init(autoreset=True)


def pprint_profile(profile: Profile, st=sys.stdout) -> None:
    st.write('Profile:\n')
    st.write(f'           Sampling rate: {profile.sampling_rate:12,d}\n')
    st.write(f'             Totals rows: {len(profile.totals):12,d}\n')
    st.write(f'                  Stacks: {len(profile.stacks):12,d}\n')
    st.write(f'        Mapped libraries: {len(profile.mapped_libraries):12,d}\n')
    aggregate = profile.aggregate
    if aggregate is not None:
        st.write(f'      In use count (all): {aggregate.inuse_count:12,d}\n')
        st.write(f'      In use space (all): {aggregate.inuse_space:12,d}\n')
        st.write(f'       Alloc count (all): {aggregate.alloc_count:12,d}\n')
        st.write(f'       Alloc space (all): {aggregate.alloc_space:12,d}\n')


def main(argv=None) -> int:
    """Main CLI entry point. Returns 0 on success, 1 if the profile can not be parsed, 2 if it can not be read."""
    parser = argparse.ArgumentParser(
        prog='jeprof_dump.py',
        description="""Parses a jemalloc heap_v2 profile and writes out the result.""",
    )
    parser.add_argument("-l", "--log_level", type=int, dest="log_level", default=20,
                        help="Log Level (debug=10, info=20, warning=30, error=40, critical=50)"
                             " [default: %(default)s]"
                        )
    parser.add_argument("-s", "--summary", action="store_true",
                        help="Write a summary rather than the whole profile. default: %(default)s")
    parser.add_argument("-m", "--memory", action="store_true",
                        help="Report the change in RSS caused by parsing. default: %(default)s")
    parser.add_argument('path_in', type=str, help='Input path to the heap profile.')
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level,
        format='%(asctime)s - %(filename)s#%(lineno)d - %(levelname)-8s - %(message)s',
        stream=sys.stdout,
    )
    time_start = time.perf_counter()
    process = psutil.Process()
    rss_start = process.memory_info().rss
    try:
        profile = heap_v2.read_profile(args.path_in)
    except OSError as err:
        logger.error('Can not read "%s": %s', args.path_in, err)
        return 2
    except (UnsupportedFormat, ParseFailure) as err:
        print(colorama.Fore.RED + f'Can not parse "{args.path_in}": {err}')
        return 1
    rss_change = process.memory_info().rss - rss_start
    if args.summary:
        pprint_profile(profile, sys.stdout)
    else:
        pprint.pprint(profile)
    if args.memory:
        print(f'RSS change: {rss_change / 1024 ** 2:+.1f} (MB)')
    print(f'Process time: {time.perf_counter() - time_start:.3f} (s)')
    return 0


if __name__ == '__main__':
    sys.exit(main())
