#!/usr/bin/env python3
"""
PIPE Simulator Command Line
============================
Loads a `.yo` object listing, runs it through the pipelined simulator, and
prints the end-of-run summary.  With -t the same image is also run through
the sequential reference model and the final states are compared.

Usage:
  python cli.py [-t] [-l M] [-v N] [file.yo]

  -t      compare against the instruction-set simulator
  -l M    instruction limit (default 10000); the cycle limit is 5 x M
  -v N    verbosity 0..2 (default 2); 2 prints a per-cycle trace

The object file defaults to stdin.
"""

from __future__ import annotations
import argparse
import sys
from typing import Optional, TextIO

from y86 import diff_reg, diff_mem, stat_name
from loader import LoadError
from psim import PipeSim
from yis import IsaState

SIM_NAME = "Y86-64 Processor: PIPE"

DEFAULT_INSTR_LIMIT = 10000
DEFAULT_VERBOSITY = 2

# ---------------------------------------------------------------------------
#  ISA cross-check
# ---------------------------------------------------------------------------

def isa_check(sim: PipeSim, isa: IsaState, result_cc, verbosity: int,
              out: TextIO) -> bool:
    """Compare the reference model's final state with the pipeline's."""
    match = True
    if diff_reg(isa.reg, sim.reg):
        match = False
        if verbosity > 0:
            print("ISA Register != Pipeline Register File", file=out)
            diff_reg(isa.reg, sim.reg, out)
    if diff_mem(isa.mem, sim.mem):
        match = False
        if verbosity > 0:
            print("ISA Memory != Pipeline Memory", file=out)
            diff_mem(isa.mem, sim.mem, out)
    if isa.cc != result_cc:
        match = False
        if verbosity > 0:
            print(f"ISA Cond. Codes ({isa.cc}) != Pipeline Cond. Codes ({result_cc})",
                  file=out)
    print("ISA Check Succeeds" if match else "ISA Check Fails", file=out)
    return match

# ---------------------------------------------------------------------------
#  Main
# ---------------------------------------------------------------------------

def _verbosity(text: str) -> int:
    level = int(text)
    if level < 0 or level > 2:
        raise argparse.ArgumentTypeError(f"Invalid verbosity {level}")
    return level


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="psim",
        description="Y86-64 five-stage pipeline simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python cli.py asum.yo\n"
               "  python cli.py -v 1 -t asum.yo\n"
               "  python cli.py -l 500 -v 0 < prog.yo\n",
    )
    parser.add_argument("-t", dest="check", action="store_true",
                        help="Compare the result against the ISA simulator")
    parser.add_argument("-l", dest="limit", type=int, default=DEFAULT_INSTR_LIMIT,
                        metavar="M",
                        help=f"Instruction limit (default {DEFAULT_INSTR_LIMIT})")
    parser.add_argument("-v", dest="verbosity", type=_verbosity,
                        default=DEFAULT_VERBOSITY, metavar="N",
                        help=f"Verbosity 0 <= N <= 2 (default {DEFAULT_VERBOSITY})")
    parser.add_argument("object_file", nargs="?", default=None,
                        help="Object file (.yo); stdin if omitted")
    return parser


def main(argv: Optional[list[str]] = None, out: Optional[TextIO] = None) -> int:
    args = build_parser().parse_args(argv)
    out = out or sys.stdout

    if args.object_file is None:
        source = sys.stdin
    else:
        try:
            source = open(args.object_file, "r")
        except OSError:
            print(f"Couldn't open object file {args.object_file}", file=sys.stderr)
            sys.exit(1)

    sim = PipeSim(dumpfile=out if args.verbosity >= 2 else None)
    if args.verbosity >= 2:
        print(SIM_NAME, file=out)

    try:
        byte_cnt = sim.load(source)
    except LoadError as e:
        print(f"Error loading object file: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        if source is not sys.stdin:
            source.close()
    if byte_cnt == 0:
        print("No lines of code found", file=sys.stderr)
        sys.exit(1)
    if args.verbosity >= 2:
        print(f"{byte_cnt} bytes of code read", file=out)

    isa = IsaState(sim.mem.copy()) if args.check else None
    mem0 = sim.mem.copy()
    reg0 = sim.reg.copy()

    result = sim.run(args.limit, 5 * args.limit)

    if args.verbosity > 0:
        print(f"{result.instructions} instructions executed", file=out)
        print(f"Status = {stat_name(result.status)}", file=out)
        print(f"Condition Codes: {result.cc}", file=out)
        print("Changed Register State:", file=out)
        diff_reg(reg0, sim.reg, out)
        print("Changed Memory State:", file=out)
        diff_mem(mem0, sim.mem, out)
        print(f"Load/use stalls: {sim.load_use_stalls}, "
              f"return bubbles: {sim.ret_bubbles}, "
              f"mispredicted branches: {sim.mispredicts}", file=out)

    if isa is not None:
        isa.run(args.limit)
        isa_check(sim, isa, result.cc, args.verbosity, out)

    print(f"CPI: {sim.cpi_cycles} cycles/{sim.instructions} instructions = "
          f"{sim.cpi:.2f}", file=out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
