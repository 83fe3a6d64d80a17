#!/usr/bin/env python3
"""
Cache Simulator
================
Set-associative cache model with LRU replacement, driven by Valgrind-style
memory traces.  It models only tags, not data: each access is a hit, a miss,
or a miss that evicts the least recently used line of its set.

Trace lines look like

    I 0400d7d4,8     instruction fetch (ignored)
     L 7ff0005c8,8   load
     S 7ff0005d0,8   store
     M 0421c7f0,4    modify (load then store)

Usage:
  python csim.py -s 4 -E 1 -b 4 -t traces/yi.trace [-v]
"""

from __future__ import annotations
import argparse
import sys
from typing import Iterable, List, Optional, TextIO

from y86 import Y86Error


class TraceError(Y86Error):
    def __init__(self, line: int, msg: str):
        self.line = line
        super().__init__(f"Trace line {line}: {msg}")


class CacheLine:
    __slots__ = ("valid", "tag", "last_used")

    def __init__(self):
        self.valid = False
        self.tag = 0
        self.last_used = 0


class Cache:
    """
    2**s sets of E lines, 2**b-byte blocks.
    Addresses split as | tag | s set-index bits | b block-offset bits |.
    """

    def __init__(self, s: int, E: int, b: int):
        if s < 0 or b < 0 or E < 1:
            raise ValueError(f"bad cache geometry s={s} E={E} b={b}")
        self.s, self.E, self.b = s, E, b
        self.sets: List[List[CacheLine]] = [
            [CacheLine() for _ in range(E)] for _ in range(1 << s)
        ]
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self._clock = 0   # access counter for LRU ordering

    def _decompose(self, addr: int) -> tuple[int, int]:
        """Returns (tag, set_index)."""
        set_index = (addr >> self.b) & ((1 << self.s) - 1)
        tag = addr >> (self.s + self.b)
        return tag, set_index

    def access_data(self, addr: int) -> str:
        """Touch addr. Returns "hit", "miss" or "miss eviction"."""
        self._clock += 1
        tag, idx = self._decompose(addr)
        lines = self.sets[idx]

        for line in lines:
            if line.valid and line.tag == tag:
                line.last_used = self._clock
                self.hits += 1
                return "hit"

        self.misses += 1
        victim = next((line for line in lines if not line.valid), None)
        result = "miss"
        if victim is None:
            victim = min(lines, key=lambda line: line.last_used)
            self.evictions += 1
            result = "miss eviction"
        victim.valid = True
        victim.tag = tag
        victim.last_used = self._clock
        return result

    def summary(self) -> str:
        return f"hits:{self.hits} misses:{self.misses} evictions:{self.evictions}"


def replay(cache: Cache, lines: Iterable[str], verbose: Optional[TextIO] = None):
    """Feed a Valgrind trace through the cache."""
    for lineno, raw in enumerate(lines, 1):
        text = raw.strip()
        if not text:
            continue
        parts = text.split(None, 1)
        if len(parts) != 2:
            raise TraceError(lineno, f"malformed line {text!r}")
        op, operand = parts
        if op == "I":
            continue
        if op not in ("L", "S", "M"):
            raise TraceError(lineno, f"unknown operation {op!r}")
        try:
            addr = int(operand.split(",")[0], 16)
        except ValueError:
            raise TraceError(lineno, f"bad address in {text!r}") from None

        results = [cache.access_data(addr)]
        if op == "M":
            results.append(cache.access_data(addr))
        if verbose is not None:
            print(f"{op} {operand} {' '.join(results)}", file=verbose)


def main(argv: Optional[list[str]] = None, out: Optional[TextIO] = None) -> int:
    parser = argparse.ArgumentParser(prog="csim",
                                     description="LRU cache simulator")
    parser.add_argument("-s", type=int, required=True,
                        help="Number of set index bits (2**s sets)")
    parser.add_argument("-E", type=int, required=True,
                        help="Associativity (lines per set)")
    parser.add_argument("-b", type=int, required=True,
                        help="Number of block bits (2**b-byte blocks)")
    parser.add_argument("-t", dest="trace", required=True,
                        help="Valgrind trace to replay")
    parser.add_argument("-v", dest="verbose", action="store_true",
                        help="Print the outcome of every access")
    args = parser.parse_args(argv)
    out = out or sys.stdout

    try:
        cache = Cache(args.s, args.E, args.b)
    except ValueError as e:
        print(f"csim: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        with open(args.trace, "r") as f:
            replay(cache, f, out if args.verbose else None)
    except OSError as e:
        print(f"csim: cannot read trace: {e}", file=sys.stderr)
        sys.exit(1)
    except TraceError as e:
        print(f"csim: {e}", file=sys.stderr)
        sys.exit(1)

    print(cache.summary(), file=out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
