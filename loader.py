"""
Y86-64 Object Image Loader
===========================
Reads the `.yo` listing produced by the assembler into a Memory image.

Each code line has the shape

    0x014: 30f40002000000000000 | irmovq stack, %rsp

i.e. a hex address, a colon, up to ten hex byte pairs, and an optional
comment.  Lines that do not start with `0x` (blank lines, pure comments)
are skipped.

Usage:
  from loader import load_object
  nbytes = load_object(mem, open("prog.yo"))
"""

from __future__ import annotations
from typing import Iterable

from y86 import Memory, Y86Error

MAX_LINE_BYTES = 10

HEX_DIGITS = "0123456789abcdefABCDEF"


class LoadError(Y86Error):
    def __init__(self, line: int, msg: str):
        self.line = line
        super().__init__(f"Line {line}: {msg}")


def _scan_hex(text: str, pos: int) -> int:
    """Return the index of the first non-hex character at or after pos."""
    while pos < len(text) and text[pos] in HEX_DIGITS:
        pos += 1
    return pos


def _skip_space(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def load_object(mem: Memory, lines: Iterable[str] | str) -> int:
    """Load an object listing into mem. Returns the number of bytes loaded."""
    if isinstance(lines, str):
        lines = lines.splitlines()

    byte_cnt = 0
    for lineno, raw in enumerate(lines, 1):
        pos = _skip_space(raw, 0)
        if raw[pos:pos + 2] not in ("0x", "0X"):
            continue
        pos += 2

        end = _scan_hex(raw, pos)
        if end == pos:
            raise LoadError(lineno, "Expected hex address")
        addr = int(raw[pos:end], 16)

        pos = _skip_space(raw, end)
        if pos >= len(raw) or raw[pos] != ":":
            raise LoadError(lineno, "Expected colon")
        pos = _skip_space(raw, pos + 1)

        count = 0
        while (pos + 1 < len(raw) and raw[pos] in HEX_DIGITS
               and raw[pos + 1] in HEX_DIGITS):
            if count >= MAX_LINE_BYTES:
                raise LoadError(lineno, "Instruction too long")
            if addr < 0 or addr >= len(mem):
                raise LoadError(lineno, f"Invalid address {addr:#x}")
            mem.write(addr, 1, bytes([int(raw[pos:pos + 2], 16)]))
            addr += 1
            pos += 2
            count += 1
        byte_cnt += count
    return byte_cnt
