"""
Y86-64 Instruction Set
=======================
Constants, encodings, and the architectural state primitives shared by the
pipelined simulator (psim.py) and the sequential reference model (yis.py).

  - Opcode table: icode/ifun, instruction length, register byte, constant word
  - Memory: flat byte-addressable store, bounds-checked, little-endian words
  - RegisterFile: 15 × 64-bit registers plus the NoRegister sentinel
  - ConditionCodes: Z/S/O flags and branch-condition evaluation
  - ALU helpers and state diffs for the end-of-run summary
"""

from __future__ import annotations
import struct
from dataclasses import dataclass
from typing import Optional, TextIO

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

MEM_SIZE = 1 << 13   # 8 KiB
WORD     = 8

MASK64 = (1 << 64) - 1
SIGN64 = 1 << 63

# Instruction codes (high nibble of the opcode byte)
I_HALT   = 0x0
I_NOP    = 0x1
I_RRMOVQ = 0x2   # rrmovq and the cmovXX family
I_IRMOVQ = 0x3
I_RMMOVQ = 0x4
I_MRMOVQ = 0x5
I_ALU    = 0x6
I_JMP    = 0x7
I_CALL   = 0x8
I_RET    = 0x9
I_PUSHQ  = 0xA
I_POPQ   = 0xB
I_IADDQ  = 0xC

ICODES = (I_HALT, I_NOP, I_RRMOVQ, I_IRMOVQ, I_RMMOVQ, I_MRMOVQ, I_ALU,
          I_JMP, I_CALL, I_RET, I_PUSHQ, I_POPQ, I_IADDQ)

F_NONE = 0x0

# ALU functions
A_ADD = 0x0
A_SUB = 0x1
A_AND = 0x2
A_XOR = 0x3

# Branch / conditional-move conditions
C_YES = 0x0
C_LE  = 0x1
C_L   = 0x2
C_E   = 0x3
C_NE  = 0x4
C_GE  = 0x5
C_G   = 0x6

# Register ids
REG_RAX = 0x0
REG_RCX = 0x1
REG_RDX = 0x2
REG_RBX = 0x3
REG_RSP = 0x4
REG_RBP = 0x5
REG_RSI = 0x6
REG_RDI = 0x7
REG_R8  = 0x8
REG_R9  = 0x9
REG_R10 = 0xA
REG_R11 = 0xB
REG_R12 = 0xC
REG_R13 = 0xD
REG_R14 = 0xE
REG_NONE = 0xF

NUM_REGS = 15

REG_NAMES = (
    "%rax", "%rcx", "%rdx", "%rbx", "%rsp", "%rbp", "%rsi", "%rdi",
    "%r8", "%r9", "%r10", "%r11", "%r12", "%r13", "%r14",
)

# Instruction status, carried with every in-flight instruction
STAT_BUB = 0   # bubble
STAT_AOK = 1   # normal operation
STAT_HLT = 2   # halt instruction reached
STAT_ADR = 3   # invalid memory address
STAT_INS = 4   # invalid instruction
STAT_PIP = 5   # conflicting pipeline control signals

STAT_NAMES = {
    STAT_BUB: "BUB", STAT_AOK: "AOK", STAT_HLT: "HLT",
    STAT_ADR: "ADR", STAT_INS: "INS", STAT_PIP: "PIP",
}

# Statuses that freeze the pipeline once they reach Memory/Writeback
FAULT_STATS = (STAT_HLT, STAT_ADR, STAT_INS)

# ---------------------------------------------------------------------------
#  Opcode table
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OpInfo:
    """Static shape of one opcode byte."""
    name: str
    icode: int
    ifun: int
    length: int
    need_regids: bool
    need_valc: bool


def _ops(icode: int, names: tuple, length: int, regids: bool, valc: bool):
    return {
        (icode << 4) | ifun: OpInfo(name, icode, ifun, length, regids, valc)
        for ifun, name in enumerate(names)
    }


OPCODES: dict[int, OpInfo] = {}
OPCODES.update(_ops(I_HALT,   ("halt",), 1, False, False))
OPCODES.update(_ops(I_NOP,    ("nop",), 1, False, False))
OPCODES.update(_ops(I_RRMOVQ, ("rrmovq", "cmovle", "cmovl", "cmove",
                               "cmovne", "cmovge", "cmovg"), 2, True, False))
OPCODES.update(_ops(I_IRMOVQ, ("irmovq",), 10, True, True))
OPCODES.update(_ops(I_RMMOVQ, ("rmmovq",), 10, True, True))
OPCODES.update(_ops(I_MRMOVQ, ("mrmovq",), 10, True, True))
OPCODES.update(_ops(I_ALU,    ("addq", "subq", "andq", "xorq"), 2, True, False))
OPCODES.update(_ops(I_JMP,    ("jmp", "jle", "jl", "je", "jne", "jge", "jg"),
                    9, False, True))
OPCODES.update(_ops(I_CALL,   ("call",), 9, False, True))
OPCODES.update(_ops(I_RET,    ("ret",), 1, False, False))
OPCODES.update(_ops(I_PUSHQ,  ("pushq",), 2, True, False))
OPCODES.update(_ops(I_POPQ,   ("popq",), 2, True, False))
OPCODES.update(_ops(I_IADDQ,  ("iaddq",), 10, True, True))

ALU_SYMBOLS = {A_ADD: "+", A_SUB: "-", A_AND: "&", A_XOR: "^"}

# ---------------------------------------------------------------------------
#  Helpers
# ---------------------------------------------------------------------------

def u64(v: int) -> int:
    """Mask to unsigned 64 bits."""
    return v & MASK64

def s64(v: int) -> int:
    """Interpret a 64-bit value as signed."""
    v = u64(v)
    return v - (1 << 64) if v >= SIGN64 else v

def hi4(b: int) -> int:
    return (b >> 4) & 0xF

def lo4(b: int) -> int:
    return b & 0xF

def hpack(hi: int, lo: int) -> int:
    return ((hi & 0xF) << 4) | (lo & 0xF)

def reg_name(reg_id: int) -> str:
    if 0 <= reg_id < NUM_REGS:
        return REG_NAMES[reg_id]
    return "----"

def stat_name(stat: int) -> str:
    return STAT_NAMES.get(stat, "Invalid Status")

def iname(icode: int, ifun: int) -> str:
    info = OPCODES.get(hpack(icode, ifun))
    return info.name if info else "<bad>"

# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class Y86Error(Exception):
    """Base for simulator errors."""
    pass

class AddressError(Y86Error):
    def __init__(self, addr: int, width: int = 1):
        self.addr = addr
        self.width = width
        super().__init__(f"Invalid address {addr:#x} (width {width})")

# ---------------------------------------------------------------------------
#  Condition codes and ALU
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConditionCodes:
    """Zero / sign / overflow flags of the most recent qualifying ALU op."""
    zf: int = 1
    sf: int = 0
    of: int = 0

    def holds(self, cond: int) -> bool:
        """Evaluate a jXX / cmovXX condition against these flags."""
        lt = bool(self.sf ^ self.of)
        if cond == C_YES: return True
        if cond == C_LE:  return lt or bool(self.zf)
        if cond == C_L:   return lt
        if cond == C_E:   return bool(self.zf)
        if cond == C_NE:  return not self.zf
        if cond == C_GE:  return not lt
        if cond == C_G:   return not lt and not self.zf
        return False

    def __str__(self) -> str:
        return f"Z={self.zf} S={self.sf} O={self.of}"


DEFAULT_CC = ConditionCodes()


def compute_alu(alufun: int, a: int, b: int) -> int:
    """Compute `b OP a` as the ALU does (subq is rB - rA)."""
    if alufun == A_ADD:
        return u64(b + a)
    if alufun == A_SUB:
        return u64(b - a)
    if alufun == A_AND:
        return u64(a & b)
    if alufun == A_XOR:
        return u64(a ^ b)
    return 0

def compute_cc(alufun: int, a: int, b: int) -> ConditionCodes:
    val = compute_alu(alufun, a, b)
    sa, sb, sv = s64(a), s64(b), s64(val)
    if alufun == A_ADD:
        ovf = (sa < 0) == (sb < 0) and (sv < 0) != (sa < 0)
    elif alufun == A_SUB:
        ovf = (sa < 0) != (sb < 0) and (sv < 0) != (sb < 0)
    else:
        ovf = False
    return ConditionCodes(int(val == 0), int(sv < 0), int(ovf))

# ---------------------------------------------------------------------------
#  Memory
# ---------------------------------------------------------------------------

class Memory:
    """Fixed-capacity byte-addressable store."""

    def __init__(self, size: int = MEM_SIZE):
        self.size = size
        self.contents = bytearray(size)

    def __len__(self) -> int:
        return self.size

    def _check(self, addr: int, width: int):
        if addr < 0 or width < 0 or addr + width > self.size:
            raise AddressError(addr, width)

    def read(self, addr: int, width: int) -> bytes:
        self._check(addr, width)
        return bytes(self.contents[addr:addr + width])

    def write(self, addr: int, width: int, data: bytes | bytearray):
        if len(data) != width:
            raise ValueError(f"write of {len(data)} bytes with width {width}")
        self._check(addr, width)
        self.contents[addr:addr + width] = data

    def read_byte(self, addr: int) -> int:
        self._check(addr, 1)
        return self.contents[addr]

    def read_word(self, addr: int) -> int:
        self._check(addr, WORD)
        return struct.unpack_from("<Q", self.contents, addr)[0]

    def write_word(self, addr: int, val: int):
        self._check(addr, WORD)
        struct.pack_into("<Q", self.contents, addr, u64(val))

    def clear(self):
        self.contents[:] = bytes(self.size)

    def copy(self) -> Memory:
        dup = Memory(self.size)
        dup.contents[:] = self.contents
        return dup

# ---------------------------------------------------------------------------
#  Register file
# ---------------------------------------------------------------------------

class RegisterFile:
    """Fifteen 64-bit registers; REG_NONE reads as 0 and ignores writes."""

    def __init__(self):
        self.values: list[int] = [0] * NUM_REGS

    def read(self, reg_id: int) -> int:
        if reg_id == REG_NONE:
            return 0
        return self.values[reg_id]

    def write(self, reg_id: int, val: int):
        if reg_id == REG_NONE:
            return
        self.values[reg_id] = u64(val)

    def clear(self):
        self.values = [0] * NUM_REGS

    def copy(self) -> RegisterFile:
        dup = RegisterFile()
        dup.values = list(self.values)
        return dup

# ---------------------------------------------------------------------------
#  State diffs (end-of-run summary)
# ---------------------------------------------------------------------------

def diff_reg(old: RegisterFile, new: RegisterFile,
             out: Optional[TextIO] = None) -> bool:
    """Report registers whose values differ. Returns True if any differ."""
    changed = False
    for i in range(NUM_REGS):
        a, b = old.values[i], new.values[i]
        if a != b:
            changed = True
            if out is not None:
                print(f"{REG_NAMES[i]}:\t0x{a:016x}\t0x{b:016x}", file=out)
    return changed

def diff_mem(old: Memory, new: Memory, out: Optional[TextIO] = None) -> bool:
    """Report aligned 8-byte words that differ. Returns True if any differ."""
    changed = False
    size = min(old.size, new.size)
    for pos in range(0, size - WORD + 1, WORD):
        a = struct.unpack_from("<Q", old.contents, pos)[0]
        b = struct.unpack_from("<Q", new.contents, pos)[0]
        if a != b:
            changed = True
            if out is not None:
                print(f"0x{pos:04x}:\t0x{a:016x}\t0x{b:016x}", file=out)
    return changed
