"""
Y86-64 test programs shared by the test modules.

Hand-assembled `.yo` listings with their known final state, plus a seeded
generator of random straight-line-ish programs for the pipeline-versus-ISA
cross-check.
"""

from __future__ import annotations
import random

from y86 import (
    I_RRMOVQ, I_IRMOVQ, I_RMMOVQ, I_MRMOVQ, I_ALU, I_JMP, I_CALL, I_RET,
    I_PUSHQ, I_POPQ, I_IADDQ, I_HALT, I_NOP,
    REG_RSP, REG_RBP, REG_NONE, NUM_REGS, hpack, u64,
)

# Sum a four-element array through two nested calls.
ASUM_YO = """\
                            | # Execution begins at address 0
0x000:                      |     .pos 0
0x000: 30f40002000000000000 |     irmovq stack, %rsp
0x00a: 803800000000000000   |     call main
0x013: 00                   |     halt
                            |
0x018:                      |     .align 8
0x018: 0d000d000d000000     | array: .quad 0x000d000d000d
0x020: c000c000c0000000     |     .quad 0x00c000c000c0
0x028: 000b000b000b0000     |     .quad 0x0b000b000b00
0x030: 00a000a000a00000     |     .quad 0xa000a000a000
                            |
0x038: 30f71800000000000000 | main: irmovq array,%rdi
0x042: 30f60400000000000000 |     irmovq $4,%rsi
0x04c: 805600000000000000   |     call sum
0x055: 90                   |     ret
                            |
0x056: 30f80800000000000000 | sum: irmovq $8,%r8
0x060: 30f90100000000000000 |     irmovq $1,%r9
0x06a: 6300                 |     xorq %rax,%rax
0x06c: 6266                 |     andq %rsi,%rsi
0x06e: 708700000000000000   |     jmp test
0x077: 50a70000000000000000 | loop: mrmovq (%rdi),%r10
0x081: 60a0                 |     addq %r10,%rax
0x083: 6087                 |     addq %r8,%rdi
0x085: 6196                 |     subq %r9,%rsi
0x087: 747700000000000000   | test: jne loop
0x090: 90                   |     ret
                            |
0x200:                      |     .pos 0x200
0x200:                      | stack:
"""

ASUM_REGS = {
    "%rax": 0xabcdabcdabcd, "%rsp": 0x200, "%rdi": 0x38,
    "%r8": 0x8, "%r9": 0x1, "%r10": 0xa000a000a000,
}
ASUM_MEM = {0x1f0: 0x55, 0x1f8: 0x13}

# Push/pop, conditional moves, a memory round trip through the stack frame,
# iaddq, and a not-taken je.
MIXED_YO = """\
0x000: 30f40001000000000000 |     irmovq $0x100,%rsp
0x00a: 30f00a00000000000000 |     irmovq $10,%rax
0x014: 30f30300000000000000 |     irmovq $3,%rbx
0x01e: a00f                 |     pushq %rax
0x020: b02f                 |     popq %rdx
0x022: 6032                 |     addq %rbx,%rdx
0x024: 2621                 |     cmovg %rdx,%rcx
0x026: 6103                 |     subq %rax,%rbx
0x028: 2630                 |     cmovg %rbx,%rax
0x02a: 2236                 |     cmovl %rbx,%rsi
0x02c: 40140800000000000000 |     rmmovq %rcx,8(%rsp)
0x036: 50740800000000000000 |     mrmovq 8(%rsp),%rdi
0x040: c0f7ffffffffffffffff |     iaddq $-1,%rdi
0x04a: 735e00000000000000   |     je skip
0x053: 30f85500000000000000 |     irmovq $0x55,%r8
0x05d: 00                   |     halt
0x05e: 30f96600000000000000 | skip: irmovq $0x66,%r9
0x068: 00                   |     halt
"""

MIXED_REGS = {
    "%rax": 10, "%rcx": 13, "%rdx": 13, "%rbx": u64(-7), "%rsp": 0x100,
    "%rsi": u64(-7), "%rdi": 12, "%r8": 0x55,
}
MIXED_MEM = {0xf8: 0xa, 0x108: 0xd}

# mrmovq from 0x10000 faults; the addq behind it must not touch rax or CC.
DATA_ADR_YO = """\
0x000: 30f00100000000000000 |     irmovq $1,%rax
0x00a: 501f0000010000000000 |     mrmovq 0x10000,%rcx
0x014: 6000                 |     addq %rax,%rax
0x016: 30f20200000000000000 |     irmovq $2,%rdx
0x020: 400f0001000000000000 |     rmmovq %rax,0x100
0x02a: 00                   |     halt
"""

BAD_OPCODE_YO = """\
0x000: 30f00500000000000000 |     irmovq $5,%rax
0x00a: f0                   |     .byte 0xf0
0x00b: 6000                 |     addq %rax,%rax
"""

FETCH_ADR_YO = """\
0x000: 700030000000000000   |     jmp 0x3000
"""

HALT_YO = """\
0x000: 00                   |     halt
"""

# ---------------------------------------------------------------------------
#  Stack pointer edge cases
# ---------------------------------------------------------------------------

PUSH_RSP_YO = """\
0x000: 30f40001000000000000 |     irmovq $0x100,%rsp
0x00a: a04f                 |     pushq %rsp          # stores 0x100
0x00c: 6044                 |     addq %rsp,%rsp
0x00e: 00                   |     halt
"""

POP_RSP_YO = """\
0x000: 30f40001000000000000 |     irmovq $0x100,%rsp
0x00a: b04f                 |     popq %rsp           # %rsp = M[0x100]
0x00c: a04f                 |     pushq %rsp
0x00e: 00                   |     halt
0x100: 8000000000000000     |     .quad 0x80
"""

# Loaded %rsp feeds ret directly: load/use and ret hazards at once
LOAD_RET_YO = """\
0x000: 30f30002000000000000 |     irmovq $0x200,%rbx
0x00a: 50430000000000000000 |     mrmovq 0(%rbx),%rsp
0x014: 90                   |     ret
0x015: 00                   |     halt
0x020: 30f10700000000000000 | back: irmovq $7,%rcx
0x02a: 00                   |     halt
0x1f0: 2000000000000000     |     .quad back
0x200: f001000000000000     |     .quad 0x1f0
"""

CALL_BAD_TARGET_YO = """\
0x000: 30f40001000000000000 |     irmovq $0x100,%rsp
0x00a: 800030000000000000   |     call 0x3000
0x013: 00                   |     halt
"""

# Empty stack: the return address push wraps below zero
CALL_BAD_STACK_YO = """\
0x000: 800a00000000000000   |     call sub
0x009: 00                   |     halt
0x00a: 30f00100000000000000 | sub: irmovq $1,%rax
0x014: 00                   |     halt
"""

RET_BAD_YO = """\
0x000: 30f40001000000000000 |     irmovq $0x100,%rsp
0x00a: 90                   |     ret
0x100: 0000010000000000     |     .quad 0x10000
"""

STACK_EDGE_PROGRAMS = {
    "push_rsp": PUSH_RSP_YO,
    "pop_rsp": POP_RSP_YO,
    "load_ret": LOAD_RET_YO,
    "call_bad_target": CALL_BAD_TARGET_YO,
    "call_bad_stack": CALL_BAD_STACK_YO,
    "ret_bad": RET_BAD_YO,
}

# ---------------------------------------------------------------------------
#  Hazard cost pairs: same instruction count, differing only in the hazard
# ---------------------------------------------------------------------------

LOAD_USE_YO = """\
0x000: 30f30800000000000000 |     irmovq $8,%rbx
0x00a: 50030000000000000000 |     mrmovq 0(%rbx),%rax
0x014: 6001                 |     addq %rax,%rcx      # needs the load
0x016: 00                   |     halt
"""

LOAD_NO_USE_YO = """\
0x000: 30f30800000000000000 |     irmovq $8,%rbx
0x00a: 50030000000000000000 |     mrmovq 0(%rbx),%rax
0x014: 6021                 |     addq %rdx,%rcx
0x016: 00                   |     halt
"""

# Z=1 after xorq, so jne falls through after fetching the target
JNE_NOT_TAKEN_YO = """\
0x000: 30f00100000000000000 |     irmovq $1,%rax
0x00a: 6300                 |     xorq %rax,%rax
0x00c: 742000000000000000   |     jne target
0x015: 30f20200000000000000 |     irmovq $2,%rdx
0x01f: 00                   |     halt
0x020: 30f30300000000000000 | target: irmovq $3,%rbx
0x02a: 00                   |     halt
"""

JE_TAKEN_YO = """\
0x000: 30f00100000000000000 |     irmovq $1,%rax
0x00a: 6300                 |     xorq %rax,%rax
0x00c: 732000000000000000   |     je target
0x015: 30f20200000000000000 |     irmovq $2,%rdx
0x01f: 00                   |     halt
0x020: 30f30300000000000000 | target: irmovq $3,%rbx
0x02a: 00                   |     halt
"""

# ---------------------------------------------------------------------------
#  Random programs
# ---------------------------------------------------------------------------

STACK_BASE = 0x1000
DATA_BASE  = 0x800

# rsp and rbp stay fixed so every memory access is in range
WRITABLE = [r for r in range(NUM_REGS) if r not in (REG_RSP, REG_RBP)]


def _word(v: int) -> bytes:
    return u64(v).to_bytes(8, "little")


def _rr(icode, ifun, ra, rb) -> bytes:
    return bytes([hpack(icode, ifun), hpack(ra, rb)])


def _ri(icode, ifun, ra, rb, valc) -> bytes:
    return _rr(icode, ifun, ra, rb) + _word(valc)


def _dest(icode, ifun, target) -> bytes:
    return bytes([hpack(icode, ifun)]) + _word(target)


def random_program(seed: int, length: int = 40) -> str:
    """Return a .yo listing of a random terminating program."""
    rng = random.Random(seed)

    def any_reg():
        return rng.randrange(NUM_REGS)

    def dst_reg():
        return rng.choice(WRITABLE)

    def disp():
        return rng.randrange(0, 0x80, 8)

    # Items are bytes, or ("jcc", ifun) / ("call",) placeholders patched below
    items = [
        _ri(I_IRMOVQ, 0, REG_NONE, REG_RSP, STACK_BASE),
        _ri(I_IRMOVQ, 0, REG_NONE, REG_RBP, DATA_BASE),
    ]
    for reg in WRITABLE:
        if rng.random() < 0.6:
            items.append(_ri(I_IRMOVQ, 0, REG_NONE, reg, rng.randrange(-50, 50)))

    for _ in range(length):
        kind = rng.randrange(11)
        if kind == 0:
            items.append(_ri(I_IRMOVQ, 0, REG_NONE, dst_reg(),
                             rng.choice([0, 1, -1, rng.randrange(-1 << 63, 1 << 63)])))
        elif kind == 1:
            items.append(_rr(I_RRMOVQ, rng.randrange(7), any_reg(), dst_reg()))
        elif kind in (2, 3):
            items.append(_rr(I_ALU, rng.randrange(4), any_reg(), dst_reg()))
        elif kind == 4:
            items.append(_ri(I_IADDQ, 0, REG_NONE, dst_reg(), rng.randrange(-20, 20)))
        elif kind == 5:
            items.append(_ri(I_RMMOVQ, 0, any_reg(), REG_RBP, disp()))
        elif kind == 6:
            items.append(_ri(I_MRMOVQ, 0, dst_reg(), REG_RBP, disp()))
            if rng.random() < 0.5:
                # Consumer right behind the load
                items.append(_rr(I_ALU, 0, rng.choice(WRITABLE), dst_reg()))
        elif kind == 7:
            items.append(_rr(I_PUSHQ, 0, any_reg(), REG_NONE))
            items.append(_rr(I_POPQ, 0, dst_reg(), REG_NONE))
        elif kind == 8:
            items.append(("jcc", rng.randrange(7)))
        elif kind == 9:
            items.append(("call",))
        else:
            items.append(bytes([hpack(I_NOP, 0)]))

    items.append(bytes([hpack(I_HALT, 0)]))

    # Subroutine after the halt: touches a register and the stack frame
    sub = [
        _rr(I_ALU, 0, dst_reg(), dst_reg()),
        _ri(I_MRMOVQ, 0, dst_reg(), REG_RSP, 0),
        bytes([hpack(I_RET, 0)]),
    ]

    # First pass: addresses (placeholders are 9 bytes)
    addrs = []
    pc = 0
    for item in items:
        addrs.append(pc)
        pc += 9 if isinstance(item, tuple) else len(item)
    sub_addr = pc

    code = []
    for i, item in enumerate(items):
        if isinstance(item, tuple):
            if item[0] == "jcc":
                # Skip the following item
                target = addrs[i + 1] if i + 2 > len(items) - 1 else addrs[i + 2]
                item = _dest(I_JMP, item[1], target)
            else:
                item = _dest(I_CALL, 0, sub_addr)
        code.append((addrs[i], item))
    pc = sub_addr
    for chunk in sub:
        code.append((pc, chunk))
        pc += len(chunk)

    return "".join(f"0x{addr:03x}: {chunk.hex()}\n" for addr, chunk in code)
