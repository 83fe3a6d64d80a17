"""
Y86-64 Instruction Set Simulator
=================================
Sequential reference model: one whole instruction per step, no pipeline.
The pipelined simulator must leave exactly the same registers, memory, and
condition codes behind; psim's `-t` flag and the cross-check tests compare
the two.

Fault rules are the pipeline's: a bad opcode stops with INS, an
out-of-range fetch or data access stops with ADR, halt stops with HLT.
A faulting instruction makes no architectural change.
"""

from __future__ import annotations
from typing import Optional

from y86 import (
    AddressError, OPCODES, DEFAULT_CC, Memory, RegisterFile, MEM_SIZE,
    I_HALT, I_NOP, I_RRMOVQ, I_IRMOVQ, I_RMMOVQ, I_MRMOVQ, I_ALU, I_JMP,
    I_CALL, I_RET, I_PUSHQ, I_POPQ, I_IADDQ,
    A_ADD, REG_RSP, REG_NONE, STAT_AOK, STAT_HLT, STAT_ADR, STAT_INS,
    compute_alu, compute_cc, hi4, lo4, u64,
)


class IsaState:
    """Architectural state of a sequential Y86-64 machine."""

    def __init__(self, mem: Optional[Memory] = None, mem_size: int = MEM_SIZE):
        self.mem = mem if mem is not None else Memory(mem_size)
        self.reg = RegisterFile()
        self.cc = DEFAULT_CC
        self.pc = 0
        self.status = STAT_AOK

    def step(self) -> int:
        """Execute the instruction at pc. Returns the new status."""
        if self.status != STAT_AOK:
            return self.status
        try:
            self.status = self._execute()
        except AddressError:
            self.status = STAT_ADR
        return self.status

    def _execute(self) -> int:
        pc = self.pc
        info = OPCODES.get(self.mem.read_byte(pc))
        if info is None:
            return STAT_INS
        ra = rb = REG_NONE
        valc = 0
        valp = pc + 1
        if info.need_regids:
            regids = self.mem.read_byte(valp)
            ra, rb = hi4(regids), lo4(regids)
            valp += 1
        if info.need_valc:
            valc = self.mem.read_word(valp)
            valp += 8

        icode, ifun = info.icode, info.ifun
        reg, mem = self.reg, self.mem
        rsp = reg.read(REG_RSP)
        next_pc = valp

        if icode == I_HALT:
            return STAT_HLT
        elif icode == I_NOP:
            pass
        elif icode == I_RRMOVQ:
            if self.cc.holds(ifun):
                reg.write(rb, reg.read(ra))
        elif icode == I_IRMOVQ:
            reg.write(rb, valc)
        elif icode == I_RMMOVQ:
            mem.write_word(u64(reg.read(rb) + valc), reg.read(ra))
        elif icode == I_MRMOVQ:
            reg.write(ra, mem.read_word(u64(reg.read(rb) + valc)))
        elif icode in (I_ALU, I_IADDQ):
            alufun = ifun if icode == I_ALU else A_ADD
            a = reg.read(ra) if icode == I_ALU else valc
            b = reg.read(rb)
            reg.write(rb, compute_alu(alufun, a, b))
            self.cc = compute_cc(alufun, a, b)
        elif icode == I_JMP:
            if self.cc.holds(ifun):
                next_pc = valc
        elif icode == I_CALL:
            mem.write_word(u64(rsp - 8), valp)
            reg.write(REG_RSP, rsp - 8)
            next_pc = valc
        elif icode == I_RET:
            next_pc = mem.read_word(rsp)
            reg.write(REG_RSP, rsp + 8)
        elif icode == I_PUSHQ:
            # pushq %rsp stores the old stack pointer
            mem.write_word(u64(rsp - 8), reg.read(ra))
            reg.write(REG_RSP, rsp - 8)
        elif icode == I_POPQ:
            val = mem.read_word(rsp)
            reg.write(REG_RSP, rsp + 8)
            reg.write(ra, val)

        self.pc = next_pc
        return STAT_AOK

    def run(self, max_steps: int) -> int:
        """Step until a non-AOK status or max_steps. Returns instructions run.

        The instruction that stops the machine (halt or a fault) counts.
        """
        count = 0
        while count < max_steps and self.status == STAT_AOK:
            self.step()
            count += 1
        return count
