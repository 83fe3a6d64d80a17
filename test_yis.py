#!/usr/bin/env python3
"""
Tests for the sequential ISA model and the pipeline-versus-ISA cross-check.
"""
import unittest

import pytest

from psim import PipeSim
from yis import IsaState
from y86 import (
    Memory, DEFAULT_CC, ConditionCodes, diff_reg, diff_mem, REG_NAMES,
    REG_RSP, STAT_AOK, STAT_HLT, STAT_ADR, STAT_INS,
)
from loader import load_object
from testprogs import (
    ASUM_YO, ASUM_REGS, ASUM_MEM, MIXED_YO, MIXED_REGS, MIXED_MEM,
    DATA_ADR_YO, BAD_OPCODE_YO, FETCH_ADR_YO, HALT_YO, random_program,
    LOAD_RET_YO, CALL_BAD_TARGET_YO, CALL_BAD_STACK_YO, STACK_EDGE_PROGRAMS,
)


def isa_run(text, max_steps=10000):
    mem = Memory()
    load_object(mem, text)
    isa = IsaState(mem)
    steps = isa.run(max_steps)
    return isa, steps


def regs_of(state):
    return {REG_NAMES[i]: v for i, v in enumerate(state.reg.values) if v}


class TestIsaPrograms(unittest.TestCase):
    def test_asum(self):
        isa, steps = isa_run(ASUM_YO)
        self.assertEqual(isa.status, STAT_HLT)
        self.assertEqual(steps, 34)
        self.assertEqual(regs_of(isa), ASUM_REGS)
        for addr, val in ASUM_MEM.items():
            self.assertEqual(isa.mem.read_word(addr), val)

    def test_mixed(self):
        isa, steps = isa_run(MIXED_YO)
        self.assertEqual(steps, 16)
        self.assertEqual(regs_of(isa), MIXED_REGS)
        self.assertEqual(isa.cc, ConditionCodes(0, 0, 0))
        for addr, val in MIXED_MEM.items():
            self.assertEqual(isa.mem.read_word(addr), val)

    def test_faults(self):
        isa, _ = isa_run(DATA_ADR_YO)
        self.assertEqual((isa.status, regs_of(isa), isa.cc),
                         (STAT_ADR, {"%rax": 1}, DEFAULT_CC))
        isa, _ = isa_run(BAD_OPCODE_YO)
        self.assertEqual((isa.status, regs_of(isa)), (STAT_INS, {"%rax": 5}))
        isa, _ = isa_run(FETCH_ADR_YO)
        self.assertEqual(isa.status, STAT_ADR)

    def test_halt_stops(self):
        isa, steps = isa_run(HALT_YO)
        self.assertEqual((isa.status, steps), (STAT_HLT, 1))
        self.assertEqual(isa.step(), STAT_HLT)

    def test_step_limit(self):
        isa, steps = isa_run(ASUM_YO, max_steps=5)
        self.assertEqual(steps, 5)
        self.assertEqual(isa.status, STAT_AOK)


class TestStackEdgeCases(unittest.TestCase):
    def test_push_rsp_stores_old_value(self):
        text = ("0x000: 30f40001000000000000\n"   # irmovq $0x100,%rsp
                "0x00a: a04f\n"                   # pushq %rsp
                "0x00c: 00\n")
        for state in self.both(text):
            self.assertEqual(state.mem.read_word(0xf8), 0x100)
            self.assertEqual(state.reg.read(REG_RSP), 0xf8)

    def test_pop_rsp_takes_loaded_value(self):
        text = ("0x000: 30f40001000000000000\n"   # irmovq $0x100,%rsp
                "0x00a: b04f\n"                   # popq %rsp
                "0x00c: 00\n"
                "0x100: 3412000000000000\n")
        for state in self.both(text):
            self.assertEqual(state.reg.read(REG_RSP), 0x1234)

    def test_ret_to_bad_address(self):
        text = ("0x000: 30f40001000000000000\n"
                "0x00a: 90\n"
                "0x100: 0000010000000000\n")     # return address 0x10000
        for state in self.both(text):
            self.assertEqual(state.status, STAT_ADR)

    def test_loaded_rsp_feeds_ret(self):
        for state in self.both(LOAD_RET_YO):
            self.assertEqual(state.status, STAT_HLT)
            self.assertEqual(regs_of(state), {"%rcx": 7, "%rbx": 0x200,
                                              "%rsp": 0x1f8})

    def test_call_to_bad_address(self):
        for state in self.both(CALL_BAD_TARGET_YO):
            self.assertEqual(state.status, STAT_ADR)
            # The call itself completes before the fetch faults
            self.assertEqual(state.reg.read(REG_RSP), 0xf8)
            self.assertEqual(state.mem.read_word(0xf8), 0x13)

    def test_call_with_empty_stack(self):
        for state in self.both(CALL_BAD_STACK_YO):
            self.assertEqual(state.status, STAT_ADR)
            self.assertEqual(regs_of(state), {})

    @staticmethod
    def both(text):
        isa, _ = isa_run(text)
        sim = PipeSim()
        sim.load(text)
        sim.run(100)
        return isa, sim


@pytest.mark.crosscheck
@pytest.mark.usefixtures("random_programs")
class TestCrossCheck(unittest.TestCase):
    """Pipeline and ISA model must agree on registers, memory, and CC."""

    def compare(self, text, label):
        sim = PipeSim()
        sim.load(text)
        result = sim.run(10000)
        isa, _ = isa_run(text)
        self.assertEqual(result.status, isa.status, label)
        self.assertFalse(diff_reg(isa.reg, sim.reg), label)
        self.assertFalse(diff_mem(isa.mem, sim.mem), label)
        self.assertEqual(result.cc, isa.cc, label)

    def test_fixed_programs(self):
        for name, text in (("asum", ASUM_YO), ("mixed", MIXED_YO),
                           ("data_adr", DATA_ADR_YO), ("bad_opcode", BAD_OPCODE_YO),
                           ("fetch_adr", FETCH_ADR_YO), ("halt", HALT_YO)):
            self.compare(text, name)

    def test_stack_edge_programs(self):
        for name, text in STACK_EDGE_PROGRAMS.items():
            self.compare(text, name)

    def test_random_programs(self):
        count = getattr(self, "random_programs", 60)
        for seed in range(count):
            self.compare(random_program(seed), f"seed {seed}")

    def test_generator_is_deterministic(self):
        self.assertEqual(random_program(7), random_program(7))
        self.assertNotEqual(random_program(7), random_program(8))


if __name__ == "__main__":
    unittest.main()
