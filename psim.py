"""
PIPE Simulator Driver
======================
Cycle-accurate model of the five-stage Y86-64 pipeline.

One call to step() is one clock cycle:

  1. every pipeline register applies the control tag set last cycle
     (LOAD / STALL / BUBBLE); an ERROR tag ends the run with status PIP
  2. the per-cycle trace is written (verbosity 2)
  3. stages run downstream to upstream: Writeback, Memory, Execute,
     Decode, Fetch.  This order is load-bearing: Decode's forwarding reads
     the outputs Execute and Memory produced this cycle, Execute's CC commit
     reads Memory's new status, and Fetch reads the recovery targets
  4. the hazard unit sets the tags for the next update
  5. counters advance

Usage:
  sim = PipeSim()
  sim.load(open("prog.yo"))
  result = sim.run(10000)
  print(result.status, sim.cpi)
"""

from __future__ import annotations
import sys
from dataclasses import dataclass
from typing import Iterable, Optional, TextIO

from y86 import (
    MEM_SIZE, DEFAULT_CC, ConditionCodes, Memory, RegisterFile,
    STAT_AOK, STAT_BUB, STAT_PIP, iname, reg_name, stat_name,
)
from loader import load_object
from pipeline import (
    PipeRegister, P_LOAD, P_ERROR,
    FetchReg, DecodeReg, ExecuteReg, MemoryReg, WritebackReg,
)
import stages
import hazard


@dataclass
class RunResult:
    instructions: int
    status: int
    cc: ConditionCodes
    cycles: int


class PipeSim:
    """Pipelined Y86-64 processor with its own memory and register file."""

    def __init__(self, mem_size: int = MEM_SIZE, dumpfile: Optional[TextIO] = None):
        self.mem = Memory(mem_size)
        self.reg = RegisterFile()
        self.cc = DEFAULT_CC
        self.status = STAT_AOK
        self.dumpfile = dumpfile

        self.F = PipeRegister("F", FetchReg)
        self.D = PipeRegister("D", DecodeReg)
        self.E = PipeRegister("E", ExecuteReg)
        self.M = PipeRegister("M", MemoryReg)
        self.W = PipeRegister("W", WritebackReg)
        for preg in self.pipes:
            preg.on_conflict = self._conflict

        self._reset_counters()

    @property
    def pipes(self) -> tuple[PipeRegister, ...]:
        return (self.F, self.D, self.E, self.M, self.W)

    def _reset_counters(self):
        self.cycles = 0
        self.instructions = 0
        self.cpi_cycles = 0
        self.starting_up = True
        self.load_use_stalls = 0
        self.ret_bubbles = 0
        self.mispredicts = 0

    def _conflict(self, name: str):
        self.log(f"Pipe control conflict for register {name}: stall and bubble both requested")

    # -- Logging --------------------------------------------------------

    def log(self, msg: str):
        if self.dumpfile is not None:
            print(msg, file=self.dumpfile)

    # -- Setup ----------------------------------------------------------

    def reset(self):
        """Return to power-on state: bubbles everywhere, zeroed memory/registers."""
        for preg in self.pipes:
            preg.clear()
        self.mem.clear()
        self.reg.clear()
        self.cc = DEFAULT_CC
        self.status = STAT_AOK
        self._reset_counters()

    def load(self, lines: Iterable[str] | str) -> int:
        """Load a .yo image into memory. Returns the byte count."""
        return load_object(self.mem, lines)

    # -- Execution ------------------------------------------------------

    def step(self) -> int:
        """Advance one clock cycle. Returns the pipeline status."""
        ops = [preg.update() for preg in self.pipes]
        self.cycles += 1
        if P_ERROR in ops:
            self.status = STAT_PIP
            self.report(self.cycles - 1)
            return self.status

        self.report(self.cycles - 1)

        stages.writeback(self)
        stages.memory(self)
        stages.execute(self)
        stages.decode(self)
        stages.fetch(self)

        hazard.pipe_control(self)

        if ops[-1] == P_LOAD and hazard.committed(self):
            self.starting_up = False
            self.instructions += 1
        if not self.starting_up:
            self.cpi_cycles += 1
        return self.status

    def run(self, max_instr: int, max_cycle: Optional[int] = None) -> RunResult:
        """Step until a terminal status or until either budget runs out."""
        if max_cycle is None:
            max_cycle = 5 * max_instr
        while self.instructions < max_instr and self.cycles < max_cycle:
            status = self.step()
            if status not in (STAT_AOK, STAT_BUB):
                break
        return RunResult(self.instructions, self.status, self.cc, self.cycles)

    @property
    def cpi(self) -> float:
        if self.instructions == 0:
            return 1.0
        return self.cpi_cycles / self.instructions

    # -- Trace ----------------------------------------------------------

    def report(self, cycle: int):
        """Write the state of every pipeline register to the dumpfile."""
        if self.dumpfile is None:
            return
        f, d, e, m, w = (preg.current for preg in self.pipes)
        self.log(f"\nCycle {cycle}. CC={self.cc}, Stat={stat_name(self.status)}")
        self.log(f"F: predPC = 0x{f.pred_pc:x}")
        self.log(f"D: instr = {iname(d.icode, d.ifun)}, rA = {reg_name(d.ra)}, "
                 f"rB = {reg_name(d.rb)}, valC = 0x{d.valc:x}, valP = 0x{d.valp:x}, "
                 f"Stat = {stat_name(d.stat)}")
        self.log(f"E: instr = {iname(e.icode, e.ifun)}, valC = 0x{e.valc:x}, "
                 f"valA = 0x{e.vala:x}, valB = 0x{e.valb:x}\n"
                 f"   srcA = {reg_name(e.srca)}, srcB = {reg_name(e.srcb)}, "
                 f"dstE = {reg_name(e.dste)}, dstM = {reg_name(e.dstm)}, "
                 f"Stat = {stat_name(e.stat)}")
        self.log(f"M: instr = {iname(m.icode, m.ifun)}, Cnd = {int(m.cnd)}, "
                 f"valE = 0x{m.vale:x}, valA = 0x{m.vala:x}\n"
                 f"   dstE = {reg_name(m.dste)}, dstM = {reg_name(m.dstm)}, "
                 f"Stat = {stat_name(m.stat)}")
        self.log(f"W: instr = {iname(w.icode, w.ifun)}, valE = 0x{w.vale:x}, "
                 f"valM = 0x{w.valm:x}, dstE = {reg_name(w.dste)}, "
                 f"dstM = {reg_name(w.dstm)}, Stat = {stat_name(w.stat)}")


def main(argv=None):
    # Thin alias so `python -m psim` behaves like the console script
    from cli import main as cli_main
    return cli_main(argv)


if __name__ == "__main__":
    sys.exit(main())
