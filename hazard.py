"""
Hazard Control
===============
Decides, once per cycle after all stages have run, which pipeline registers
load, stall, or bubble at the next update.

Conditions (all read from this cycle's stage outputs):

  load/use        E holds mrmovq/popq whose dstM feeds the instruction in Decode
  ret pending     a ret is somewhere in D, E or M
  mispredict      E holds a conditional jump that was not taken
  fault           Memory or Writeback holds a HLT / ADR / INS instruction

Nothing here prioritises one condition over another; each register's stall
and bubble requests go to PipeRegister.control(), which flags a conflict if
both are raised together.
"""

from __future__ import annotations
from typing import TYPE_CHECKING

from y86 import I_MRMOVQ, I_POPQ, I_RET, I_JMP, REG_NONE, STAT_BUB, FAULT_STATS

if TYPE_CHECKING:
    from psim import PipeSim


def load_use(sim: PipeSim) -> bool:
    e = sim.E.current
    d_out = sim.E.next
    return (e.icode in (I_MRMOVQ, I_POPQ) and e.dstm != REG_NONE
            and e.dstm in (d_out.srca, d_out.srcb))


def ret_pending(sim: PipeSim) -> bool:
    return I_RET in (sim.D.current.icode, sim.E.current.icode, sim.M.current.icode)


def mispredicted(sim: PipeSim) -> bool:
    return sim.E.current.icode == I_JMP and not sim.M.next.cnd


def memory_fault(sim: PipeSim) -> bool:
    return sim.W.next.stat in FAULT_STATS


def writeback_fault(sim: PipeSim) -> bool:
    return sim.W.current.stat in FAULT_STATS


def pipe_control(sim: PipeSim):
    """Set every register's control tag and bump the hazard counters."""
    lu = load_use(sim)
    rp = ret_pending(sim)
    mp = mispredicted(sim)
    wb_fault = writeback_fault(sim)

    sim.F.control(stall=lu or rp, bubble=False)
    sim.D.control(stall=lu, bubble=mp or (rp and not lu))
    sim.E.control(stall=False, bubble=mp or lu)
    sim.M.control(stall=False, bubble=memory_fault(sim) or wb_fault)
    sim.W.control(stall=wb_fault, bubble=False)

    if lu:
        sim.load_use_stalls += 1
    if rp and not lu:
        sim.ret_bubbles += 1
    if mp:
        sim.mispredicts += 1


def committed(sim: PipeSim) -> bool:
    """True if a real instruction entered Writeback at the last update."""
    return sim.W.current.stat != STAT_BUB
