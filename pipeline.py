"""
Pipeline Registers
===================
The five boundary buffers of the PIPE processor and their payloads.

Each register holds a `current` payload (what its consumer stage reads this
cycle) and a `next` payload (what its producer stage computed this cycle),
plus one control tag applied at the start of the following cycle:

  LOAD    current <- next
  STALL   current kept; the consumer sees the same instruction again
  BUBBLE  current <- bubble payload
  ERROR   stall and bubble requested together; current <- bubble marked PIP

Registers are named after the stage that consumes them:

  F  predicted PC          (read by Fetch)
  D  Fetch   -> Decode
  E  Decode  -> Execute
  M  Execute -> Memory
  W  Memory  -> Writeback

A payload dataclass constructed with no arguments *is* the bubble.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Callable, Optional

from y86 import I_NOP, F_NONE, REG_NONE, STAT_AOK, STAT_BUB, STAT_PIP

# Control tags
P_LOAD   = 0
P_STALL  = 1
P_BUBBLE = 2
P_ERROR  = 3

P_NAMES = {P_LOAD: "LOAD", P_STALL: "STALL", P_BUBBLE: "BUBBLE", P_ERROR: "ERROR"}

# ---------------------------------------------------------------------------
#  Payloads
# ---------------------------------------------------------------------------

@dataclass
class FetchReg:
    pred_pc: int = 0
    stat: int = STAT_AOK


@dataclass
class DecodeReg:
    icode: int = I_NOP
    ifun: int = F_NONE
    ra: int = REG_NONE
    rb: int = REG_NONE
    valc: int = 0
    valp: int = 0
    stat: int = STAT_BUB
    pc: int = 0


@dataclass
class ExecuteReg:
    icode: int = I_NOP
    ifun: int = F_NONE
    valc: int = 0
    vala: int = 0
    valb: int = 0
    srca: int = REG_NONE
    srcb: int = REG_NONE
    dste: int = REG_NONE
    dstm: int = REG_NONE
    stat: int = STAT_BUB
    pc: int = 0


@dataclass
class MemoryReg:
    icode: int = I_NOP
    ifun: int = F_NONE
    cnd: bool = False
    vale: int = 0
    vala: int = 0
    dste: int = REG_NONE
    dstm: int = REG_NONE
    stat: int = STAT_BUB
    pc: int = 0


@dataclass
class WritebackReg:
    icode: int = I_NOP
    ifun: int = F_NONE
    vale: int = 0
    valm: int = 0
    dste: int = REG_NONE
    dstm: int = REG_NONE
    stat: int = STAT_BUB
    pc: int = 0

# ---------------------------------------------------------------------------
#  Register
# ---------------------------------------------------------------------------

class PipeRegister:
    """Double-buffered pipeline register with a per-cycle control tag."""

    def __init__(self, name: str, bubble: Callable[[], object]):
        self.name = name
        self.bubble = bubble
        self.current = bubble()
        self.next = bubble()
        self.op: int = P_LOAD

        # Called with the register name when a conflict is detected
        self.on_conflict: Optional[Callable[[str], None]] = None

    def control(self, stall: bool, bubble: bool) -> int:
        """Set the tag for the next update from the hazard unit's requests."""
        if stall and bubble:
            self.op = P_ERROR
            if self.on_conflict:
                self.on_conflict(self.name)
        elif stall:
            self.op = P_STALL
        elif bubble:
            self.op = P_BUBBLE
        else:
            self.op = P_LOAD
        return self.op

    def update(self) -> int:
        """Apply the pending tag. Returns the tag that was applied.

        An ERROR tag is sticky: the register keeps presenting a PIP bubble
        until clear() is called.
        """
        op = self.op
        if op == P_LOAD:
            self.current = self.next
        elif op == P_BUBBLE:
            self.current = self.bubble()
        elif op == P_ERROR:
            self.current = replace(self.bubble(), stat=STAT_PIP)
        if op != P_ERROR:
            self.op = P_LOAD
        return op

    def clear(self):
        self.current = self.bubble()
        self.next = self.bubble()
        self.op = P_LOAD

    def __repr__(self):
        return f"PipeRegister({self.name}, op={P_NAMES[self.op]}, current={self.current})"
