"""
PIPE Stage Transforms
======================
The five per-cycle stage functions and the forwarding network.

Each stage reads the `current` payload of its own input register (and, for
forwarding and PC selection, the registers downstream of it) and writes the
`next` payload of its output register.  The driver evaluates them in the
order Writeback, Memory, Execute, Decode, Fetch, so that:

  - values produced this cycle by Execute and Memory are visible to the
    forwarding network before Decode reads its operands;
  - Memory's new status is known before Execute decides whether to commit
    condition codes;
  - a return address or mispredict recovery target is visible to Fetch
    before it selects the next PC.

Per-opcode behaviour lives in tables keyed by icode; `check_tables()` runs at
import time so that a stage missing an entry for some icode fails loudly
instead of falling through to a silent default.
"""

from __future__ import annotations
from typing import TYPE_CHECKING, Callable, Optional

from y86 import (
    AddressError, ICODES, OPCODES, FAULT_STATS,
    I_HALT, I_NOP, I_RRMOVQ, I_IRMOVQ, I_RMMOVQ, I_MRMOVQ, I_ALU, I_JMP,
    I_CALL, I_RET, I_PUSHQ, I_POPQ, I_IADDQ,
    F_NONE, A_ADD, REG_RSP, REG_NONE, ALU_SYMBOLS,
    STAT_AOK, STAT_BUB, STAT_HLT, STAT_ADR, STAT_INS,
    compute_alu, compute_cc, hi4, lo4, iname, reg_name, u64,
)
from pipeline import DecodeReg, ExecuteReg, MemoryReg, WritebackReg, FetchReg

if TYPE_CHECKING:
    from psim import PipeSim

# Operand selectors used by the decode table
RA = "rA"
RB = "rB"

# ---------------------------------------------------------------------------
#  Stage tables
# ---------------------------------------------------------------------------

# icode -> (srcA, srcB, dstE, dstM)
DECODE_TABLE = {
    I_HALT:   (REG_NONE, REG_NONE, REG_NONE, REG_NONE),
    I_NOP:    (REG_NONE, REG_NONE, REG_NONE, REG_NONE),
    I_RRMOVQ: (RA,       REG_NONE, RB,       REG_NONE),
    I_IRMOVQ: (REG_NONE, REG_NONE, RB,       REG_NONE),
    I_RMMOVQ: (RA,       RB,       REG_NONE, REG_NONE),
    I_MRMOVQ: (REG_NONE, RB,       REG_NONE, RA),
    I_ALU:    (RA,       RB,       RB,       REG_NONE),
    I_JMP:    (REG_NONE, REG_NONE, REG_NONE, REG_NONE),
    I_CALL:   (REG_NONE, REG_RSP,  REG_RSP,  REG_NONE),
    I_RET:    (REG_RSP,  REG_RSP,  REG_RSP,  REG_NONE),
    I_PUSHQ:  (RA,       REG_RSP,  REG_RSP,  REG_NONE),
    I_POPQ:   (REG_RSP,  REG_RSP,  REG_RSP,  RA),
    I_IADDQ:  (REG_NONE, RB,       RB,       REG_NONE),
}

# icode -> (aluA source, aluB source, sets condition codes)
# A source is a payload field name or a constant.
EXECUTE_TABLE = {
    I_HALT:   (0,      0,      False),
    I_NOP:    (0,      0,      False),
    I_RRMOVQ: ("vala", 0,      False),
    I_IRMOVQ: ("valc", 0,      False),
    I_RMMOVQ: ("valc", "valb", False),
    I_MRMOVQ: ("valc", "valb", False),
    I_ALU:    ("vala", "valb", True),
    I_JMP:    (0,      0,      False),
    I_CALL:   (-8,     "valb", False),
    I_RET:    (8,      "valb", False),
    I_PUSHQ:  (-8,     "valb", False),
    I_POPQ:   (8,      "valb", False),
    I_IADDQ:  ("valc", "valb", True),
}

MEM_NONE  = None
MEM_READ  = "read"
MEM_WRITE = "write"

# icode -> (access, address field)
MEMORY_TABLE = {
    I_HALT:   (MEM_NONE,  None),
    I_NOP:    (MEM_NONE,  None),
    I_RRMOVQ: (MEM_NONE,  None),
    I_IRMOVQ: (MEM_NONE,  None),
    I_RMMOVQ: (MEM_WRITE, "vale"),
    I_MRMOVQ: (MEM_READ,  "vale"),
    I_ALU:    (MEM_NONE,  None),
    I_JMP:    (MEM_NONE,  None),
    I_CALL:   (MEM_WRITE, "vale"),
    I_RET:    (MEM_READ,  "vala"),
    I_PUSHQ:  (MEM_WRITE, "vale"),
    I_POPQ:   (MEM_READ,  "vala"),
    I_IADDQ:  (MEM_NONE,  None),
}


def check_tables():
    """Every stage table must cover every icode."""
    for name, table in (("decode", DECODE_TABLE), ("execute", EXECUTE_TABLE),
                        ("memory", MEMORY_TABLE)):
        missing = [ic for ic in ICODES if ic not in table]
        if missing:
            raise RuntimeError(f"{name} table has no entry for icodes {missing}")


check_tables()


def _operand(payload, src):
    if isinstance(src, str):
        return getattr(payload, src)
    return src

# ---------------------------------------------------------------------------
#  Writeback
# ---------------------------------------------------------------------------

def writeback(sim: PipeSim):
    """Commit W's register results and report the cycle's status."""
    w = sim.W.current
    if w.stat == STAT_AOK:
        for dst, val in ((w.dste, w.vale), (w.dstm, w.valm)):
            if dst != REG_NONE:
                sim.log(f"\tWriteback: Wrote 0x{val:x} to register {reg_name(dst)}")
                sim.reg.write(dst, val)
    sim.status = STAT_AOK if w.stat == STAT_BUB else w.stat

# ---------------------------------------------------------------------------
#  Memory
# ---------------------------------------------------------------------------

def memory(sim: PipeSim):
    """Perform at most one data-memory access for M's instruction."""
    m = sim.M.current
    stat = m.stat
    valm = 0

    access, addr_field = MEMORY_TABLE[m.icode]
    if access is not MEM_NONE and stat == STAT_AOK:
        addr = getattr(m, addr_field)
        try:
            if access is MEM_READ:
                valm = sim.mem.read_word(addr)
                sim.log(f"\tMemory: Read 0x{valm:x} from 0x{addr:x}")
            else:
                sim.mem.write_word(addr, m.vala)
                sim.log(f"\tWrote 0x{m.vala:x} to address 0x{addr:x}")
        except AddressError:
            if access is MEM_WRITE:
                sim.log(f"\tCouldn't write to address 0x{addr:x}")
            stat = STAT_ADR

    sim.W.next = WritebackReg(
        icode=m.icode, ifun=m.ifun, vale=m.vale, valm=valm,
        dste=m.dste, dstm=m.dstm, stat=stat, pc=m.pc,
    )

# ---------------------------------------------------------------------------
#  Execute
# ---------------------------------------------------------------------------

def fault_pending(sim: PipeSim) -> bool:
    """True when Memory's new status or W's status freezes the pipeline."""
    return sim.W.next.stat in FAULT_STATS or sim.W.current.stat in FAULT_STATS


def execute(sim: PipeSim):
    """Run the ALU, resolve branch/cmov conditions, and commit CC."""
    e = sim.E.current
    src_a, src_b, sets_cc = EXECUTE_TABLE[e.icode]
    alu_a = _operand(e, src_a)
    alu_b = _operand(e, src_b)
    alufun = e.ifun if e.icode == I_ALU else A_ADD
    vale = compute_alu(alufun, alu_a, alu_b)

    cnd = False
    if e.icode in (I_JMP, I_RRMOVQ):
        cnd = sim.cc.holds(e.ifun)
        if e.icode == I_JMP:
            sim.log(f"\tExecute: instr = {iname(e.icode, e.ifun)}, "
                    f"cc = {sim.cc}, branch {'' if cnd else 'not '}taken")

    if sets_cc:
        sim.log(f"\tExecute: ALU: {ALU_SYMBOLS[alufun]} 0x{u64(alu_a):x} "
                f"0x{alu_b:x} --> 0x{vale:x}")
        if e.stat == STAT_AOK and not fault_pending(sim):
            sim.cc = compute_cc(alufun, alu_a, alu_b)
            sim.log(f"\tExecute: New cc={sim.cc}")

    # A conditional move that fails squashes its own destination
    dste = e.dste
    if e.icode == I_RRMOVQ and not cnd:
        dste = REG_NONE

    sim.M.next = MemoryReg(
        icode=e.icode, ifun=e.ifun, cnd=cnd, vale=vale, vala=e.vala,
        dste=dste, dstm=e.dstm, stat=e.stat, pc=e.pc,
    )

# ---------------------------------------------------------------------------
#  Forwarding network
# ---------------------------------------------------------------------------

def forward_sources(sim: PipeSim) -> list[tuple[str, int, int]]:
    """In-flight (name, destination, value) pairs, youngest first."""
    return [
        ("e_valE", sim.M.next.dste,    sim.M.next.vale),
        ("m_valM", sim.W.next.dstm,    sim.W.next.valm),
        ("M_valE", sim.M.current.dste, sim.M.current.vale),
        ("W_valM", sim.W.current.dstm, sim.W.current.valm),
        ("W_valE", sim.W.current.dste, sim.W.current.vale),
    ]


def forward(sim: PipeSim, src: int) -> int:
    """Value of register src as Decode must see it this cycle."""
    if src == REG_NONE:
        return 0
    for _name, dst, val in forward_sources(sim):
        if dst == src:
            return val
    return sim.reg.read(src)

# ---------------------------------------------------------------------------
#  Decode
# ---------------------------------------------------------------------------

def _select_reg(d: DecodeReg, sel) -> int:
    if sel == RA:
        return d.ra
    if sel == RB:
        return d.rb
    return sel


def decode(sim: PipeSim):
    """Name D's operands and destinations and read operand values."""
    d = sim.D.current
    srca, srcb, dste, dstm = (_select_reg(d, sel) for sel in DECODE_TABLE[d.icode])

    # Call and jump carry their fall-through address in valA
    if d.icode in (I_CALL, I_JMP):
        vala = d.valp
    else:
        vala = forward(sim, srca)
    valb = forward(sim, srcb)

    sim.E.next = ExecuteReg(
        icode=d.icode, ifun=d.ifun, valc=d.valc, vala=vala, valb=valb,
        srca=srca, srcb=srcb, dste=dste, dstm=dstm, stat=d.stat, pc=d.pc,
    )

# ---------------------------------------------------------------------------
#  Fetch
# ---------------------------------------------------------------------------

def _return_address(sim: PipeSim) -> Optional[int]:
    w = sim.W.current
    return w.valm if w.icode == I_RET else None

def _mispredict_recovery(sim: PipeSim) -> Optional[int]:
    m = sim.M.current
    return m.vala if m.icode == I_JMP and not m.cnd else None

def _predicted_pc(sim: PipeSim) -> Optional[int]:
    return sim.F.current.pred_pc

# Highest priority first
PC_SOURCES: tuple[Callable[[PipeSim], Optional[int]], ...] = (
    _return_address,
    _mispredict_recovery,
    _predicted_pc,
)


def select_pc(sim: PipeSim) -> int:
    for source in PC_SOURCES:
        pc = source(sim)
        if pc is not None:
            return pc
    raise AssertionError("no PC source applies")


def fetch(sim: PipeSim):
    """Fetch one instruction and predict the next PC."""
    f_pc = select_pc(sim)
    ra = rb = REG_NONE
    valc = 0
    info = None

    try:
        opcode = sim.mem.read_byte(f_pc)
        info = OPCODES.get(opcode)
        if info is None:
            stat = STAT_INS
            valp = f_pc + 1
        else:
            valp = f_pc + 1
            if info.need_regids:
                regids = sim.mem.read_byte(valp)
                ra, rb = hi4(regids), lo4(regids)
                valp += 1
            if info.need_valc:
                valc = sim.mem.read_word(valp)
                valp += 8
            stat = STAT_HLT if info.icode == I_HALT else STAT_AOK
    except AddressError:
        stat = STAT_ADR
        valp = f_pc + (info.length if info else 1)

    if stat in (STAT_ADR, STAT_INS):
        # A faulted fetch travels down the pipe as a nop carrying its status
        icode, ifun = I_NOP, F_NONE
        ra = rb = REG_NONE
        valc = 0
    else:
        icode, ifun = info.icode, info.ifun
        sim.log(f"\tFetch: f_pc = 0x{f_pc:x}, f_instr = {info.name}")

    pred_pc = valc if icode in (I_JMP, I_CALL) else valp

    sim.D.next = DecodeReg(
        icode=icode, ifun=ifun, ra=ra, rb=rb, valc=valc, valp=valp,
        stat=stat, pc=f_pc,
    )
    sim.F.next = FetchReg(pred_pc=pred_pc)
