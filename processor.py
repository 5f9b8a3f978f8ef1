"""Processor (Datapath + ControlUnit) and CLI wrapper.

Provides the machine state, the fetch-decode-execute loop, logging
initialization, object-image loading and a human-readable state dump.
"""

from __future__ import annotations

import argparse
import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Any, NamedTuple

from config import ConfigError, load_config
from console import Console, ScriptedConsole, StreamConsole
from errors import HALTING_ERRORS, OutOfBoundsMemoryAccess, UnimplementedInstruction
from isa import (
    LINK_REG,
    MEM_CELLS,
    PC_BASE,
    REG_COUNT,
    WORD_MASK,
    Flag,
    OpCode,
    cond_field,
    decode_opcode,
    dest_reg,
    imm_mode_flag,
    long_imm_flag,
    mnemonic,
    sign_extend,
    src_reg1,
    src_reg2,
    trap_vector,
)
from traps import TrapUnit

LOGFILE = "processor.log"


def init_logging(logfile: str = LOGFILE, debug: bool = False, console: bool = False) -> None:
    """Configure root logger to write to `logfile`.

    If debug=True set DEBUG level (per-cycle trace). If console=True also
    echo logs to stderr, keeping stdout for the simulated console.
    """
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    lvl = logging.DEBUG if debug else logging.WARNING
    root.setLevel(lvl)

    if debug:
        file_fmt = "%(levelname)s %(name)s:%(filename)s:%(lineno)d %(message)s"
    else:
        file_fmt = "%(levelname)-5s %(message)s"

    fh = logging.FileHandler(logfile, mode="w", encoding="utf-8")
    fh.setLevel(lvl)
    fh.setFormatter(logging.Formatter(file_fmt))
    root.addHandler(fh)

    if console:
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(lvl)
        ch.setFormatter(logging.Formatter("%(levelname)5s %(message)s"))
        root.addHandler(ch)


class State(Enum):
    RUNNING = "running"
    HALTED = "halted"


class Snapshot(NamedTuple):
    """Read-only view of the machine for inspection and dumps."""

    registers: tuple[int, ...]
    pc: int
    cond: int
    state: str
    halt_reason: str | None
    tick: int
    memory_start: int
    memory: tuple[int, ...]


class Datapath:
    """Datapath (memory + register file + condition flags) of one machine."""

    mem_cells: int
    memory: list[int]
    pc_base: int

    regs: list[int]
    PC: int
    IR: int
    COND: int

    state: State
    halt_reason: Exception | None
    tick: int
    tick_limit: int | None
    lenient_log: bool

    def __init__(
        self,
        mem_cells: int = MEM_CELLS,
        pc_base: int = PC_BASE,
        tick_limit: int | None = None,
        lenient_log: bool = False,
    ) -> None:
        """Initialize a zeroed machine with PC at `pc_base`."""
        self.mem_cells = int(mem_cells)
        self.memory = [0] * self.mem_cells
        self.pc_base = int(pc_base) & WORD_MASK

        self.regs = [0] * REG_COUNT
        self.PC = self.pc_base
        self.IR = 0
        # no flag is set until the first register write
        self.COND = 0

        self.state = State.RUNNING
        self.halt_reason = None
        self.tick = 0
        self.tick_limit = tick_limit
        self.lenient_log = bool(lenient_log)

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> Datapath:
        """Build a Datapath from a dict produced by config.load_config."""
        return cls(
            mem_cells=cfg["mem_cells"],
            pc_base=cfg["pc_base"],
            tick_limit=cfg["tick_limit"],
            lenient_log=cfg["lenient_log"],
        )

    # --- memory ---
    def _check_addr(self, word_addr: int) -> None:
        if not (0 <= word_addr < self.mem_cells):
            raise OutOfBoundsMemoryAccess(word_addr, self.mem_cells)

    def read_word(self, word_addr: int) -> int:
        """Read one 16-bit word. Raises OutOfBoundsMemoryAccess outside the store."""
        self._check_addr(word_addr)
        return self.memory[word_addr]

    def write_word(self, word_addr: int, value: int) -> None:
        """Write one 16-bit word. Raises OutOfBoundsMemoryAccess outside the store."""
        self._check_addr(word_addr)
        self.memory[word_addr] = int(value) & WORD_MASK

    def load_words(self, words: list[int], origin: int | None = None) -> None:
        """Write a program image word by word starting at `origin` (default pc_base)."""
        addr = self.pc_base if origin is None else int(origin)
        for i, w in enumerate(words):
            self.write_word(addr + i, w)
        logging.debug("Datapath: loaded %d words at 0x%04x", len(words), addr)

    # --- registers ---
    def read_reg(self, idx: int) -> int:
        return self.regs[idx]

    def write_reg(self, idx: int, value: int) -> None:
        self.regs[idx] = int(value) & WORD_MASK

    def update_flags(self, value: int) -> None:
        """Set exactly one of N/Z/P from the sign of a 16-bit value."""
        value &= WORD_MASK
        if value == 0:
            self.COND = Flag.Z
        elif value & 0x8000:
            self.COND = Flag.N
        else:
            self.COND = Flag.P

    def set_reg_and_flags(self, idx: int, value: int) -> None:
        self.write_reg(idx, value)
        self.update_flags(self.regs[idx])

    # --- run state ---
    def halt(self, reason: Exception | None = None) -> None:
        self.state = State.HALTED
        self.halt_reason = reason

    @property
    def halted(self) -> bool:
        return self.state is State.HALTED

    def snapshot(self, start: int | None = None, count: int = 0) -> Snapshot:
        """Copy registers, flags and a memory window starting at `start` (default pc_base)."""
        base = self.pc_base if start is None else int(start)
        if count:
            self._check_addr(base)
            self._check_addr(base + count - 1)
        return Snapshot(
            registers=tuple(self.regs),
            pc=self.PC,
            cond=int(self.COND),
            state=self.state.value,
            halt_reason=None if self.halt_reason is None else str(self.halt_reason),
            tick=self.tick,
            memory_start=base,
            memory=tuple(self.memory[base : base + count]),
        )


class ControlUnit:
    """Control unit implementing the FETCH-DECODE-EXEC loop for the Datapath."""

    dp: Datapath
    traps: TrapUnit

    def __init__(self, dp: Datapath, console: Console | None = None) -> None:
        """Create a ControlUnit bound to `dp`; traps talk to `console`."""
        self.dp = dp
        self.traps = TrapUnit(dp, console if console is not None else StreamConsole())

    def _log_step(self, step: str) -> None:
        # skip verbose per-step logs in lenient mode to reduce log size
        if self.dp.lenient_log or not logging.getLogger().isEnabledFor(logging.DEBUG):
            return
        dp = self.dp
        regs = " ".join(f"R{i}: {v:04X}" for i, v in enumerate(dp.regs))
        logging.debug(
            "STATE: %-8s STEP: %-12s TICK: %5d PC: %04X IR: %04X %s COND: %s\tINSTR: %s",
            dp.state.name,
            step,
            dp.tick,
            dp.PC,
            dp.IR,
            regs,
            f"{int(dp.COND):03b}",
            mnemonic(dp.IR),
        )

    def step(self) -> None:
        """Execute one instruction. Does nothing once the machine is halted."""
        dp = self.dp
        if dp.halted:
            return

        word = dp.read_word(dp.PC)
        dp.IR = word
        self._log_step("FETCH")
        dp.PC = (dp.PC + 1) & WORD_MASK

        try:
            self.exec(decode_opcode(word), word)
        except HALTING_ERRORS as e:
            logging.warning("Halting at PC 0x%04x: %s", dp.PC, e)
            dp.halt(e)

        dp.tick += 1
        self._log_step("EXECUTION")

    def run(self, tick_limit: int | None = None) -> tuple[int, State]:
        """Execute until halted or `tick_limit` instructions have run.

        Returns (ticks executed by this call, state). When the limit is hit
        the machine stays RUNNING and run() may be called again.
        """
        dp = self.dp
        limit = tick_limit if tick_limit is not None else dp.tick_limit
        start = dp.tick
        while not dp.halted:
            if limit is not None and dp.tick - start >= limit:
                logging.debug("Tick limit %d reached at PC 0x%04x", limit, dp.PC)
                break
            self.step()
        return dp.tick - start, dp.state

    def _pc_offset(self, word: int, width: int) -> int:
        return (self.dp.PC + sign_extend(word, width)) & WORD_MASK

    def _base_offset(self, word: int) -> int:
        return (self.dp.read_reg(src_reg1(word)) + sign_extend(word, 6)) & WORD_MASK

    def _operand2(self, word: int) -> int:
        if imm_mode_flag(word):
            return sign_extend(word, 5)
        return self.dp.read_reg(src_reg2(word))

    def exec(self, opcode: OpCode, word: int) -> None:  # noqa: C901
        """Execute a single decoded instruction (hardwired control unit)."""
        dp = self.dp
        dr = dest_reg(word)

        if opcode == OpCode.BR:
            if dp.COND & cond_field(word):
                dp.PC = self._pc_offset(word, 9)
            return
        if opcode == OpCode.ADD:
            dp.set_reg_and_flags(dr, dp.read_reg(src_reg1(word)) + self._operand2(word))
            return
        if opcode == OpCode.AND:
            dp.set_reg_and_flags(dr, dp.read_reg(src_reg1(word)) & self._operand2(word))
            return
        if opcode == OpCode.NOT:
            dp.set_reg_and_flags(dr, ~dp.read_reg(src_reg1(word)))
            return
        if opcode == OpCode.LD:
            dp.set_reg_and_flags(dr, dp.read_word(self._pc_offset(word, 9)))
            return
        if opcode == OpCode.LDI:
            addr = dp.read_word(self._pc_offset(word, 9))
            dp.set_reg_and_flags(dr, dp.read_word(addr))
            return
        if opcode == OpCode.LDR:
            dp.set_reg_and_flags(dr, dp.read_word(self._base_offset(word)))
            return
        if opcode == OpCode.LEA:
            dp.set_reg_and_flags(dr, self._pc_offset(word, 9))
            return
        if opcode == OpCode.ST:
            dp.write_word(self._pc_offset(word, 9), dp.read_reg(dr))
            return
        if opcode == OpCode.STI:
            addr = dp.read_word(self._pc_offset(word, 9))
            dp.write_word(addr, dp.read_reg(dr))
            return
        if opcode == OpCode.STR:
            dp.write_word(self._base_offset(word), dp.read_reg(dr))
            return
        if opcode == OpCode.JMP:
            dp.PC = dp.read_reg(src_reg1(word))
            return
        if opcode == OpCode.JSR:
            # link first: JSRR R7 therefore jumps to its own return address
            dp.write_reg(LINK_REG, dp.PC)
            if long_imm_flag(word):
                dp.PC = self._pc_offset(word, 11)
            else:
                dp.PC = dp.read_reg(src_reg1(word))
            return
        if opcode == OpCode.TRAP:
            self.traps.handle(trap_vector(word))
            return
        if opcode == OpCode.RTI:
            raise UnimplementedInstruction(opcode)
        if opcode == OpCode.RES:
            raise UnimplementedInstruction(opcode)


# ---------- state dump ----------
def format_state(snap: Snapshot) -> str:
    """Render a Snapshot as a register / control / memory listing."""
    lines = ["=========== registers ==========="]
    half = REG_COUNT // 2
    for i in range(half):
        j = i + half
        lines.append(f"R{i} => 0x{snap.registers[i]:04x}  R{j} => 0x{snap.registers[j]:04x}")
    lines.append("============ control ============")
    lines.append(f"PC   => 0x{snap.pc:04x}")
    lines.append(f"COND => {snap.cond:03b}")
    lines.append(f"STATE => {snap.state}" + (f" ({snap.halt_reason})" if snap.halt_reason else ""))
    lines.append(f"TICKS => {snap.tick}")
    if snap.memory:
        lines.append("============ memory =============")
        for off in range(0, len(snap.memory), 4):
            row = " ".join(f"{w:04x}" for w in snap.memory[off : off + 4])
            lines.append(f"{snap.memory_start + off:04x}: {row}")
    lines.append("=================================")
    return "\n".join(lines)


# ---------- Public API ----------
def load_image(path: str | Path) -> tuple[int, list[int]]:
    """Read an object image: big-endian origin word followed by program words."""
    blob = Path(path).read_bytes()
    if len(blob) < 2 or len(blob) % 2:
        msg = f"Bad object image {path}: expected an even number of bytes (at least one word)"
        raise ValueError(msg)
    words = [int.from_bytes(blob[i : i + 2], byteorder="big") for i in range(0, len(blob), 2)]
    return words[0], words[1:]


def run_words(
    words: list[int],
    config: dict[str, Any] | None = None,
    console: Console | None = None,
    origin: int | None = None,
) -> tuple[Datapath, int, State]:
    """Load `words` into a fresh machine, run it and return (datapath, ticks, state)."""
    cfg = load_config(config)
    dp = Datapath.from_config(cfg)
    if origin is not None:
        dp.PC = int(origin) & WORD_MASK
    dp.load_words(words, origin)
    cu = ControlUnit(dp, console if console is not None else ScriptedConsole())
    ticks, state = cu.run()
    return dp, ticks, state


# ---------- CLI ----------
def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        description="LC-3 style VM runner. Accepts an object image (.obj): "
        "a big-endian origin word followed by big-endian program words."
    )
    ap.add_argument("program", help="program.obj")
    ap.add_argument("--config", help="path to yaml config", default=None)
    ap.add_argument("--debug", action="store_true", help="enable debug logging (per-cycle trace).")
    ap.add_argument("--logfile", default=LOGFILE, help="path to processor log")
    ap.add_argument("--console", action="store_true", help="also echo logs to stderr")
    ap.add_argument(
        "--dump",
        nargs=2,
        type=lambda s: int(s, 0),
        metavar=("START", "COUNT"),
        help="print machine state and COUNT memory words from START after the run",
    )
    args = ap.parse_args(argv)

    init_logging(logfile=args.logfile, debug=args.debug, console=args.console)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        print("Bad config:", e)
        return 2

    if not Path(args.program).exists():
        print("Program file not found:", args.program)
        return 2
    try:
        origin, words = load_image(args.program)
    except ValueError as e:
        print(e)
        return 2

    dp = Datapath.from_config(cfg)
    dp.PC = origin
    try:
        dp.load_words(words, origin)
        cu = ControlUnit(dp, StreamConsole())
        ticks, state = cu.run()
    except OutOfBoundsMemoryAccess as e:
        logging.exception("Aborted")
        print(f"\nABORTED: {e}")
        return 1

    sys.stdout.write("\n")
    if dp.halt_reason is not None:
        sys.stdout.write(f"HALTED: {dp.halt_reason}\n")
    sys.stdout.write(f"TICKS: {ticks} STATE: {state.value}\n")
    if args.dump:
        start, count = args.dump
        sys.stdout.write(format_state(dp.snapshot(start, count)) + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
