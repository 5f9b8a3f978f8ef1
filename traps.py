"""TRAP subsystem: system calls for console I/O and halting."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from console import Console
from errors import UnimplementedTrapVector
from isa import TrapVector

if TYPE_CHECKING:
    from processor import Datapath


class TrapUnit:
    """Executes trap vectors against a Datapath and a Console."""

    dp: Datapath
    console: Console

    def __init__(self, dp: Datapath, console: Console) -> None:
        self.dp = dp
        self.console = console

    def handle(self, vector: int) -> None:  # noqa: C901
        """Run the system call selected by `vector`.

        Raises UnimplementedTrapVector for vectors outside TrapVector and
        InputExhausted (from the console) when an input trap finds no data.
        R7 and the condition flags are left untouched.
        """
        dp = self.dp
        logging.debug("TRAP: vector 0x%02x", vector)

        if vector == TrapVector.GETC:
            dp.write_reg(0, self.console.read_unit())
            return
        if vector == TrapVector.OUT:
            self.console.write_char(dp.read_reg(0) & 0xFF)
            return
        if vector == TrapVector.PUTS:
            self._puts(dp.read_reg(0))
            return
        if vector == TrapVector.IN:
            dp.write_reg(0, self.console.read_unit())
            self.console.write_char(dp.read_reg(0) & 0xFF)
            return
        if vector == TrapVector.PUTSP:
            self._putsp(dp.read_reg(0))
            return
        if vector == TrapVector.HALT:
            logging.debug("TRAP HALT at PC 0x%04x", dp.PC)
            self.console.flush()
            dp.halt()
            return
        if vector == TrapVector.INU16:
            dp.write_reg(0, self.console.read_unit())
            return
        if vector == TrapVector.OUTU16:
            self.console.write_decimal(dp.read_reg(0))
            return
        raise UnimplementedTrapVector(vector)

    def _puts(self, addr: int) -> None:
        """One character per word, up to a zero word."""
        count = 0
        while True:
            word = self.dp.read_word(addr)
            if word == 0:
                break
            self.console.write_char(word & 0xFF)
            addr = (addr + 1) & 0xFFFF
            count += 1
        logging.debug("PUTS: wrote %d chars", count)

    def _putsp(self, addr: int) -> None:
        """Two characters per word, low byte first, up to a zero word."""
        while True:
            word = self.dp.read_word(addr)
            if word == 0:
                break
            self.console.write_char(word & 0xFF)
            hi = (word >> 8) & 0xFF
            if hi:
                self.console.write_char(hi)
            addr = (addr + 1) & 0xFFFF
