"""Machine error kinds.

The first three halt the machine with the error recorded as the halt reason.
OutOfBoundsMemoryAccess means the backing store is smaller than the address
being touched; it always propagates to the caller.
"""

from __future__ import annotations


class MachineError(Exception):
    """Base class for errors raised while executing a program."""

    pass


class UnimplementedInstruction(MachineError):
    def __init__(self, opcode: int) -> None:
        self.opcode = int(opcode)
        super().__init__(f"Unimplemented instruction: 0x{self.opcode:x}")


class UnimplementedTrapVector(MachineError):
    def __init__(self, vector: int) -> None:
        self.vector = int(vector)
        super().__init__(f"Unimplemented trap vector: 0x{self.vector:x}")


class InputExhausted(MachineError):
    """Raised when a console input source has no more data."""

    def __init__(self, msg: str = "Input exhausted") -> None:
        super().__init__(msg)


class OutOfBoundsMemoryAccess(MachineError, IndexError):
    def __init__(self, address: int, mem_cells: int) -> None:
        self.address = int(address)
        self.mem_cells = int(mem_cells)
        super().__init__(f"Memory access out of bounds: 0x{self.address:04x} (memory holds {self.mem_cells} words)")


HALTING_ERRORS = (UnimplementedInstruction, UnimplementedTrapVector, InputExhausted)
