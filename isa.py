"""ISA: opcodes, trap vectors, condition flags and bit-field decoders."""

from enum import IntEnum

WORD_MASK = 0xFFFF
MEM_CELLS = 65536  # one cell per 16-bit address
PC_BASE = 0x3000
REG_COUNT = 8
LINK_REG = 7


class OpCode(IntEnum):
    """Top 4 bits of an instruction word. Covers all 16 codes."""

    BR = 0x0
    ADD = 0x1
    LD = 0x2
    ST = 0x3
    JSR = 0x4
    AND = 0x5
    LDR = 0x6
    STR = 0x7
    RTI = 0x8  # unimplemented
    NOT = 0x9
    LDI = 0xA
    STI = 0xB
    JMP = 0xC
    RES = 0xD  # reserved
    LEA = 0xE
    TRAP = 0xF


class TrapVector(IntEnum):
    """System calls reachable through TRAP."""

    GETC = 0x20
    OUT = 0x21
    PUTS = 0x22
    IN = 0x23
    PUTSP = 0x24
    HALT = 0x25
    INU16 = 0x26
    OUTU16 = 0x27


class Flag(IntEnum):
    """Condition register bits."""

    P = 1 << 0
    Z = 1 << 1
    N = 1 << 2


def dest_reg(op: int) -> int:
    """Destination register (bits 11..9)."""
    return (op >> 9) & 0x7


def src_reg1(op: int) -> int:
    """First source or base register (bits 8..6)."""
    return (op >> 6) & 0x7


def src_reg2(op: int) -> int:
    """Second source register (bits 2..0)."""
    return op & 0x7


def imm_mode_flag(op: int) -> int:
    """Immediate-operand flag of ADD/AND (bit 5)."""
    return (op >> 5) & 0x1


def long_imm_flag(op: int) -> int:
    """JSR vs JSRR selector (bit 11)."""
    return (op >> 11) & 0x1


def cond_field(op: int) -> int:
    """N/Z/P mask of a BR instruction (same bits as the destination register)."""
    return (op >> 9) & 0x7


def unsigned_imm(op: int, width: int) -> int:
    """Low `width` bits of `op`, zero-extended."""
    return op & ((1 << width) - 1)


def sign_extend(op: int, width: int) -> int:
    """Sign-extend the low `width` bits of `op` to a 16-bit word.

    The low `width` bits of the result always equal unsigned_imm(op, width);
    the bits above are copies of bit `width - 1`.
    """
    imm = unsigned_imm(op, width)
    if (imm >> (width - 1)) & 1:
        return ((WORD_MASK << width) | imm) & WORD_MASK
    return imm


def trap_vector(op: int) -> int:
    """Trap vector of a TRAP instruction: an unsigned 8-bit field."""
    return unsigned_imm(op, 8)


def decode_opcode(op: int) -> OpCode:
    """Opcode in the top 4 bits of `op`."""
    return OpCode((op >> 12) & 0xF)


def to_signed(value: int) -> int:
    """Interpret a 16-bit word as two's complement."""
    value &= WORD_MASK
    return value - 0x10000 if value & 0x8000 else value


def _cond_suffix(mask: int) -> str:
    return "".join(name for name, bit in (("n", Flag.N), ("z", Flag.Z), ("p", Flag.P)) if mask & bit)


def mnemonic(op: int) -> str:
    """Disassemble one instruction word for logs and dumps."""
    opcode = decode_opcode(op)
    dr, sr1 = dest_reg(op), src_reg1(op)

    if opcode == OpCode.BR:
        mask = cond_field(op)
        if mask == 0:
            return "NOP"
        return f"BR{_cond_suffix(mask)} #{to_signed(sign_extend(op, 9))}"
    if opcode in (OpCode.ADD, OpCode.AND):
        if imm_mode_flag(op):
            return f"{opcode.name} R{dr}, R{sr1}, #{to_signed(sign_extend(op, 5))}"
        return f"{opcode.name} R{dr}, R{sr1}, R{src_reg2(op)}"
    if opcode == OpCode.NOT:
        return f"NOT R{dr}, R{sr1}"
    if opcode in (OpCode.LD, OpCode.LDI, OpCode.LEA, OpCode.ST, OpCode.STI):
        return f"{opcode.name} R{dr}, #{to_signed(sign_extend(op, 9))}"
    if opcode in (OpCode.LDR, OpCode.STR):
        return f"{opcode.name} R{dr}, R{sr1}, #{to_signed(sign_extend(op, 6))}"
    if opcode == OpCode.JMP:
        return "RET" if sr1 == LINK_REG else f"JMP R{sr1}"
    if opcode == OpCode.JSR:
        if long_imm_flag(op):
            return f"JSR #{to_signed(sign_extend(op, 11))}"
        return f"JSRR R{sr1}"
    if opcode == OpCode.TRAP:
        vec = trap_vector(op)
        try:
            return f"TRAP {TrapVector(vec).name}"
        except ValueError:
            return f"TRAP x{vec:02X}"
    return f"{opcode.name} x{op:04X}"
