"""Bytecode chunks — instruction encoding, constant pools, and a disassembler."""

from __future__ import annotations

from enum import IntEnum

from .values import stringify


class OpCode(IntEnum):
    """Operand bytes follow the opcode in the stream.

    Jump and loop offsets are two bytes, big-endian. OP_CLOSURE is followed
    by a constant index and then an (is_local, index) pair per upvalue.
    """

    CONSTANT = 0  # const_index
    NIL = 1
    TRUE = 2
    FALSE = 3
    POP = 4
    GET_LOCAL = 5  # slot
    SET_LOCAL = 6  # slot
    GET_GLOBAL = 7  # name_index
    DEFINE_GLOBAL = 8  # name_index
    SET_GLOBAL = 9  # name_index
    GET_UPVALUE = 10  # upvalue_index
    SET_UPVALUE = 11  # upvalue_index
    GET_PROPERTY = 12  # name_index
    SET_PROPERTY = 13  # name_index
    GET_SUPER = 14  # name_index
    EQUAL = 15
    GREATER = 16
    GREATER_EQUAL = 17
    LESS = 18
    LESS_EQUAL = 19
    ADD = 20
    SUBTRACT = 21
    MULTIPLY = 22
    DIVIDE = 23
    NOT = 24
    NEGATE = 25
    PRINT = 26
    JUMP = 27  # offset16
    JUMP_IF_FALSE = 28  # offset16
    LOOP = 29  # offset16 (backwards)
    CALL = 30  # arg_count
    INVOKE = 31  # name_index arg_count
    SUPER_INVOKE = 32  # name_index arg_count
    CLOSURE = 33  # const_index (is_local index)*
    CLOSE_UPVALUE = 34
    RETURN = 35
    CLASS = 36  # name_index
    INHERIT = 37
    METHOD = 38  # name_index


_SIMPLE: set[OpCode] = {
    OpCode.NIL,
    OpCode.TRUE,
    OpCode.FALSE,
    OpCode.POP,
    OpCode.EQUAL,
    OpCode.GREATER,
    OpCode.GREATER_EQUAL,
    OpCode.LESS,
    OpCode.LESS_EQUAL,
    OpCode.ADD,
    OpCode.SUBTRACT,
    OpCode.MULTIPLY,
    OpCode.DIVIDE,
    OpCode.NOT,
    OpCode.NEGATE,
    OpCode.PRINT,
    OpCode.CLOSE_UPVALUE,
    OpCode.RETURN,
    OpCode.INHERIT,
}

_BYTE: set[OpCode] = {
    OpCode.GET_LOCAL,
    OpCode.SET_LOCAL,
    OpCode.GET_UPVALUE,
    OpCode.SET_UPVALUE,
    OpCode.CALL,
}

_CONSTANT: set[OpCode] = {
    OpCode.CONSTANT,
    OpCode.GET_GLOBAL,
    OpCode.DEFINE_GLOBAL,
    OpCode.SET_GLOBAL,
    OpCode.GET_PROPERTY,
    OpCode.SET_PROPERTY,
    OpCode.GET_SUPER,
    OpCode.CLASS,
    OpCode.METHOD,
}

_INVOKE: set[OpCode] = {OpCode.INVOKE, OpCode.SUPER_INVOKE}

_JUMP: set[OpCode] = {OpCode.JUMP, OpCode.JUMP_IF_FALSE, OpCode.LOOP}


class Chunk:
    """One compiled function body: bytecode, per-byte lines, constant pool."""

    def __init__(self) -> None:
        self.code: bytearray = bytearray()
        self.lines: list[int] = []
        self.constants: list[object] = []

    def write(self, byte: int, line: int) -> None:
        self.code.append(byte)
        self.lines.append(line)

    def add_constant(self, value: object) -> int:
        self.constants.append(value)
        return len(self.constants) - 1

    # ── Disassembly ──────────────────────────────────────────

    def disassemble(self, name: str) -> str:
        lines: list[str] = ["== " + name + " =="]
        offset = 0
        while offset < len(self.code):
            text, offset = self.disassemble_instruction(offset)
            lines.append(text)
        return "\n".join(lines) + "\n"

    def disassemble_instruction(self, offset: int) -> tuple[str, int]:
        """Render the instruction at `offset`; returns (text, next_offset)."""
        prefix = "%04d " % offset
        if offset > 0 and self.lines[offset] == self.lines[offset - 1]:
            prefix += "   | "
        else:
            prefix += "%4d " % self.lines[offset]

        byte = self.code[offset]
        try:
            op = OpCode(byte)
        except ValueError:
            return prefix + "Unknown opcode " + str(byte), offset + 1
        name = "OP_" + op.name

        if op in _SIMPLE:
            return prefix + name, offset + 1
        if op in _BYTE:
            slot = self.code[offset + 1]
            return prefix + "%-16s %4d" % (name, slot), offset + 2
        if op in _CONSTANT:
            index = self.code[offset + 1]
            value = stringify(self.constants[index])
            return prefix + "%-16s %4d '%s'" % (name, index, value), offset + 2
        if op in _INVOKE:
            index = self.code[offset + 1]
            arg_count = self.code[offset + 2]
            value = stringify(self.constants[index])
            return (
                prefix + "%-16s (%d args) %4d '%s'" % (name, arg_count, index, value),
                offset + 3,
            )
        if op in _JUMP:
            jump = (self.code[offset + 1] << 8) | self.code[offset + 2]
            sign = -1 if op == OpCode.LOOP else 1
            target = offset + 3 + sign * jump
            return prefix + "%-16s %4d -> %d" % (name, offset, target), offset + 3

        # OP_CLOSURE
        index = self.code[offset + 1]
        function = self.constants[index]
        out = [prefix + "%-16s %4d %s" % (name, index, stringify(function))]
        offset += 2
        for _ in range(function.upvalue_count):  # type: ignore[attr-defined]
            is_local = self.code[offset]
            slot = self.code[offset + 1]
            kind = "local" if is_local else "upvalue"
            out.append("%04d      |                     %s %d" % (offset, kind, slot))
            offset += 2
        return "\n".join(out), offset
