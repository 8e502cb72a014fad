"""Tests for bytecode chunks and the disassembler."""

from lox.chunk import Chunk, OpCode
from lox.objects import ObjFunction, ObjString


def test_write_tracks_lines():
    chunk = Chunk()
    chunk.write(OpCode.NIL, 1)
    chunk.write(OpCode.RETURN, 2)
    assert bytes(chunk.code) == bytes([OpCode.NIL, OpCode.RETURN])
    assert chunk.lines == [1, 2]


def test_add_constant_returns_index():
    chunk = Chunk()
    assert chunk.add_constant(1.0) == 0
    assert chunk.add_constant(2.0) == 1
    assert chunk.constants == [1.0, 2.0]


def test_disassemble_constant_and_return():
    chunk = Chunk()
    index = chunk.add_constant(1.2)
    chunk.write(OpCode.CONSTANT, 123)
    chunk.write(index, 123)
    chunk.write(OpCode.RETURN, 123)
    assert chunk.disassemble("test chunk") == (
        "== test chunk ==\n"
        "0000  123 OP_CONSTANT         0 '1.2'\n"
        "0002    | OP_RETURN\n"
    )


def test_disassemble_byte_operand():
    chunk = Chunk()
    chunk.write(OpCode.GET_LOCAL, 4)
    chunk.write(3, 4)
    text, next_offset = chunk.disassemble_instruction(0)
    assert text == "0000    4 OP_GET_LOCAL        3"
    assert next_offset == 2


def test_disassemble_jumps():
    chunk = Chunk()
    chunk.write(OpCode.JUMP, 1)
    chunk.write(0, 1)
    chunk.write(1, 1)
    chunk.write(OpCode.LOOP, 1)
    chunk.write(0, 1)
    chunk.write(6, 1)
    forward, after_forward = chunk.disassemble_instruction(0)
    backward, after_backward = chunk.disassemble_instruction(3)
    assert forward.startswith("0000    1 OP_JUMP")
    assert forward.endswith("0 -> 4")
    assert after_forward == 3
    assert backward.startswith("0003    | OP_LOOP")
    assert backward.endswith("3 -> 0")
    assert after_backward == 6


def test_disassemble_invoke():
    chunk = Chunk()
    index = chunk.add_constant(ObjString("method"))
    chunk.write(OpCode.INVOKE, 1)
    chunk.write(index, 1)
    chunk.write(2, 1)
    text, next_offset = chunk.disassemble_instruction(0)
    assert text == "0000    1 OP_INVOKE        (2 args)    0 'method'"
    assert next_offset == 3


def test_disassemble_closure_lists_upvalues():
    function = ObjFunction(ObjString("inner"))
    function.upvalue_count = 2
    chunk = Chunk()
    index = chunk.add_constant(function)
    for byte in (OpCode.CLOSURE, index, 1, 1, 0, 3):
        chunk.write(byte, 1)
    text, next_offset = chunk.disassemble_instruction(0)
    lines = text.split("\n")
    assert lines[0] == "0000    1 OP_CLOSURE          0 <fn inner>"
    assert lines[1].startswith("0002") and lines[1].endswith("local 1")
    assert lines[2].startswith("0004") and lines[2].endswith("upvalue 3")
    assert next_offset == 6


def test_unknown_opcode():
    chunk = Chunk()
    chunk.write(250, 1)
    text, next_offset = chunk.disassemble_instruction(0)
    assert text.endswith("Unknown opcode 250")
    assert next_offset == 1


_OPERAND_BYTES = {
    OpCode.INVOKE: 2,
    OpCode.SUPER_INVOKE: 2,
    OpCode.JUMP: 2,
    OpCode.JUMP_IF_FALSE: 2,
    OpCode.LOOP: 2,
    OpCode.CONSTANT: 1,
    OpCode.GET_LOCAL: 1,
    OpCode.SET_LOCAL: 1,
    OpCode.GET_GLOBAL: 1,
    OpCode.DEFINE_GLOBAL: 1,
    OpCode.SET_GLOBAL: 1,
    OpCode.GET_UPVALUE: 1,
    OpCode.SET_UPVALUE: 1,
    OpCode.GET_PROPERTY: 1,
    OpCode.SET_PROPERTY: 1,
    OpCode.GET_SUPER: 1,
    OpCode.CALL: 1,
    OpCode.CLASS: 1,
    OpCode.METHOD: 1,
}


def test_every_opcode_disassembles():
    chunk = Chunk()
    chunk.add_constant(ObjString("name"))
    simple = [op for op in OpCode if op != OpCode.CLOSURE]
    for op in simple:
        chunk.write(op, 1)
        for _ in range(_OPERAND_BYTES.get(op, 0)):
            chunk.write(0, 1)
    text = chunk.disassemble("all")
    assert len(text.splitlines()) == 1 + len(simple)
    for op in simple:
        assert "OP_" + op.name in text
    assert "Unknown opcode" not in text
