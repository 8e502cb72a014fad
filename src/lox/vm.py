"""Lox virtual machine — the bytecode track.

A stack machine over compiled chunks. Each call pushes a `CallFrame` whose
`base` indexes the callee's slot zero on the shared value stack. Captured
variables start as open upvalues pointing at stack slots and are closed
(moved off the stack) when their slot goes out of scope.
"""

from __future__ import annotations

import sys
import time
from typing import Callable, Iterable, TextIO

from .chunk import Chunk, OpCode
from .collector import Heap
from .compiler import compile_source
from .config import Options
from .diagnostics import (
    Diagnostics,
    InterpretResult,
    LoxRuntimeError,
    frame_label,
)
from .grammar import FRAMES_MAX, RECURSION_LIMIT
from .objects import (
    ObjBoundMethod,
    ObjClass,
    ObjClosure,
    ObjFunction,
    ObjInstance,
    ObjNative,
    ObjString,
    ObjUpvalue,
)
from .values import divide, is_falsey, stringify, values_equal


class CallFrame:
    """One active call: the closure running, its ip, and its stack window."""

    def __init__(self, closure: ObjClosure, base: int):
        self.closure: ObjClosure = closure
        self.ip: int = 0
        self.base: int = base
        self.chunk: Chunk = closure.function.chunk

    def read_byte(self) -> int:
        byte = self.chunk.code[self.ip]
        self.ip += 1
        return byte

    def read_short(self) -> int:
        code = self.chunk.code
        self.ip += 2
        return (code[self.ip - 2] << 8) | code[self.ip - 1]

    def read_constant(self) -> object:
        return self.chunk.constants[self.read_byte()]

    def read_string(self) -> ObjString:
        value = self.read_constant()
        assert isinstance(value, ObjString)
        return value

    def line(self) -> int:
        """Line of the instruction that was executing."""
        return self.chunk.lines[max(self.ip - 1, 0)]

    def name_line(self) -> int:
        """Line of the name operand of the invoke that just ran."""
        return self.chunk.lines[self.ip - 2]


def _clock(arguments: list[object]) -> object:
    return time.perf_counter()


class VM:
    """Bytecode interpreter; globals and the heap persist across `interpret` calls."""

    def __init__(
        self,
        out: TextIO,
        diagnostics: Diagnostics,
        options: Options | None = None,
    ):
        self.out = out
        self.diagnostics = diagnostics
        self.options = options if options is not None else Options()
        self.heap = Heap(
            stress=self.options.stress_gc,
            log=diagnostics.err if self.options.log_gc else None,
        )
        self.stack: list[object] = []
        self.frames: list[CallFrame] = []
        self.globals: dict[ObjString, object] = {}
        # Sorted by stack slot, lowest first.
        self.open_upvalues: list[ObjUpvalue] = []
        self.init_string: ObjString | None = None

        self.heap.add_root_source(self._roots)
        self.init_string = self.heap.intern("init")
        self.define_native("clock", 0, _clock)

    def _roots(self) -> Iterable[object]:
        yield from self.stack
        for frame in self.frames:
            yield frame.closure
        yield from self.open_upvalues
        for name, value in self.globals.items():
            yield name
            yield value
        if self.init_string is not None:
            yield self.init_string

    # ---- Stack -------------------------------------------------------------

    def push(self, value: object) -> None:
        self.stack.append(value)

    def pop(self) -> object:
        return self.stack.pop()

    def peek(self, distance: int) -> object:
        return self.stack[-1 - distance]

    def reset_stack(self) -> None:
        self.stack = []
        self.frames = []
        self.open_upvalues = []

    def define_native(
        self, name: str, arity: int, function: Callable[[list[object]], object]
    ) -> None:
        # Both objects stay on the stack until the globals table holds them.
        self.push(self.heap.intern(name))
        self.push(self.heap.allocate(ObjNative(name, arity, function)))
        key = self.peek(1)
        assert isinstance(key, ObjString)
        self.globals[key] = self.peek(0)
        self.pop()
        self.pop()

    # ---- Running -----------------------------------------------------------

    def interpret_source(self, source: str) -> InterpretResult:
        """Compile and run one piece of source."""
        self.diagnostics.reset()
        limit = sys.getrecursionlimit()
        if limit < RECURSION_LIMIT:
            sys.setrecursionlimit(RECURSION_LIMIT)
        try:
            function = compile_source(
                source,
                self.heap,
                self.diagnostics,
                print_code=self.options.print_code,
                debug=self.diagnostics.err,
            )
        finally:
            sys.setrecursionlimit(limit)
        if function is None:
            return InterpretResult.STATIC_ERROR

        self.push(function)
        closure = self.heap.allocate(ObjClosure(function))
        self.pop()
        self.push(closure)
        try:
            self.call(closure, 0)
            self.run()
        except LoxRuntimeError as e:
            self.diagnostics.runtime_error(e)
            self.reset_stack()
            return InterpretResult.RUNTIME_ERROR
        return InterpretResult.OK

    def runtime_error(self, msg: str, line: int | None = None) -> LoxRuntimeError:
        """Build an error carrying the current call stack, innermost first.

        `line` replaces the innermost frame's line when given.
        """
        if line is None:
            line = self.frames[-1].line() if self.frames else 0
        error = LoxRuntimeError(msg, line)
        for frame in reversed(self.frames):
            function = frame.closure.function
            error.trace.append((frame.line(), frame_label(function.display_name)))
        if error.trace:
            error.trace[0] = (line, error.trace[0][1])
        return error

    def run(self) -> None:
        frame = self.frames[-1]
        trace = self.options.trace_execution

        while True:
            if trace:
                self._trace_instruction(frame)
            op = frame.read_byte()

            if op == OpCode.CONSTANT:
                self.push(frame.read_constant())

            elif op == OpCode.NIL:
                self.push(None)

            elif op == OpCode.TRUE:
                self.push(True)

            elif op == OpCode.FALSE:
                self.push(False)

            elif op == OpCode.POP:
                self.pop()

            elif op == OpCode.GET_LOCAL:
                slot = frame.read_byte()
                self.push(self.stack[frame.base + slot])

            elif op == OpCode.SET_LOCAL:
                slot = frame.read_byte()
                self.stack[frame.base + slot] = self.peek(0)

            elif op == OpCode.GET_GLOBAL:
                name = frame.read_string()
                if name not in self.globals:
                    raise self.runtime_error(
                        "Undefined variable '" + name.chars + "'."
                    )
                self.push(self.globals[name])

            elif op == OpCode.DEFINE_GLOBAL:
                name = frame.read_string()
                self.globals[name] = self.peek(0)
                self.pop()

            elif op == OpCode.SET_GLOBAL:
                name = frame.read_string()
                if name not in self.globals:
                    raise self.runtime_error(
                        "Undefined variable '" + name.chars + "'."
                    )
                self.globals[name] = self.peek(0)

            elif op == OpCode.GET_UPVALUE:
                slot = frame.read_byte()
                upvalue = frame.closure.upvalues[slot]
                assert upvalue is not None
                self.push(upvalue.get(self.stack))

            elif op == OpCode.SET_UPVALUE:
                slot = frame.read_byte()
                upvalue = frame.closure.upvalues[slot]
                assert upvalue is not None
                upvalue.set(self.stack, self.peek(0))

            elif op == OpCode.GET_PROPERTY:
                name = frame.read_string()
                instance = self.peek(0)
                if not isinstance(instance, ObjInstance):
                    raise self.runtime_error("Only instances have properties.")
                if name in instance.fields:
                    value = instance.fields[name]
                    self.pop()
                    self.push(value)
                else:
                    self.bind_method(instance.klass, name)

            elif op == OpCode.SET_PROPERTY:
                name = frame.read_string()
                instance = self.peek(1)
                if not isinstance(instance, ObjInstance):
                    raise self.runtime_error("Only instances have fields.")
                instance.fields[name] = self.peek(0)
                value = self.pop()
                self.pop()
                self.push(value)

            elif op == OpCode.GET_SUPER:
                name = frame.read_string()
                superclass = self.pop()
                assert isinstance(superclass, ObjClass)
                self.bind_method(superclass, name)

            elif op == OpCode.EQUAL:
                b = self.pop()
                a = self.pop()
                self.push(values_equal(a, b))

            elif op == OpCode.ADD:
                b = self.peek(0)
                a = self.peek(1)
                if isinstance(a, ObjString) and isinstance(b, ObjString):
                    # Operands stay on the stack while the result is allocated.
                    result = self.heap.intern(a.chars + b.chars)
                    self.pop()
                    self.pop()
                    self.push(result)
                elif isinstance(a, float) and isinstance(b, float):
                    self.pop()
                    self.pop()
                    self.push(a + b)
                else:
                    raise self.runtime_error(
                        "Operands must be two numbers or two strings."
                    )

            elif op in _NUMERIC_BINARY:
                b = self.peek(0)
                a = self.peek(1)
                if not isinstance(a, float) or not isinstance(b, float):
                    raise self.runtime_error("Operands must be numbers.")
                self.pop()
                self.pop()
                self.push(_NUMERIC_BINARY[op](a, b))

            elif op == OpCode.NOT:
                self.push(is_falsey(self.pop()))

            elif op == OpCode.NEGATE:
                value = self.peek(0)
                if not isinstance(value, float):
                    raise self.runtime_error("Operand must be a number.")
                self.pop()
                self.push(-value)

            elif op == OpCode.PRINT:
                self.out.write(stringify(self.pop()) + "\n")

            elif op == OpCode.JUMP:
                offset = frame.read_short()
                frame.ip += offset

            elif op == OpCode.JUMP_IF_FALSE:
                offset = frame.read_short()
                if is_falsey(self.peek(0)):
                    frame.ip += offset

            elif op == OpCode.LOOP:
                offset = frame.read_short()
                frame.ip -= offset

            elif op == OpCode.CALL:
                arg_count = frame.read_byte()
                self.call_value(self.peek(arg_count), arg_count)
                frame = self.frames[-1]

            elif op == OpCode.INVOKE:
                name = frame.read_string()
                arg_count = frame.read_byte()
                self.invoke(name, arg_count)
                frame = self.frames[-1]

            elif op == OpCode.SUPER_INVOKE:
                name = frame.read_string()
                arg_count = frame.read_byte()
                superclass = self.pop()
                assert isinstance(superclass, ObjClass)
                self.invoke_from_class(superclass, name, arg_count)
                frame = self.frames[-1]

            elif op == OpCode.CLOSURE:
                function = frame.read_constant()
                assert isinstance(function, ObjFunction)
                closure = self.heap.allocate(ObjClosure(function))
                # On the stack before its upvalues are allocated.
                self.push(closure)
                for i in range(function.upvalue_count):
                    is_local = frame.read_byte()
                    index = frame.read_byte()
                    if is_local:
                        closure.upvalues[i] = self.capture_upvalue(frame.base + index)
                    else:
                        closure.upvalues[i] = frame.closure.upvalues[index]

            elif op == OpCode.CLOSE_UPVALUE:
                self.close_upvalues(len(self.stack) - 1)
                self.pop()

            elif op == OpCode.RETURN:
                result = self.pop()
                self.close_upvalues(frame.base)
                self.frames.pop()
                if not self.frames:
                    self.pop()
                    return
                del self.stack[frame.base :]
                self.push(result)
                frame = self.frames[-1]

            elif op == OpCode.CLASS:
                name = frame.read_string()
                self.push(self.heap.allocate(ObjClass(name)))

            elif op == OpCode.INHERIT:
                superclass = self.peek(1)
                if not isinstance(superclass, ObjClass):
                    raise self.runtime_error("Superclass must be a class.")
                subclass = self.peek(0)
                assert isinstance(subclass, ObjClass)
                subclass.methods.update(superclass.methods)
                self.pop()

            elif op == OpCode.METHOD:
                name = frame.read_string()
                method = self.peek(0)
                klass = self.peek(1)
                assert isinstance(method, ObjClosure)
                assert isinstance(klass, ObjClass)
                klass.methods[name] = method
                self.pop()

            else:
                raise AssertionError("unknown opcode " + str(op))

    # ---- Calls -------------------------------------------------------------

    def call(self, closure: ObjClosure, arg_count: int) -> None:
        if arg_count != closure.function.arity:
            raise self.runtime_error(
                f"Expected {closure.function.arity} arguments but got {arg_count}."
            )
        if len(self.frames) == FRAMES_MAX:
            raise self.runtime_error("Stack overflow.")
        self.frames.append(CallFrame(closure, len(self.stack) - arg_count - 1))

    def call_value(self, callee: object, arg_count: int) -> None:
        if isinstance(callee, ObjBoundMethod):
            self.stack[-arg_count - 1] = callee.receiver
            self.call(callee.method, arg_count)
            return

        if isinstance(callee, ObjClass):
            # The class sits in the callee slot while the instance is allocated.
            instance = self.heap.allocate(ObjInstance(callee))
            self.stack[-arg_count - 1] = instance
            assert self.init_string is not None
            initializer = callee.methods.get(self.init_string)
            if initializer is not None:
                self.call(initializer, arg_count)
            elif arg_count != 0:
                raise self.runtime_error(
                    f"Expected 0 arguments but got {arg_count}."
                )
            return

        if isinstance(callee, ObjClosure):
            self.call(callee, arg_count)
            return

        if isinstance(callee, ObjNative):
            if arg_count != callee.arity:
                raise self.runtime_error(
                    f"Expected {callee.arity} arguments but got {arg_count}."
                )
            start = len(self.stack) - arg_count
            result = callee.function(self.stack[start:])
            del self.stack[start - 1 :]
            self.push(result)
            return

        raise self.runtime_error("Can only call functions and classes.")

    def invoke(self, name: ObjString, arg_count: int) -> None:
        receiver = self.peek(arg_count)
        if not isinstance(receiver, ObjInstance):
            raise self.runtime_error(
                "Only instances have properties.", self.frames[-1].name_line()
            )
        if name in receiver.fields:
            value = receiver.fields[name]
            self.stack[-arg_count - 1] = value
            self.call_value(value, arg_count)
            return
        self.invoke_from_class(receiver.klass, name, arg_count)

    def invoke_from_class(self, klass: ObjClass, name: ObjString, arg_count: int) -> None:
        method = klass.methods.get(name)
        if method is None:
            raise self.runtime_error(
                "Undefined property '" + name.chars + "'.",
                self.frames[-1].name_line(),
            )
        self.call(method, arg_count)

    def bind_method(self, klass: ObjClass, name: ObjString) -> None:
        method = klass.methods.get(name)
        if method is None:
            raise self.runtime_error("Undefined property '" + name.chars + "'.")
        bound = self.heap.allocate(ObjBoundMethod(self.peek(0), method))
        self.pop()
        self.push(bound)

    # ---- Upvalues ----------------------------------------------------------

    def capture_upvalue(self, location: int) -> ObjUpvalue:
        """Reuse the open upvalue for `location`, or open a new one."""
        for upvalue in reversed(self.open_upvalues):
            if upvalue.location == location:
                return upvalue
            if upvalue.location < location:
                break
        created = self.heap.allocate(ObjUpvalue(location))
        index = len(self.open_upvalues)
        while index > 0 and self.open_upvalues[index - 1].location > location:
            index -= 1
        self.open_upvalues.insert(index, created)
        return created

    def close_upvalues(self, last: int) -> None:
        """Close every open upvalue at or above stack slot `last`."""
        while self.open_upvalues and self.open_upvalues[-1].location >= last:
            upvalue = self.open_upvalues.pop()
            upvalue.close(self.stack)

    # ---- Debug output ------------------------------------------------------

    def _trace_instruction(self, frame: CallFrame) -> None:
        err = self.diagnostics.err
        err.write("          ")
        for value in self.stack:
            err.write("[ " + stringify(value) + " ]")
        err.write("\n")
        text, _ = frame.chunk.disassemble_instruction(frame.ip)
        err.write(text + "\n")


_NUMERIC_BINARY: dict[int, Callable[[float, float], object]] = {
    OpCode.GREATER: lambda a, b: a > b,
    OpCode.GREATER_EQUAL: lambda a, b: a >= b,
    OpCode.LESS: lambda a, b: a < b,
    OpCode.LESS_EQUAL: lambda a, b: a <= b,
    OpCode.SUBTRACT: lambda a, b: a - b,
    OpCode.MULTIPLY: lambda a, b: a * b,
    OpCode.DIVIDE: divide,
}
