"""Heap objects for the bytecode track.

Every object is created through `Heap.allocate` and lives until the collector
finds it unreachable. `references()` lists the values an object keeps alive;
`release()` drops them when the object is freed, so any later use of a freed
object fails loudly instead of reading stale state.
"""

from __future__ import annotations

from typing import Callable, Iterable

from .chunk import Chunk


class Obj:
    """Base for all heap objects."""

    def __init__(self) -> None:
        self.is_marked: bool = False
        self.freed: bool = False

    def size(self) -> int:
        """Approximate footprint in bytes, for collection scheduling."""
        return 16

    def references(self) -> Iterable[object]:
        return ()

    def release(self) -> None:
        self.freed = True

    def kind(self) -> str:
        return type(self).__name__

    def to_string(self) -> str:
        raise NotImplementedError


class ObjString(Obj):
    """Interned; two strings with equal text are the same object."""

    def __init__(self, chars: str):
        super().__init__()
        self.chars: str = chars

    def size(self) -> int:
        return 40 + len(self.chars)

    def release(self) -> None:
        super().release()
        self.chars = None  # type: ignore[assignment]

    def to_string(self) -> str:
        return self.chars


class ObjFunction(Obj):
    def __init__(self, name: ObjString | None = None):
        super().__init__()
        self.arity: int = 0
        self.upvalue_count: int = 0
        self.chunk: Chunk = Chunk()
        self.name: ObjString | None = name

    def size(self) -> int:
        return 64

    def references(self) -> Iterable[object]:
        if self.name is not None:
            yield self.name
        yield from self.chunk.constants

    def release(self) -> None:
        super().release()
        self.chunk = None  # type: ignore[assignment]
        self.name = None

    @property
    def display_name(self) -> str | None:
        """Name used in stack traces; None for the top-level script."""
        if self.name is None:
            return None
        return self.name.chars

    def to_string(self) -> str:
        if self.name is None:
            return "<script>"
        return "<fn " + self.name.chars + ">"


class ObjNative(Obj):
    def __init__(
        self, name: str, arity: int, function: Callable[[list[object]], object]
    ):
        super().__init__()
        self.name: str = name
        self.arity: int = arity
        self.function: Callable[[list[object]], object] = function

    def size(self) -> int:
        return 32

    def to_string(self) -> str:
        return "<native fn>"


class ObjUpvalue(Obj):
    """A captured variable: open while it refers to a live stack slot,
    closed once it owns the value. Closing happens exactly once.
    """

    def __init__(self, location: int):
        super().__init__()
        self.location: int = location
        self.closed: object = None
        self.is_open: bool = True

    def size(self) -> int:
        return 32

    def get(self, stack: list[object]) -> object:
        if self.is_open:
            return stack[self.location]
        return self.closed

    def set(self, stack: list[object], value: object) -> None:
        if self.is_open:
            stack[self.location] = value
        else:
            self.closed = value

    def close(self, stack: list[object]) -> None:
        assert self.is_open, "upvalue closed twice"
        self.closed = stack[self.location]
        self.is_open = False
        self.location = -1

    def references(self) -> Iterable[object]:
        # An open upvalue's value is on the stack, which is already a root.
        if not self.is_open:
            yield self.closed

    def release(self) -> None:
        super().release()
        self.closed = None

    def to_string(self) -> str:
        return "upvalue"


class ObjClosure(Obj):
    def __init__(self, function: ObjFunction):
        super().__init__()
        self.function: ObjFunction = function
        self.upvalues: list[ObjUpvalue | None] = [None] * function.upvalue_count

    def size(self) -> int:
        return 32 + 8 * len(self.upvalues)

    def references(self) -> Iterable[object]:
        yield self.function
        for upvalue in self.upvalues:
            if upvalue is not None:
                yield upvalue

    def release(self) -> None:
        super().release()
        self.function = None  # type: ignore[assignment]
        self.upvalues = None  # type: ignore[assignment]

    def to_string(self) -> str:
        return self.function.to_string()


class ObjClass(Obj):
    def __init__(self, name: ObjString):
        super().__init__()
        self.name: ObjString = name
        self.methods: dict[ObjString, ObjClosure] = {}

    def size(self) -> int:
        return 48

    def references(self) -> Iterable[object]:
        yield self.name
        for name, method in self.methods.items():
            yield name
            yield method

    def release(self) -> None:
        super().release()
        self.name = None  # type: ignore[assignment]
        self.methods = None  # type: ignore[assignment]

    def to_string(self) -> str:
        return self.name.chars


class ObjInstance(Obj):
    def __init__(self, klass: ObjClass):
        super().__init__()
        self.klass: ObjClass = klass
        self.fields: dict[ObjString, object] = {}

    def size(self) -> int:
        return 48

    def references(self) -> Iterable[object]:
        yield self.klass
        for name, value in self.fields.items():
            yield name
            yield value

    def release(self) -> None:
        super().release()
        self.klass = None  # type: ignore[assignment]
        self.fields = None  # type: ignore[assignment]

    def to_string(self) -> str:
        return self.klass.name.chars + " instance"


class ObjBoundMethod(Obj):
    def __init__(self, receiver: object, method: ObjClosure):
        super().__init__()
        self.receiver: object = receiver
        self.method: ObjClosure = method

    def size(self) -> int:
        return 32

    def references(self) -> Iterable[object]:
        yield self.receiver
        yield self.method

    def release(self) -> None:
        super().release()
        self.receiver = None
        self.method = None  # type: ignore[assignment]

    def to_string(self) -> str:
        return self.method.function.to_string()
