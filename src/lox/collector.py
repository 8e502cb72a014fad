"""Heap allocator and mark-and-sweep garbage collector for the bytecode track.

The heap owns every object the compiler and VM create. A collection runs
synchronously inside `allocate` once the bytes allocated since the last one
pass a threshold, which then grows with the surviving heap. Roots come from
registered root sources (the VM's stack, frames, open upvalues, and globals;
the compiler's in-progress functions).
"""

from __future__ import annotations

from typing import Callable, Iterable, TextIO, TypeVar

from .objects import Obj, ObjString

INITIAL_NEXT_GC = 1024 * 1024
GC_HEAP_GROW_FACTOR = 2

T = TypeVar("T", bound=Obj)

RootSource = Callable[[], Iterable[object]]


class Heap:
    def __init__(
        self,
        *,
        stress: bool = False,
        log: TextIO | None = None,
    ):
        self.objects: list[Obj] = []
        self.bytes_allocated: int = 0
        self.next_gc: int = INITIAL_NEXT_GC
        self.stress: bool = stress
        self.log: TextIO | None = log
        self.collections: int = 0
        # Intern table; entries do not keep their strings alive.
        self.strings: dict[str, ObjString] = {}
        self._gray: list[Obj] = []
        self._root_sources: list[RootSource] = []

    # ---- Roots -------------------------------------------------------------

    def add_root_source(self, source: RootSource) -> None:
        self._root_sources.append(source)

    def remove_root_source(self, source: RootSource) -> None:
        self._root_sources.remove(source)

    # ---- Allocation --------------------------------------------------------

    def allocate(self, obj: T) -> T:
        """Account for and adopt a new object, collecting first if due.

        Whatever `obj` references must already be reachable from a root:
        the new object itself is not yet on the heap when collection runs.
        """
        size = obj.size()
        self.bytes_allocated += size
        if self.stress or self.bytes_allocated > self.next_gc:
            self.collect()
        self.objects.append(obj)
        if self.log is not None:
            self.log.write(
                "%d allocate %d for %s\n" % (id(obj), size, obj.kind())
            )
        return obj

    def intern(self, chars: str) -> ObjString:
        interned = self.strings.get(chars)
        if interned is not None:
            return interned
        string = self.allocate(ObjString(chars))
        self.strings[chars] = string
        return string

    # ---- Collection --------------------------------------------------------

    def collect(self) -> None:
        before = self.bytes_allocated
        if self.log is not None:
            self.log.write("-- gc begin\n")

        self._mark_roots()
        self._trace_references()
        self._remove_white_strings()
        freed = self._sweep()

        self.next_gc = max(self.bytes_allocated * GC_HEAP_GROW_FACTOR, 1)
        self.collections += 1
        if self.log is not None:
            self.log.write("-- gc end\n")
            self.log.write(
                "   collected %d bytes (from %d to %d) next at %d, freed %d objects\n"
                % (
                    before - self.bytes_allocated,
                    before,
                    self.bytes_allocated,
                    self.next_gc,
                    freed,
                )
            )

    def mark_value(self, value: object) -> None:
        if isinstance(value, Obj):
            self.mark_object(value)

    def mark_object(self, obj: Obj | None) -> None:
        if obj is None or obj.is_marked:
            return
        assert not obj.freed, "reachable object was already freed"
        if self.log is not None:
            self.log.write("%d mark %s\n" % (id(obj), obj.kind()))
        obj.is_marked = True
        self._gray.append(obj)

    def _mark_roots(self) -> None:
        for source in self._root_sources:
            for value in source():
                self.mark_value(value)

    def _trace_references(self) -> None:
        while self._gray:
            obj = self._gray.pop()
            if self.log is not None:
                self.log.write("%d blacken %s\n" % (id(obj), obj.kind()))
            for child in obj.references():
                self.mark_value(child)

    def _remove_white_strings(self) -> None:
        dead = [k for k, s in self.strings.items() if not s.is_marked]
        for chars in dead:
            del self.strings[chars]

    def _sweep(self) -> int:
        survivors: list[Obj] = []
        freed = 0
        for obj in self.objects:
            if obj.is_marked:
                obj.is_marked = False
                survivors.append(obj)
                continue
            self.bytes_allocated -= obj.size()
            if self.log is not None:
                self.log.write("%d free %s\n" % (id(obj), obj.kind()))
            obj.release()
            freed += 1
        self.objects = survivors
        return freed
