## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import sys
import collections
from typing import Callable
from dataclasses import dataclass, field

from .types import (Value, I32Val, BoolVal, LocVal, SizeVal, AddrVal, LabelRef, UNIT, Instr, Push, Pop, Peek,
                    Unary, Binary, Swap, Alloc, Set, Get, Var, Store, SetFrame, Call, Ret, Branch, Halt,
                    Print, Spawn)
from .errors import GrumpyRuntimeError, GrumpyStackError
from .operators import apply_unary, apply_binary
from .formatting import format_value, show_step


DEFAULT_QUANTUM = 64

# Upper bound on heap cells, block headers included.
HEAP_LIMIT = 1 << 24

# Return location of a spawned thread's outermost frame; returning there ends the thread.
EXIT = -1


@dataclass
class Thread:
    tid: int
    pc: int
    fp: int = 0
    stack: list[Value] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.pc == EXIT


@dataclass
class Machine:
    program: list[Instr]
    out: Callable[[str], None]
    heap: list[Value] = field(default_factory=list)
    threads: collections.deque = field(default_factory=collections.deque)
    spawned: int = 0

    def spawn(self, pc: int) -> Thread:
        """Start a thread running the zero-parameter function at `pc`."""
        # Same frame the `setframe 0; call` prologue builds for the entry expression.
        thread = Thread(self.spawned, pc, stack=[LocVal(0), LocVal(EXIT)])
        self.spawned += 1
        self.threads.append(thread)
        return thread


def _pop(stack: list, kind: type | None = None) -> Value:
    if not stack:
        raise GrumpyStackError("Pop from an empty stack.")
    value = stack.pop()
    if kind is not None and not isinstance(value, kind):
        raise GrumpyRuntimeError(f"Expected {kind.__name__} on the stack, got {format_value(value)}.")
    return value


def _frame_slot(thread: Thread, i: int) -> int:
    if not 0 <= (slot := thread.fp + i) < len(thread.stack):
        raise GrumpyStackError(f"Frame slot {i} (stack position {slot}) is outside the stack.")
    return slot


def _heap_slot(heap: list, addr: AddrVal, index: I32Val) -> int:
    header = heap[addr.value] if 0 <= addr.value < len(heap) else None
    if not isinstance(header, SizeVal):
        raise GrumpyRuntimeError(f"Address {addr.value} does not point to a heap block.")
    if not 0 <= index.value < header.value:
        raise GrumpyRuntimeError(f"Index {index.value} out of bounds for array of size {header.value}.")
    return addr.value + 1 + index.value


def interpret_step(machine: Machine, thread: Thread) -> bool:
    """Execute one instruction of `thread`; returns True when the machine halts."""
    if not 0 <= thread.pc < len(machine.program):
        raise GrumpyRuntimeError(f"Control reached location {thread.pc}, outside the program.")
    ins = machine.program[thread.pc]
    thread.pc += 1
    stack, heap = thread.stack, machine.heap

    match ins:
        case Push(value):
            if isinstance(value, LabelRef):
                raise GrumpyRuntimeError(f"Unresolved label `{value.name}`; the program was not linked.")
            stack.append(value)
        case Pop():
            _pop(stack)
        case Peek(i):
            if not 0 <= i < len(stack):
                raise GrumpyStackError(f"Cannot peek {i} deep into a stack of {len(stack)} value(s).")
            stack.append(stack[-1 - i])
        case Unary(op):
            stack.append(apply_unary(op, _pop(stack)))
        case Binary(op):
            right = _pop(stack)
            left = _pop(stack)
            stack.append(apply_binary(op, left, right))
        case Swap():
            a, b = _pop(stack), _pop(stack)
            stack.extend((a, b))
        case Alloc():
            init, size = _pop(stack), _pop(stack, I32Val)
            if size.value < 0:
                raise GrumpyRuntimeError(f"Cannot allocate an array of negative size {size.value}.")
            if len(heap) + 1 + size.value > HEAP_LIMIT:
                raise GrumpyRuntimeError(f"Cannot allocate an array of size {size.value}; the heap is limited to {HEAP_LIMIT:,} cells.")
            stack.append(AddrVal(len(heap)))
            heap.append(SizeVal(size.value))
            heap.extend([init] * size.value)
        case Set():
            value, index, addr = _pop(stack), _pop(stack, I32Val), _pop(stack, AddrVal)
            heap[_heap_slot(heap, addr, index)] = value
        case Get():
            index, addr = _pop(stack, I32Val), _pop(stack, AddrVal)
            stack.append(heap[_heap_slot(heap, addr, index)])
        case Var(i):
            stack.append(stack[_frame_slot(thread, i)])
        case Store(i):
            value = _pop(stack)
            stack[_frame_slot(thread, i)] = value
        case SetFrame(n):
            if (fp := len(stack) - n) < 0:
                raise GrumpyStackError(f"Cannot set a frame {n} deep into a stack of {len(stack)} value(s).")
            stack.append(LocVal(thread.fp))
            thread.fp = fp
        case Call():
            target = _pop(stack, LocVal)
            stack.append(LocVal(thread.pc))
            thread.pc = target.value
        case Ret():
            result, ret, caller_fp = _pop(stack), _pop(stack, LocVal), _pop(stack, LocVal)
            del stack[thread.fp:]
            thread.fp, thread.pc = caller_fp.value, ret.value
            stack.append(result)
        case Branch():
            target, test = _pop(stack, LocVal), _pop(stack, BoolVal)
            if test.value:
                thread.pc = target.value
        case Halt():
            return True
        case Print():
            machine.out(format_value(_pop(stack)))
            stack.append(UNIT)
        case Spawn():
            machine.spawn(_pop(stack, LocVal).value)
            stack.append(UNIT)
        case _:
            raise GrumpyRuntimeError(f"Unknown instruction {ins!r}.")
    return False


def interpret(program: list[Instr], *, verbosity=0, stats=None, out=None, quantum=DEFAULT_QUANTUM) -> Value:
    """Run linked bytecode from an empty stack and heap; returns the top of stack at `halt`.

    Threads started by `spawn` share the heap and are interleaved round-robin, each
    running `quantum` instructions per turn.  `halt` stops every thread.
    """
    machine = Machine(list(program), out=out or print)
    machine.threads.append(Thread(0, 0))
    machine.spawned = 1

    step = 0
    while machine.threads:
        thread = machine.threads.popleft()
        if verbosity > 1:
            print(f"\033[90m     ~ thread {thread.tid}, heap {len(machine.heap)}\033[0m", file=sys.stdout)

        for _ in range(quantum):
            pc = thread.pc
            if verbosity > 0 and 0 <= pc < len(machine.program):
                show_step(step, thread.tid, machine.program[pc], thread.stack, thread.fp)
            step += 1
            try:
                halted = interpret_step(machine, thread)
            except GrumpyRuntimeError as exc:
                if exc.pc is None:
                    exc.pc = pc
                    exc.instr = machine.program[pc] if 0 <= pc < len(machine.program) else None
                    exc.stack, exc.thread = list(thread.stack), thread.tid
                raise

            if halted:
                if stats is not None:
                    stats['steps'] = stats.get('steps', 0) + step
                    stats['threads'] = stats.get('threads', 0) + machine.spawned
                    stats['heap'] = max(stats.get('heap', 0), len(machine.heap))
                if not thread.stack:
                    raise GrumpyStackError("Halted with an empty stack.", pc=pc, instr=machine.program[pc],
                                           stack=[], thread=thread.tid)
                return thread.stack[-1]
            if thread.finished:
                break

        if not thread.finished:
            machine.threads.append(thread)

    raise GrumpyRuntimeError("Every thread finished without reaching `halt`.")
