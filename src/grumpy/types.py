## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

from enum import Enum
from dataclasses import dataclass


I32_MIN, I32_MAX = -2**31, 2**31 - 1


class Unop(Enum):
    NEG = 'neg'

class Binop(Enum):
    ADD = '+'
    SUB = '-'
    MUL = '*'
    DIV = '/'
    EQ = '=='
    LT = '<'


## TYPES
class Type:
    __slots__ = ()

@dataclass(frozen=True)
class I32Type(Type):
    pass

@dataclass(frozen=True)
class BoolType(Type):
    pass

@dataclass(frozen=True)
class UnitType(Type):
    pass

@dataclass(frozen=True)
class ArrayType(Type):
    element: Type


TY_I32, TY_BOOL, TY_UNIT = I32Type(), BoolType(), UnitType()


## VALUES
class Value:
    __slots__ = ()

@dataclass(frozen=True)
class UnitVal(Value):
    pass

@dataclass(frozen=True)
class I32Val(Value):
    value: int

@dataclass(frozen=True)
class BoolVal(Value):
    value: bool

@dataclass(frozen=True)
class LocVal(Value):
    """Stack or instruction location."""
    value: int

@dataclass(frozen=True)
class UndefVal(Value):
    pass

# Runtime-internal, never produced by the parser.
@dataclass(frozen=True)
class SizeVal(Value):
    """Header in front of every heap block, holding its payload length."""
    value: int

@dataclass(frozen=True)
class AddrVal(Value):
    value: int

@dataclass(frozen=True)
class LabelRef(Value):
    """Symbolic code location emitted by the compiler; `link` turns it into a `LocVal`."""
    name: str


UNIT, UNDEF = UnitVal(), UndefVal()


## INSTRUCTIONS
class Instr:
    __slots__ = ()

@dataclass(frozen=True)
class Push(Instr):
    value: Value

@dataclass(frozen=True)
class Pop(Instr):
    pass

@dataclass(frozen=True)
class Peek(Instr):
    index: int

@dataclass(frozen=True)
class Unary(Instr):
    op: Unop

@dataclass(frozen=True)
class Binary(Instr):
    op: Binop

@dataclass(frozen=True)
class Swap(Instr):
    pass

@dataclass(frozen=True)
class Alloc(Instr):
    pass

@dataclass(frozen=True)
class Set(Instr):
    pass

@dataclass(frozen=True)
class Get(Instr):
    pass

@dataclass(frozen=True)
class Var(Instr):
    index: int

@dataclass(frozen=True)
class Store(Instr):
    index: int

@dataclass(frozen=True)
class SetFrame(Instr):
    offset: int

@dataclass(frozen=True)
class Call(Instr):
    pass

@dataclass(frozen=True)
class Ret(Instr):
    pass

@dataclass(frozen=True)
class Branch(Instr):
    pass

@dataclass(frozen=True)
class Halt(Instr):
    pass

@dataclass(frozen=True)
class Print(Instr):
    pass

@dataclass(frozen=True)
class Spawn(Instr):
    pass

@dataclass(frozen=True)
class Label(Instr):
    """Pseudo-instruction marking a code location; removed by the linker."""
    name: str


def wrap_i32(n: int) -> int:
    return (n - I32_MIN) % 2**32 + I32_MIN
