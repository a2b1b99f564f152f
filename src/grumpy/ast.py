## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘
#
# Expression tree shared by the parser and the compiler.  Nodes are frozen and own
# their children; `meta` carries the source position and never affects equality.
#

from dataclasses import dataclass, field

from .types import Type, Unop, Binop


@dataclass(frozen=True)
class Expr:
    meta: dict | None = field(default=None, compare=False, repr=False, kw_only=True)


@dataclass(frozen=True)
class IntLit(Expr):
    value: int

@dataclass(frozen=True)
class BoolLit(Expr):
    value: bool

@dataclass(frozen=True)
class UnitLit(Expr):
    pass

@dataclass(frozen=True)
class Var(Expr):
    name: str

@dataclass(frozen=True)
class UnaryOp(Expr):
    op: Unop
    operand: Expr

@dataclass(frozen=True)
class BinaryOp(Expr):
    op: Binop
    left: Expr
    right: Expr

@dataclass(frozen=True)
class Let(Expr):
    name: str
    init: Expr
    body: Expr

@dataclass(frozen=True)
class Seq(Expr):
    first: Expr
    second: Expr

@dataclass(frozen=True)
class Alloc(Expr):
    size: Expr
    init: Expr

@dataclass(frozen=True)
class SetIndex(Expr):
    array: Expr
    index: Expr
    value: Expr

@dataclass(frozen=True)
class GetIndex(Expr):
    array: Expr
    index: Expr

@dataclass(frozen=True)
class Cond(Expr):
    test: Expr
    then: Expr
    orelse: Expr

@dataclass(frozen=True)
class FunPtr(Expr):
    name: str

@dataclass(frozen=True)
class Call(Expr):
    """Direct call of a function by name."""
    name: str
    args: tuple[Expr, ...] = ()

@dataclass(frozen=True)
class CallPtr(Expr):
    """Indirect call through a computed function location."""
    callee: Expr
    args: tuple[Expr, ...] = ()

@dataclass(frozen=True)
class Print(Expr):
    operand: Expr

@dataclass(frozen=True)
class Spawn(Expr):
    operand: Expr


@dataclass(frozen=True)
class FunctionDef:
    name: str
    params: tuple[tuple[str, Type], ...]
    ret: Type
    body: Expr
    meta: dict | None = field(default=None, compare=False, repr=False, kw_only=True)

    @property
    def arity(self) -> int:
        return len(self.params)


@dataclass(frozen=True)
class Program:
    functions: tuple[FunctionDef, ...]
    entry: Expr

    def function(self, name: str) -> FunctionDef | None:
        return next((f for f in self.functions if f.name == name), None)


def children(e: Expr) -> tuple[Expr, ...]:
    """Sub-expressions of `e` in evaluation order."""
    match e:
        case UnaryOp(operand=x) | Print(operand=x) | Spawn(operand=x):
            return (x,)
        case BinaryOp(left=a, right=b) | Seq(first=a, second=b) | Alloc(size=a, init=b) | GetIndex(array=a, index=b):
            return (a, b)
        case Let(init=a, body=b):
            return (a, b)
        case SetIndex(array=a, index=b, value=c) | Cond(test=a, then=b, orelse=c):
            return (a, b, c)
        case Call(args=args):
            return tuple(args)
        case CallPtr(callee=callee, args=args):
            return (callee, *args)
    return ()
