## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘
#
# Lowers the expression tree to bytecode.  A function frame looks like this, with
# `k` parameters and addresses relative to the frame pointer:
#
#   fp+0 .. fp+k-1   arguments, pushed by the caller left to right
#   fp+k             caller's frame pointer, pushed by `setframe`
#   fp+k+1           return location, pushed by `call`
#   fp+k+2 ...       temporaries and `let` slots
#

import itertools

from . import types as T
from .ast import (Expr, IntLit, BoolLit, UnitLit, Var, UnaryOp, BinaryOp, Let, Seq, Alloc, SetIndex,
                  GetIndex, Cond, FunPtr, Call, CallPtr, Print, Spawn, FunctionDef, Program)
from .errors import GrumpyNameError, GrumpyArityError


ENTRY = '_entry'
FRAME_HEADER = 2


def _where(meta: dict | None) -> str:
    return f" at {meta['line']}:{meta['column']}" if meta else ""


class Compiler:
    def __init__(self, functions: dict[str, FunctionDef]):
        self.functions = functions
        self.code: list[T.Instr] = []
        self._counter = itertools.count()

    def emit(self, *instrs: T.Instr) -> None:
        self.code.extend(instrs)

    def fresh_label(self, hint: str) -> str:
        # Function names start with a letter, so generated labels never collide with them.
        return f'_{hint}{next(self._counter)}'

    def _lookup(self, name: str, meta: dict | None) -> FunctionDef:
        if (fn := self.functions.get(name)) is None:
            raise GrumpyNameError(f"Function `{name}` is not defined{_where(meta)}.", name=name, meta=meta)
        return fn

    def compile_prologue(self) -> None:
        self.emit(T.SetFrame(0), T.Push(T.LabelRef(ENTRY)), T.Call(), T.Halt())

    def compile_body(self, label: str, params, body: Expr) -> None:
        self.emit(T.Label(label))
        scope = {name: i for i, (name, _ty) in enumerate(params)}
        self.compile_expr(body, scope, len(params) + FRAME_HEADER)
        self.emit(T.Ret())

    def compile_expr(self, e: Expr, scope: dict[str, int], depth: int) -> None:
        """Emit code leaving the value of `e` on the stack; `depth` slots above fp are already in use."""
        match e:
            case IntLit(value):
                self.emit(T.Push(T.I32Val(value)))
            case BoolLit(value):
                self.emit(T.Push(T.BoolVal(value)))
            case UnitLit():
                self.emit(T.Push(T.UNIT))
            case Var(name):
                if name not in scope:
                    raise GrumpyNameError(f"Variable `{name}` is not defined{_where(e.meta)}.", name=name, meta=e.meta)
                self.emit(T.Var(scope[name]))
            case UnaryOp(op, operand):
                self.compile_expr(operand, scope, depth)
                self.emit(T.Unary(op))
            case BinaryOp(op, left, right):
                self.compile_expr(left, scope, depth)
                self.compile_expr(right, scope, depth + 1)
                self.emit(T.Binary(op))
            case Let(name, init, body):
                # The initializer's value stays where it was pushed and becomes the variable's slot.
                self.compile_expr(init, scope, depth)
                self.compile_expr(body, {**scope, name: depth}, depth + 1)
                self.emit(T.Swap(), T.Pop())
            case Seq(first, second):
                self.compile_expr(first, scope, depth)
                self.emit(T.Pop())
                self.compile_expr(second, scope, depth)
            case Alloc(size, init):
                self.compile_expr(size, scope, depth)
                self.compile_expr(init, scope, depth + 1)
                self.emit(T.Alloc())
            case SetIndex(array, index, value):
                self.compile_expr(array, scope, depth)
                self.compile_expr(index, scope, depth + 1)
                self.compile_expr(value, scope, depth + 2)
                self.emit(T.Set(), T.Push(T.UNIT))
            case GetIndex(array, index):
                self.compile_expr(array, scope, depth)
                self.compile_expr(index, scope, depth + 1)
                self.emit(T.Get())
            case Cond(test, then, orelse):
                then_label, end_label = self.fresh_label('then'), self.fresh_label('end')
                self.compile_expr(test, scope, depth)
                self.emit(T.Push(T.LabelRef(then_label)), T.Branch())
                self.compile_expr(orelse, scope, depth)
                self.emit(T.Push(T.BoolVal(True)), T.Push(T.LabelRef(end_label)), T.Branch())
                self.emit(T.Label(then_label))
                self.compile_expr(then, scope, depth)
                self.emit(T.Label(end_label))
            case FunPtr(name):
                self._lookup(name, e.meta)
                self.emit(T.Push(T.LabelRef(name)))
            case Call(name, args):
                fn = self._lookup(name, e.meta)
                if len(args) != fn.arity:
                    raise GrumpyArityError(f"Function `{name}` takes {fn.arity} argument(s), {len(args)} given{_where(e.meta)}.",
                                           name=name, expected=fn.arity, given=len(args), meta=e.meta)
                for i, arg in enumerate(args):
                    self.compile_expr(arg, scope, depth + i)
                self.emit(T.SetFrame(len(args)), T.Push(T.LabelRef(name)), T.Call())
            case CallPtr(callee, args):
                self.compile_expr(callee, scope, depth)
                for i, arg in enumerate(args):
                    self.compile_expr(arg, scope, depth + 1 + i)
                # The callee location sits below the arguments and the saved frame pointer.
                self.emit(T.SetFrame(len(args)), T.Peek(len(args) + 1), T.Call())
                self.emit(T.Swap(), T.Pop())
            case Print(operand):
                self.compile_expr(operand, scope, depth)
                self.emit(T.Print())
            case Spawn(operand):
                self.compile_expr(operand, scope, depth)
                self.emit(T.Spawn())
            case _:
                raise TypeError(f"Cannot compile {e!r}.")


def compile_program(program: Program) -> list[T.Instr]:
    """Bytecode for `program`, still containing labels; see `linker.link`."""
    compiler = Compiler({fn.name: fn for fn in program.functions})
    compiler.compile_prologue()
    compiler.compile_body(ENTRY, (), program.entry)
    for fn in program.functions:
        compiler.compile_body(fn.name, fn.params, fn.body)
    return compiler.code


def compile_expression(expr: Expr, functions=()) -> list[T.Instr]:
    return compile_program(Program(tuple(functions), expr))
