## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import re
import sys

from .types import (Type, I32Type, BoolType, UnitType, ArrayType, Value, UnitVal, I32Val, BoolVal, LocVal,
                    UndefVal, SizeVal, AddrVal, LabelRef, Instr, Push, Peek, Unary, Binary, Var, Store,
                    SetFrame, Label)
from .ast import (Expr, IntLit, BoolLit, UnitLit, Var as VarRef, UnaryOp, BinaryOp, Let, Seq, Alloc,
                  SetIndex, GetIndex, Cond, FunPtr, Call, CallPtr, Print, Spawn, FunctionDef, Program,
                  children)


def write_without_ansi(write_fn):
    """Wrapper function that strips ANSI codes before calling the original writer."""
    ansi_re = re.compile(r'\033\[[0-9;]*m')
    return lambda text: write_fn(ansi_re.sub('', text))


## SOURCE TEXT
def format_type(ty: Type) -> str:
    match ty:
        case I32Type(): return 'i32'
        case BoolType(): return 'bool'
        case UnitType(): return 'unit'
        case ArrayType(element): return f'(array {format_type(element)})'
    raise TypeError(f"Not a type: {ty!r}")

def format_expr(e: Expr) -> str:
    """Canonical fully-parenthesized source text; parsing it gives back an equal tree."""
    def _form(head, *parts):
        return '(' + ' '.join([head, *map(format_expr, parts)]) + ')'

    match e:
        case IntLit(value): return str(value)
        case BoolLit(value): return 'true' if value else 'false'
        case UnitLit(): return 'tt'
        case VarRef(name): return name
        case UnaryOp(op, operand): return _form(op.value, operand)
        case BinaryOp(op, left, right): return _form(op.value, left, right)
        case Let(name, init, body): return _form(f'let {name}', init, body)
        case Seq(first, second): return _form('seq', first, second)
        case Alloc(size, init): return _form('alloc', size, init)
        case SetIndex(array, index, value): return _form('set', array, index, value)
        case GetIndex(array, index): return _form('get', array, index)
        case Cond(test, then, orelse): return _form('cond', test, then, orelse)
        case FunPtr(name): return f'(funptr {name})'
        case Call(name, args): return _form(name, *args)
        case CallPtr(callee, args): return _form('call', callee, *args)
        case Print(operand): return _form('print', operand)
        case Spawn(operand): return _form('spawn', operand)
    raise TypeError(f"Not an expression: {e!r}")

def format_function(fn: FunctionDef) -> str:
    params = ''.join(f' ({name} {format_type(ty)})' for name, ty in fn.params)
    return f'(fun {fn.name}{params} -> {format_type(fn.ret)} {format_expr(fn.body)})'

def format_program(prog: Program) -> str:
    return ''.join(format_function(fn) + '\n' for fn in prog.functions) + '% ' + format_expr(prog.entry) + '\n'


def _node_label(e: Expr) -> str:
    match e:
        case IntLit() | BoolLit() | UnitLit() | VarRef() | FunPtr():
            return format_expr(e)
        case UnaryOp(op) | BinaryOp(op): return f'{type(e).__name__} {op.value}'
        case Let(name): return f'Let {name}'
        case Call(name): return f'Call {name}'
    return type(e).__name__

def format_tree(e: Expr, indent: int = 0) -> str:
    """Indented outline of an expression tree, one node per line."""
    lines = [' ' * indent + _node_label(e)]
    lines += [format_tree(c, indent + 2) for c in children(e)]
    return '\n'.join(lines)


## BYTECODE
def format_value(v: Value) -> str:
    match v:
        case UnitVal(): return 'tt'
        case I32Val(n): return str(n)
        case BoolVal(b): return 'true' if b else 'false'
        case LocVal(n): return f'@{n}'
        case UndefVal(): return 'undef'
        case SizeVal(n): return f'size({n})'
        case AddrVal(n): return f'addr({n})'
        case LabelRef(name): return name
    raise TypeError(f"Not a value: {v!r}")

def format_instr(ins: Instr) -> str:
    match ins:
        case Push(value): return f'push {format_value(value)}'
        case Peek(index) | Var(index) | Store(index): return f'{type(ins).__name__.lower()} {index}'
        case Unary(op) | Binary(op): return f'{type(ins).__name__.lower()} {op.value}'
        case SetFrame(offset): return f'setframe {offset}'
        case Label(name): return f'{name}:'
    return type(ins).__name__.lower()

def format_code(code: list[Instr]) -> str:
    lines, index = [], 0
    for ins in code:
        if isinstance(ins, Label):
            lines.append(format_instr(ins))
            continue
        lines.append(f'{index:>5}  {format_instr(ins)}')
        index += 1
    return '\n'.join(lines)


def show_stack(stack, width=72, end='\n', file=None):
    stack_str = ' '.join(format_value(v) for v in stack) if stack else '∅'
    if width is not None and len(stack_str) > width:
        stack_str = '… ' + stack_str[-width+2:]
    print(f"{stack_str:>{width}}" if width else stack_str, end=end, file=file or sys.stdout)

def show_step(step, thread, ins, stack, fp, width=72, file=None):
    print(f"\033[90m{step:>4} :\033[0m  ", end='', file=file or sys.stdout)
    show_stack(stack, width=width, end='', file=file)
    print(f" \033[36m <=> \033[0m \033[90m{thread}:{fp}\033[0m {format_instr(ins)}", file=file or sys.stdout)
