## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

from .types import Value, I32Val, BoolVal, Unop, Binop, wrap_i32
from .errors import GrumpyRuntimeError
from .formatting import format_value


## ARITHMETIC
def op_add(b: int, a: int) -> int: return wrap_i32(b + a)
def op_sub(b: int, a: int) -> int: return wrap_i32(b - a)
def op_mul(b: int, a: int) -> int: return wrap_i32(b * a)
def op_div(b: int, a: int) -> int:
    if a == 0: raise GrumpyRuntimeError("Division by zero.")
    q = abs(b) // abs(a)
    return wrap_i32(q if (b < 0) == (a < 0) else -q)
def op_neg(x: int) -> int: return wrap_i32(-x)
## COMPARISON
def op_lt(b: int, a: int) -> bool: return b < a
## BOOLEAN LOGIC
def op_not(x: bool) -> bool: return not x


_ARITHMETIC = {Binop.ADD: op_add, Binop.SUB: op_sub, Binop.MUL: op_mul, Binop.DIV: op_div}


def _expect_i32(v: Value, op) -> int:
    if not isinstance(v, I32Val):
        raise GrumpyRuntimeError(f"Operator `{op.value}` expects i32 operands, got {format_value(v)}.")
    return v.value


def apply_unary(op: Unop, x: Value) -> Value:
    match op, x:
        # `neg` is logical not on bools and wrapping arithmetic negation on i32.
        case Unop.NEG, BoolVal(b): return BoolVal(op_not(b))
        case Unop.NEG, I32Val(n): return I32Val(op_neg(n))
    raise GrumpyRuntimeError(f"Operator `{op.value}` cannot be applied to {format_value(x)}.")


def apply_binary(op: Binop, left: Value, right: Value) -> Value:
    """Apply `op` with `left` being the operand that was pushed first."""
    if op is Binop.EQ:
        return BoolVal(left == right)
    if op is Binop.LT:
        return BoolVal(op_lt(_expect_i32(left, op), _expect_i32(right, op)))
    return I32Val(_ARITHMETIC[op](_expect_i32(left, op), _expect_i32(right, op)))
