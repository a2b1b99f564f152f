## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import pytest

from grumpy import types as T
from grumpy.types import Binop, I32Val, BoolVal, LabelRef, UNIT
from grumpy.parser import parse, parse_expression
from grumpy.compiler import compile_program, compile_expression, ENTRY
from grumpy.errors import GrumpyNameError, GrumpyArityError


PROLOGUE = [T.SetFrame(0), T.Push(LabelRef(ENTRY)), T.Call(), T.Halt()]


def _entry_code(source: str) -> list:
    """Instructions of the entry body, between its label and its `ret`."""
    code = compile_program(parse(source))
    assert code[:4] == PROLOGUE
    assert code[4] == T.Label(ENTRY)
    end = code.index(T.Ret())
    return code[5:end]


def test_prologue_calls_entry_and_halts():
    code = compile_expression(parse_expression("3"))
    assert code == [*PROLOGUE, T.Label(ENTRY), T.Push(I32Val(3)), T.Ret()]


def test_constants():
    assert _entry_code("% true") == [T.Push(BoolVal(True))]
    assert _entry_code("% tt") == [T.Push(UNIT)]


def test_binary_operands_in_order():
    assert _entry_code("% (- 5 2)") == [T.Push(I32Val(5)), T.Push(I32Val(2)), T.Binary(Binop.SUB)]


def test_unary():
    assert _entry_code("% (neg 4)") == [T.Push(I32Val(4)), T.Unary(T.Unop.NEG)]


def test_let_slot_follows_frame_header():
    # Entry has no parameters, so its first temporary lives after the saved fp and return location.
    assert _entry_code("% (let x 1 x)") == [T.Push(I32Val(1)), T.Var(2), T.Swap(), T.Pop()]


def test_nested_let_slots():
    assert _entry_code("% (let x 1 (let y 2 (+ x y)))") == [
        T.Push(I32Val(1)), T.Push(I32Val(2)), T.Var(2), T.Var(3), T.Binary(Binop.ADD),
        T.Swap(), T.Pop(), T.Swap(), T.Pop()]


def test_let_inside_operand_uses_deeper_slot():
    assert _entry_code("% (+ 1 (let x 2 x))") == [
        T.Push(I32Val(1)), T.Push(I32Val(2)), T.Var(3), T.Swap(), T.Pop(), T.Binary(Binop.ADD)]


def test_shadowing_uses_innermost_binding():
    assert _entry_code("% (let x 1 (let x 2 x))")[2] == T.Var(3)


def test_parameters_are_addressed_from_frame_pointer():
    code = compile_program(parse("(fun f (a i32) (b i32) -> i32 (let c 1 (+ b c))) % (f 1 2)"))
    start = code.index(T.Label('f'))
    assert code[start + 1:] == [
        T.Push(I32Val(1)), T.Var(1), T.Var(4), T.Binary(Binop.ADD), T.Swap(), T.Pop(), T.Ret()]


def test_seq_discards_first_value():
    assert _entry_code("% (seq 1 2)") == [T.Push(I32Val(1)), T.Pop(), T.Push(I32Val(2))]


def test_array_forms():
    assert _entry_code("% (alloc 2 0)") == [T.Push(I32Val(2)), T.Push(I32Val(0)), T.Alloc()]
    assert _entry_code("% (let a (alloc 1 0) (set a 0 5))")[3:] == [
        T.Var(2), T.Push(I32Val(0)), T.Push(I32Val(5)), T.Set(), T.Push(UNIT), T.Swap(), T.Pop()]
    assert _entry_code("% (let a (alloc 1 0) (get a 0))")[3:] == [
        T.Var(2), T.Push(I32Val(0)), T.Get(), T.Swap(), T.Pop()]


def test_cond_branches_to_then_label():
    code = compile_program(parse("% (cond true 1 2)"))
    assert code[5:] == [
        T.Push(BoolVal(True)), T.Push(LabelRef('_then0')), T.Branch(),
        T.Push(I32Val(2)), T.Push(BoolVal(True)), T.Push(LabelRef('_end1')), T.Branch(),
        T.Label('_then0'), T.Push(I32Val(1)),
        T.Label('_end1'), T.Ret()]


def test_generated_labels_are_unique():
    code = compile_program(parse("% (cond true (cond false 1 2) 3)"))
    labels = [ins.name for ins in code if isinstance(ins, T.Label)]
    assert len(labels) == len(set(labels))


def test_direct_call():
    assert _entry_code("(fun f (a i32) (b i32) -> i32 a) % (f 1 2)") == [
        T.Push(I32Val(1)), T.Push(I32Val(2)), T.SetFrame(2), T.Push(LabelRef('f')), T.Call()]


def test_indirect_call_peeks_callee_below_arguments():
    assert _entry_code("(fun f (a i32) -> i32 a) % (call (funptr f) 7)") == [
        T.Push(LabelRef('f')), T.Push(I32Val(7)), T.SetFrame(1), T.Peek(2), T.Call(), T.Swap(), T.Pop()]


def test_print_and_spawn():
    assert _entry_code("% (print 1)") == [T.Push(I32Val(1)), T.Print()]
    assert _entry_code("(fun w -> unit tt) % (spawn (funptr w))") == [T.Push(LabelRef('w')), T.Spawn()]


def test_functions_follow_entry_in_definition_order():
    code = compile_program(parse("(fun b -> i32 1) (fun a -> i32 2) % (a)"))
    labels = [ins.name for ins in code if isinstance(ins, T.Label)]
    assert labels == [ENTRY, 'b', 'a']


def test_undefined_variable():
    with pytest.raises(GrumpyNameError) as info:
        compile_program(parse("(fun f (x i32) -> i32 (+ x y)) % (f 1)"))
    assert info.value.name == 'y'
    assert (info.value.meta['line'], info.value.meta['column']) == (1, 28)


def test_variables_do_not_leak_out_of_let():
    with pytest.raises(GrumpyNameError):
        compile_program(parse("% (seq (let x 1 x) x)"))


def test_parameters_are_not_visible_to_other_functions():
    with pytest.raises(GrumpyNameError):
        compile_program(parse("(fun f (x i32) -> i32 x) (fun g -> i32 x) % 0"))


def test_undefined_function():
    with pytest.raises(GrumpyNameError) as info:
        compile_program(parse("% (nope 1)"))
    assert info.value.name == 'nope'
    with pytest.raises(GrumpyNameError):
        compile_program(parse("% (funptr nope)"))


def test_arity_mismatch():
    with pytest.raises(GrumpyArityError) as info:
        compile_program(parse("(fun f (x i32) -> i32 x) % (f 1 2)"))
    exc = info.value
    assert (exc.name, exc.expected, exc.given) == ('f', 1, 2)
