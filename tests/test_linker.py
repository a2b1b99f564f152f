## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import pytest

from grumpy import types as T
from grumpy.types import I32Val, LocVal, LabelRef
from grumpy.linker import link, resolve_labels
from grumpy.parser import parse
from grumpy.compiler import compile_program
from grumpy.errors import GrumpyLinkError


def test_labels_point_at_next_real_instruction():
    code = [T.Label('a'), T.Push(I32Val(1)), T.Label('b'), T.Label('c'), T.Pop(), T.Label('d')]
    assert resolve_labels(code) == {'a': 0, 'b': 1, 'c': 1, 'd': 2}


def test_link_drops_labels_and_resolves_references():
    code = [T.Push(LabelRef('end')), T.Call(), T.Label('end'), T.Halt()]
    assert link(code) == [T.Push(LocVal(2)), T.Call(), T.Halt()]


def test_link_keeps_other_pushes():
    code = [T.Push(I32Val(4)), T.Halt()]
    assert link(code) == code


def test_backward_references():
    code = [T.Label('top'), T.Push(T.BoolVal(True)), T.Push(LabelRef('top')), T.Branch()]
    assert link(code)[1] == T.Push(LocVal(0))


def test_unknown_label():
    with pytest.raises(GrumpyLinkError) as info:
        link([T.Push(LabelRef('missing')), T.Halt()])
    assert info.value.label == 'missing'


def test_duplicate_label():
    with pytest.raises(GrumpyLinkError) as info:
        link([T.Label('x'), T.Halt(), T.Label('x')])
    assert info.value.label == 'x'


def test_entry_expression_starts_after_prologue():
    code = link(compile_program(parse("% 1")))
    assert code[1] == T.Push(LocVal(4))
    assert not any(isinstance(ins, T.Label) for ins in code)


def test_function_pointers_resolve_to_function_body():
    code = compile_program(parse("(fun f -> i32 5) % (funptr f)"))
    body = resolve_labels(code)['f']
    linked = link(code)
    assert linked[body] == T.Push(I32Val(5))
    assert T.Push(LocVal(body)) in linked
