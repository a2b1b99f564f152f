## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘
#
# grumpy — compiler and virtual machine for a small, fully-parenthesized expression language.
#

from .types import Value, Instr
from .parser import parse
from .compiler import compile_program
from .linker import link
from .interpreter import interpret, DEFAULT_QUANTUM


def build(source: str, filename=None, max_depth=None) -> list[Instr]:
    """Parse, compile and link `source` into bytecode ready for `interpret`."""
    program = parse(source, filename=filename, max_depth=max_depth)
    return link(compile_program(program))


def execute(source: str, filename=None, verbosity=0, stats=None, out=None,
            max_depth=None, quantum=DEFAULT_QUANTUM) -> Value:
    code = build(source, filename=filename, max_depth=max_depth)
    return interpret(code, verbosity=verbosity, stats=stats, out=out, quantum=quantum)
