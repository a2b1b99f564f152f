## grumpy — Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

from . import ast, types
from .errors import *
from .lexer import TokenStream, tokenize
from .parser import parse, parse_expression, parse_functions
from .compiler import compile_program, compile_expression
from .linker import link
from .interpreter import interpret
from .runner import build, execute
from .formatting import format_expr, format_program, format_code, format_value
