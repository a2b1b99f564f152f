## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

from contextlib import contextmanager

import lark
from .types import Type, ArrayType, Unop, Binop, TY_I32, TY_BOOL, TY_UNIT, I32_MAX
from .ast import (Expr, IntLit, BoolLit, UnitLit, Var, UnaryOp, BinaryOp, Let, Seq, Alloc, SetIndex,
                  GetIndex, Cond, FunPtr, Call, CallPtr, Print, Spawn, FunctionDef, Program)
from .lexer import TokenStream, END
from .errors import GrumpyParseError, GrumpyUnbalancedParens, GrumpyNestingError, GrumpyDuplicateFunction


MAX_DEPTH = 128

UNOPS = {'NEG': Unop.NEG}
BINOPS = {'PLUS': Binop.ADD, 'MINUS': Binop.SUB, 'TIMES': Binop.MUL,
          'DIVIDE': Binop.DIV, 'EQUAL': Binop.EQ, 'LESS': Binop.LT}
SCALAR_TYPES = {'I32': TY_I32, 'BOOL': TY_BOOL, 'UNIT': TY_UNIT}

# FIRST sets, used both for dispatch and for the `expected` part of diagnostics.
EXP_FIRST = ('INT', 'TRUE', 'FALSE', 'TT', 'NAME', 'LPAREN')
FORM_FIRST = ('NEG', *BINOPS, 'LET', 'SEQ', 'ALLOC', 'SET', 'GET', 'COND', 'FUNPTR', 'CALL', 'PRINT', 'SPAWN', 'NAME')
TY_FIRST = ('I32', 'BOOL', 'UNIT', 'LPAREN')


class Parser:
    """Recursive descent with one token of lookahead; one method per nonterminal."""

    def __init__(self, tokens: TokenStream, max_depth: int | None = None):
        self.tokens = tokens
        self.max_depth = MAX_DEPTH if max_depth is None else max_depth
        self.depth = 0

    def _meta(self, tok: lark.Token) -> dict:
        return {'filename': self.tokens.filename, 'line': tok.line, 'column': tok.column}

    @contextmanager
    def _nested(self, tok: lark.Token):
        self.depth += 1
        try:
            if self.depth > self.max_depth:
                raise GrumpyNestingError(
                    f"Expression nested deeper than {self.max_depth} levels at {tok.line}:{tok.column}.",
                    filename=self.tokens.filename, line=tok.line, column=tok.column, token=tok.value,
                    found=tok.type, expected=())
            yield
        finally:
            self.depth -= 1

    # Programs ────────────────────────────────────────────────────────────────────────────────
    def parse_prog(self) -> Program:
        functions = self.parse_funlist()
        self.tokens.eat('PERCENT')
        entry = self.parse_exp()
        self.parse_end()
        return Program(functions, entry)

    def parse_end(self) -> None:
        tok = self.tokens.peek()
        if tok.type == 'RPAREN':
            self.tokens.fail(tok, (END,), error_class=GrumpyUnbalancedParens)
        if tok.type != END:
            self.tokens.fail(tok, (END,))

    def parse_funlist(self) -> tuple[FunctionDef, ...]:
        functions = []
        while (tok := self.tokens.peek()).type != 'PERCENT':
            if tok.type != 'LPAREN':
                self.tokens.fail(tok, ('LPAREN', 'PERCENT'))
            functions.append(self.parse_fun())

        seen = set()
        for fn in functions:
            if fn.name in seen:
                line, column = fn.meta['line'], fn.meta['column']
                raise GrumpyDuplicateFunction(
                    f"Function `{fn.name}` defined more than once, again at {line}:{column}.",
                    filename=self.tokens.filename, line=line, column=column, token=fn.name,
                    found='NAME', expected=())
            seen.add(fn.name)
        return tuple(functions)

    def parse_fun(self) -> FunctionDef:
        self.tokens.eat('LPAREN')
        self.tokens.eat('FUN')
        name = self.tokens.eat('NAME')
        params = self.parse_paramlist()
        self.tokens.eat('ARROW')
        ret = self.parse_ty()
        body = self.parse_exp()
        self.tokens.eat('RPAREN')
        return FunctionDef(name.value, params, ret, body, meta=self._meta(name))

    def parse_paramlist(self) -> tuple[tuple[str, Type], ...]:
        params = []
        while (tok := self.tokens.peek()).type != 'ARROW':
            if tok.type != 'LPAREN':
                self.tokens.fail(tok, ('LPAREN', 'ARROW'))
            self.tokens.eat('LPAREN')
            name = self.tokens.eat('NAME')
            ty = self.parse_ty()
            self.tokens.eat('RPAREN')
            params.append((name.value, ty))
        return tuple(params)

    def parse_ty(self) -> Type:
        tok = self.tokens.peek()
        if tok.type in SCALAR_TYPES:
            self.tokens.next()
            return SCALAR_TYPES[tok.type]
        if tok.type != 'LPAREN':
            self.tokens.fail(tok, TY_FIRST)
        with self._nested(tok):
            self.tokens.eat('LPAREN')
            self.tokens.eat('ARRAY')
            element = self.parse_ty()
            self.tokens.eat('RPAREN')
        return ArrayType(element)

    # Expressions ─────────────────────────────────────────────────────────────────────────────
    def parse_exp(self) -> Expr:
        tok = self.tokens.peek()
        match tok.type:
            case 'INT':
                self.tokens.next()
                if int(tok.value) > I32_MAX:
                    raise GrumpyParseError(f"Integer literal `{tok.value}` does not fit in i32 at {tok.line}:{tok.column}.",
                                           filename=self.tokens.filename, line=tok.line, column=tok.column,
                                           token=tok.value, found=tok.type, expected=('INT',))
                return IntLit(int(tok.value), meta=self._meta(tok))
            case 'TRUE' | 'FALSE':
                self.tokens.next()
                return BoolLit(tok.type == 'TRUE', meta=self._meta(tok))
            case 'TT':
                self.tokens.next()
                return UnitLit(meta=self._meta(tok))
            case 'NAME':
                self.tokens.next()
                return Var(tok.value, meta=self._meta(tok))
            case 'LPAREN':
                with self._nested(tok):
                    return self.parse_form()
        self.tokens.fail(tok, EXP_FIRST)

    def parse_form(self) -> Expr:
        """Parenthesized expression; owns both of its delimiters."""
        self.tokens.eat('LPAREN')
        head = self.tokens.peek()
        if (parse_body := self._FORMS.get(head.type)) is None:
            self.tokens.fail(head, FORM_FIRST)
        node = parse_body(self, self.tokens.next())
        self.tokens.eat('RPAREN')
        return node

    def parse_explist(self) -> tuple[Expr, ...]:
        args = []
        while (tok := self.tokens.peek()).type != 'RPAREN':
            if tok.type not in EXP_FIRST:
                self.tokens.fail(tok, (*EXP_FIRST, 'RPAREN'))
            args.append(self.parse_exp())
        return tuple(args)

    def parse_name(self) -> str:
        return self.tokens.eat('NAME').value

    # Form bodies: the keyword (or operator) token has been consumed, the closing paren has not.
    def _unary(self, head):
        return UnaryOp(UNOPS[head.type], self.parse_exp(), meta=self._meta(head))

    def _binary(self, head):
        left = self.parse_exp()
        right = self.parse_exp()
        return BinaryOp(BINOPS[head.type], left, right, meta=self._meta(head))

    def _let(self, head):
        name = self.parse_name()
        init = self.parse_exp()
        body = self.parse_exp()
        return Let(name, init, body, meta=self._meta(head))

    def _seq(self, head):
        first = self.parse_exp()
        second = self.parse_exp()
        return Seq(first, second, meta=self._meta(head))

    def _alloc(self, head):
        size = self.parse_exp()
        init = self.parse_exp()
        return Alloc(size, init, meta=self._meta(head))

    def _set(self, head):
        array = self.parse_exp()
        index = self.parse_exp()
        value = self.parse_exp()
        return SetIndex(array, index, value, meta=self._meta(head))

    def _get(self, head):
        array = self.parse_exp()
        index = self.parse_exp()
        return GetIndex(array, index, meta=self._meta(head))

    def _cond(self, head):
        test = self.parse_exp()
        then = self.parse_exp()
        orelse = self.parse_exp()
        return Cond(test, then, orelse, meta=self._meta(head))

    def _funptr(self, head):
        return FunPtr(self.parse_name(), meta=self._meta(head))

    def _call_ptr(self, head):
        callee = self.parse_exp()
        return CallPtr(callee, self.parse_explist(), meta=self._meta(head))

    def _call(self, head):
        return Call(head.value, self.parse_explist(), meta=self._meta(head))

    def _print(self, head):
        return Print(self.parse_exp(), meta=self._meta(head))

    def _spawn(self, head):
        return Spawn(self.parse_exp(), meta=self._meta(head))

    _FORMS = {
        'NEG': _unary, **dict.fromkeys(BINOPS, _binary),
        'LET': _let, 'SEQ': _seq, 'ALLOC': _alloc, 'SET': _set, 'GET': _get, 'COND': _cond,
        'FUNPTR': _funptr, 'CALL': _call_ptr, 'PRINT': _print, 'SPAWN': _spawn, 'NAME': _call,
    }


def _guarded(parser: Parser, rule):
    try:
        return rule()
    except RecursionError:
        tok = parser.tokens.peek()
        raise GrumpyNestingError(
            f"Expression nested too deeply to parse at {tok.line}:{tok.column}.",
            filename=parser.tokens.filename, line=tok.line, column=tok.column, token=tok.value,
            found=tok.type, expected=()) from None


def parse(source: str, filename: str | None = None, max_depth: int | None = None) -> Program:
    """Parse a whole program: function definitions, `%`, then the entry expression."""
    parser = Parser(TokenStream(source, filename), max_depth=max_depth)
    return _guarded(parser, parser.parse_prog)


def parse_expression(source: str, filename: str | None = None, max_depth: int | None = None) -> Expr:
    parser = Parser(TokenStream(source, filename), max_depth=max_depth)

    def _expression():
        expr = parser.parse_exp()
        parser.parse_end()
        return expr
    return _guarded(parser, _expression)


def parse_functions(source: str, filename: str | None = None, max_depth: int | None = None) -> tuple[FunctionDef, ...]:
    """Parse function definitions only, up to the end of input; no `%` or entry expression."""
    parser = Parser(TokenStream(source, filename), max_depth=max_depth)

    def _functions():
        functions = []
        while parser.tokens.peek().type != END:
            functions.append(parser.parse_fun())
        return tuple(functions)
    return _guarded(parser, _functions)


def format_parse_error_context(filename, line, column, token_value, source=None):
    lines = source.splitlines(keepends=True) if source is not None else open(filename, 'r').readlines()
    start_line, end_line = max(0, line - 3), min(len(lines), line + 2)
    result = [f"\033[97m  File \"{filename}\", line {line}\033[0m"]

    for i in range(start_line, end_line):
        line_content = lines[i].rstrip('\n')
        line_color = '\033[90m'
        if i+1 == line:
            line_color = '\033[97m'
            width = max(1, len(token_value or ''))
            if column > 0 and column <= len(line_content):
                line_content = (
                    line_content[:column-1] +
                    f"\033[48;5;30m\033[1;97m{line_content[column-1:column+width-1]}\033[0m" +
                    line_content[column+width-1:]
                )
        result.append(f"{line_color}{i+1:>5} |\033[0m {line_content}")
    return '\n' + '\n'.join(result) + '\n'
