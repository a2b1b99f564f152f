## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

from typing import Iterator

import lark
from .errors import GrumpyLexError, GrumpyParseError, GrumpyIncompleteParse


# The rules only exist so that lark keeps every terminal; the parser proper is
# hand-written and consumes the token stream below.
GRAMMAR = r"""start: _token*
_token: LPAREN | RPAREN | PERCENT | ARROW
      | PLUS | MINUS | TIMES | DIVIDE | EQUAL | LESS
      | FUN | LET | SEQ | ALLOC | SET | GET | COND | FUNPTR | CALL | PRINT | SPAWN
      | TRUE | FALSE | TT | NEG | I32 | BOOL | UNIT | ARRAY
      | INT | NAME

// KEYWORDS
FUN: "fun"
LET: "let"
SEQ: "seq"
ALLOC: "alloc"
SET: "set"
GET: "get"
COND: "cond"
FUNPTR: "funptr"
CALL: "call"
PRINT: "print"
SPAWN: "spawn"
TRUE: "true"
FALSE: "false"
TT: "tt"
NEG: "neg"
I32: "i32"
BOOL: "bool"
UNIT: "unit"
ARRAY: "array"

// TOKENS
LPAREN: "("
RPAREN: ")"
PERCENT: "%"
ARROW: "->"
PLUS: "+"
MINUS: "-"
TIMES: "*"
DIVIDE: "/"
EQUAL: "=="
LESS: "<"
INT: /[0-9]+/
NAME: /[A-Za-z][A-Za-z0-9_]*/

// COMMENTS & WHITESPACE
COMMENT: /\/\/[^\n]*/
%import common.WS
%ignore WS
%ignore COMMENT
"""

END = '$END'

KEYWORDS = ('FUN', 'LET', 'SEQ', 'ALLOC', 'SET', 'GET', 'COND', 'FUNPTR', 'CALL', 'PRINT', 'SPAWN',
            'TRUE', 'FALSE', 'TT', 'NEG', 'I32', 'BOOL', 'UNIT', 'ARRAY')

# Human-readable spelling of token types, for diagnostics.
SPELLING = {
    'LPAREN': "'('", 'RPAREN': "')'", 'PERCENT': "'%'", 'ARROW': "'->'",
    'PLUS': "'+'", 'MINUS': "'-'", 'TIMES': "'*'", 'DIVIDE': "'/'", 'EQUAL': "'=='", 'LESS': "'<'",
    'INT': 'integer', 'NAME': 'identifier', END: 'end of input',
    **{k: f"'{k.lower()}'" for k in KEYWORDS},
}

_LEXER = lark.Lark(GRAMMAR, parser='lalr', lexer='basic')


def describe(types) -> str:
    names = [SPELLING.get(t, t) for t in types]
    if len(names) <= 1: return ''.join(names)
    return ', '.join(names[:-1]) + ' or ' + names[-1]


def _end_token(source: str) -> lark.Token:
    line = source.count('\n') + 1
    column = len(source) - (source.rfind('\n') + 1) + 1
    return lark.Token(END, '', start_pos=len(source), line=line, column=column)


def tokenize(source: str, filename: str | None = None) -> Iterator[lark.Token]:
    """Yield the tokens of `source`, finishing with the `$END` sentinel."""
    try:
        yield from _LEXER.lex(source)
    except lark.exceptions.UnexpectedCharacters as exc:
        raise GrumpyLexError(f"Unrecognized character {exc.char!r} at {exc.line}:{exc.column}.",
                             filename=filename, line=exc.line, column=exc.column, char=exc.char) from None
    yield _end_token(source)


class TokenStream:
    """Forward-only cursor over the tokens of one source text, with one token of lookahead."""

    def __init__(self, source: str, filename: str | None = None):
        self.source = source
        self.filename = filename
        self._tokens = tokenize(source, filename)
        self._peeked: lark.Token | None = None

    def __iter__(self):
        while (tok := self.next()).type != END:
            yield tok
        yield tok

    def peek(self) -> lark.Token:
        if self._peeked is None:
            self._peeked = next(self._tokens)
        return self._peeked

    def next(self) -> lark.Token:
        tok = self.peek()
        # The sentinel is sticky, so reading past the end keeps returning it.
        if tok.type != END:
            self._peeked = None
        return tok

    def eat(self, *expected: str) -> lark.Token:
        if (tok := self.peek()).type not in expected:
            self.fail(tok, expected)
        return self.next()

    def fail(self, tok: lark.Token, expected, error_class=None):
        """Raise the diagnostic for `tok` found where one of `expected` was required."""
        found = 'end of input' if tok.type == END else f"`{tok.value}`"
        message = f"Expected {describe(expected)}, found {found} at {tok.line}:{tok.column}."
        if error_class is None:
            error_class = GrumpyIncompleteParse if tok.type == END else GrumpyParseError
        raise error_class(message, filename=self.filename, line=tok.line, column=tok.column,
                          token=tok.value, found=tok.type, expected=expected)

    @property
    def position(self) -> tuple[int, int]:
        tok = self.peek()
        return tok.line, tok.column

    @property
    def rest(self) -> str:
        return self.source[self.peek().start_pos:]
