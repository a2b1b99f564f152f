## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import lark


class GrumpyError(Exception):
    def __init__(self, message: str = "", *, meta=None):
        """Base class for all errors raised by the toolchain."""
        super().__init__(message)
        self.meta: dict = meta


class GrumpyLexError(GrumpyError):
    def __init__(self, message, *, filename=None, line=None, column=None, char=None):
        super().__init__(message)
        self.filename = filename
        self.line = line
        self.column = column
        self.token = char or ''

class GrumpyParseError(GrumpyError):
    """Token found where the grammar expected one of `expected`."""
    def __init__(self, message, *, filename=None, line=None, column=None, token=None, found=None, expected=()):
        super().__init__(message)
        self.filename = filename
        self.line = line
        self.column = column
        self.token = token
        self.found = found
        self.expected = tuple(expected)

class GrumpyIncompleteParse(GrumpyParseError, lark.exceptions.ParseError):
    def __init__(self, message, *, filename=None, line=None, column=None, token=None, found=None, expected=()):
        super().__init__(message, filename=filename, line=line, column=column, token=token, found=found, expected=expected)

class GrumpyUnbalancedParens(GrumpyParseError):
    pass

class GrumpyNestingError(GrumpyParseError):
    pass

class GrumpyDuplicateFunction(GrumpyParseError):
    pass


class GrumpyNameError(GrumpyError, NameError):
    def __init__(self, message, *, name=None, meta=None):
        super().__init__(message, meta=meta)
        self.name = name

class GrumpyArityError(GrumpyError, TypeError):
    def __init__(self, message, *, name=None, expected=None, given=None, meta=None):
        super().__init__(message, meta=meta)
        self.name = name
        self.expected = expected
        self.given = given

class GrumpyLinkError(GrumpyError):
    def __init__(self, message, *, label=None):
        super().__init__(message)
        self.label = label


class GrumpyRuntimeError(GrumpyError, RuntimeError):
    """Fault raised by the virtual machine while executing an instruction."""
    def __init__(self, message: str = "", *, pc=None, instr=None, stack=None, thread=None):
        super().__init__(message)
        self.pc = pc
        self.instr = instr
        self.stack = stack
        self.thread = thread

class GrumpyStackError(GrumpyRuntimeError):
    pass
