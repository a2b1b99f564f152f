## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘
#
# grumpy — compiler and virtual machine for a small, fully-parenthesized expression language.
#

import sys
import time
from pathlib import Path
from dataclasses import dataclass

import click

from .errors import (GrumpyError, GrumpyLexError, GrumpyParseError, GrumpyIncompleteParse, GrumpyNameError,
                     GrumpyArityError, GrumpyLinkError, GrumpyRuntimeError)
from .lexer import tokenize
from .parser import parse, parse_functions, format_parse_error_context
from .compiler import compile_program
from .linker import link
from .interpreter import interpret, DEFAULT_QUANTUM
from .formatting import write_without_ansi, format_program, format_tree, format_code, format_value, format_instr, show_stack


@dataclass(frozen=True)
class RuntimeConfig:
    verbose: int
    ignore: bool
    stats: bool
    plain: bool
    max_depth: int | None
    quantum: int


class GrumpyRunner:
    def __init__(self, config: RuntimeConfig):
        self.config = config
        self.verbose = config.verbose
        self.ignore = config.ignore
        self.plain = config.plain

        if self.plain:
            writer = write_without_ansi(sys.stdout.write)
            sys.stdout.write, sys.stderr.write = writer, writer

        self.total_stats = {'steps': 0, 'start': time.time()} if config.stats else None
        self.failure = False
        self.executed_items = 0

    def _maybe_fatal_error(self, message: str, detail: str, exc_type: str = None, context: str = '', is_repl: bool = False) -> None:
        header = detail if not exc_type else f"{detail} (Exception: \033[33m{exc_type}\033[0m)"
        print(f'\033[30;43m {message} \033[0m {header}\n{context}', file=sys.stderr)
        self.failure = True
        if not is_repl and not self.ignore: sys.exit(1)

    def _handle_exception(self, exc: GrumpyError, filename: str, source: str, is_repl: bool = False) -> bool:
        if isinstance(exc, (GrumpyParseError, GrumpyLexError)):
            if is_repl and isinstance(exc, GrumpyIncompleteParse): return True
            context = format_parse_error_context(filename, exc.line, exc.column, exc.token, source=source)
            context += f"\n\033[90m{exc}\033[0m\n"
            self._maybe_fatal_error("SYNTAX ERROR.", f"Parsing `\033[97m{filename}\033[0m` caused a problem!", type(exc).__name__, context, is_repl)
        elif isinstance(exc, (GrumpyNameError, GrumpyArityError, GrumpyLinkError)):
            context = f"\n\033[90m{exc}\033[0m\n"
            if exc.meta:
                context = format_parse_error_context(filename, exc.meta['line'], exc.meta['column'], getattr(exc, 'name', ''), source=source) + context
            self._maybe_fatal_error("COMPILE ERROR.", f"Compiling `\033[97m{filename}\033[0m` failed!", type(exc).__name__, context, is_repl)
        elif isinstance(exc, GrumpyRuntimeError):
            where = f"at \033[1;97m{exc.pc}: {format_instr(exc.instr)}\033[0m" if exc.instr is not None else "in the machine"
            print(f'\033[30;43m RUNTIME ERROR. \033[0m Thread {exc.thread} failed {where} (Exception: \033[33m{type(exc).__name__}\033[0m)', file=sys.stderr)
            print(f'\033[90m{exc}\033[0m', file=sys.stderr)
            print(f'\033[1;33m  Stack content is\033[0;33m\n    ', end='', file=sys.stderr)
            show_stack(exc.stack or [], width=None, file=sys.stderr)
            print('\033[0m', file=sys.stderr)
            self.failure = True
            if not is_repl and not self.ignore: sys.exit(1)
        return False

    def _guard(self, action, source: str, filename: str):
        try:
            return action()
        except GrumpyError as exc:
            self._handle_exception(exc, filename, source)
            return None

    def show_tokens(self, source: str, filename: str) -> None:
        def _print_tokens():
            for tok in tokenize(source, filename):
                print(f"\033[90m{tok.line:>4}:{tok.column:<4}\033[0m {tok.type:<8} {tok.value}")
        self._guard(_print_tokens, source, filename)

    def show_ast(self, source: str, filename: str, tree: bool = False) -> None:
        program = self._guard(lambda: parse(source, filename, max_depth=self.config.max_depth), source, filename)
        if program is None: return
        if not tree:
            print(format_program(program), end='')
            return
        for fn in program.functions:
            params = ' '.join(name for name, _ in fn.params)
            print(f"\033[97mfun {fn.name}\033[0m ({params})")
            print(format_tree(fn.body, indent=2))
        print("\033[97mentry\033[0m")
        print(format_tree(program.entry, indent=2))

    def show_code(self, source: str, filename: str, labels: bool = False) -> None:
        def _compile():
            code = compile_program(parse(source, filename, max_depth=self.config.max_depth))
            return code if labels else link(code)
        if (code := self._guard(_compile, source, filename)) is not None:
            print(format_code(code))

    def execute_script(self, source: str, filename: str, is_repl: bool = False, print_result: bool = True) -> None:
        try:
            code = link(compile_program(parse(source, filename, max_depth=self.config.max_depth)))
            result = interpret(code, verbosity=self.verbose, stats=self.total_stats, quantum=self.config.quantum)
            if print_result:
                print(format_value(result))
        except GrumpyError as exc:
            self._handle_exception(exc, filename, source, is_repl=is_repl)
        else:
            self.executed_items += 1

    def repl(self) -> None:
        if sys.platform != "win32": import readline

        print('grumpy - Expression language REPL; enter `(fun ...)` definitions or expressions, Ctrl+C to exit.')
        definitions, source = [], ""

        while True:
            try:
                prompt = "\033[36m<<< \033[0m" if not source.strip() else "\033[36m... \033[0m"
                line = input(prompt)
                if len(line.strip()) == 0: continue
                if line.strip() in ('quit', 'exit'): break
                source += line + "\n"

                prelude = "".join(d + "\n" for d in definitions)
                text = prelude + source
                try:
                    head = [tok.type for tok, _ in zip(tokenize(source), range(2))]
                    if head == ['LPAREN', 'FUN']:
                        # Running out of input inside a definition keeps reading lines.
                        text = source
                        parse_functions(source, '<REPL>', max_depth=self.config.max_depth)
                        text = prelude + source
                        parse(text + "% tt", '<REPL>', max_depth=self.config.max_depth)
                        definitions.append(source.strip())
                    else:
                        text = prelude + "% " + source
                        code = link(compile_program(parse(text, '<REPL>', max_depth=self.config.max_depth)))
                        result = interpret(code, verbosity=self.verbose, quantum=self.config.quantum)
                        print("\033[90m>>>\033[0m", format_value(result))
                    source = ""
                except GrumpyError as exc:
                    if not self._handle_exception(exc, '<REPL>', text, is_repl=True):
                        source = ""

            except (KeyboardInterrupt, EOFError):
                print(""); break

    def finalize(self) -> int:
        if self.total_stats and self.executed_items > 0:
            elapsed_time = time.time() - self.total_stats['start']
            print(f"\n\033[97m\033[48;5;30m STATISTICS. \033[0m")
            print(f"step\t\033[97m{self.total_stats['steps']:,}\033[0m")
            print(f"thread\t\033[97m{self.total_stats.get('threads', 0):,}\033[0m")
            print(f"heap\t\033[97m{self.total_stats.get('heap', 0):,}\033[0m")
            print(f"time\t\033[97m{elapsed_time:.3f}s\033[0m")
        return 1 if self.failure else 0


SUBCOMMANDS = ('tokens', 'parse', 'compile', 'debug', 'run', 'repl')
VALUE_OPTIONS = ('--max-depth', '--quantum')


@click.group(invoke_without_command=True)
@click.option('--verbose', '-v', default=0, count=True, help='Trace every executed instruction (-vv adds scheduling).')
@click.option('--ignore', '-i', is_flag=True, help='Report errors and continue executing.')
@click.option('--stats', is_flag=True, help='Display execution statistics (e.g., number of steps).')
@click.option('--plain', '-p', is_flag=True, help='Strip ANSI color codes and redirect stderr to stdout.')
@click.option('--max-depth', type=click.IntRange(min=1), envvar='GRUMPY_MAX_DEPTH', default=None, help='Maximum expression nesting accepted by the parser.')
@click.option('--quantum', type=click.IntRange(min=1), default=DEFAULT_QUANTUM, show_default=True, help='Instructions a thread runs before the next one is scheduled.')
@click.pass_context
def cli(ctx: click.Context, verbose: int, ignore: bool, stats: bool, plain: bool, max_depth: int | None, quantum: int) -> None:
    ctx.ensure_object(dict)
    ctx.obj['config'] = RuntimeConfig(verbose=verbose, ignore=ignore, stats=stats, plain=plain, max_depth=max_depth, quantum=quantum)
    if ctx.invoked_subcommand is None:
        ctx.invoke(run_repl)


@cli.command('tokens')
@click.argument('script', type=click.File('r', encoding='utf-8'))
@click.pass_context
def show_tokens(ctx: click.Context, script) -> None:
    runner = GrumpyRunner(ctx.obj['config'])
    runner.show_tokens(script.read(), script.name or '<STDIN>')
    ctx.exit(runner.finalize())


@cli.command('parse')
@click.argument('script', type=click.File('r', encoding='utf-8'))
@click.option('--tree', is_flag=True, help='Print an indented outline instead of canonical source.')
@click.pass_context
def show_ast(ctx: click.Context, script, tree: bool) -> None:
    runner = GrumpyRunner(ctx.obj['config'])
    runner.show_ast(script.read(), script.name or '<STDIN>', tree=tree)
    ctx.exit(runner.finalize())


@cli.command('compile')
@click.argument('script', type=click.File('r', encoding='utf-8'))
@click.option('--labels', is_flag=True, help='Show symbolic labels instead of linked locations.')
@click.pass_context
def show_code(ctx: click.Context, script, labels: bool) -> None:
    runner = GrumpyRunner(ctx.obj['config'])
    runner.show_code(script.read(), script.name or '<STDIN>', labels=labels)
    ctx.exit(runner.finalize())


@cli.command('debug')
@click.argument('script', type=click.File('r', encoding='utf-8'))
@click.pass_context
def debug(ctx: click.Context, script) -> None:
    """Print the tokens, the parsed program and its instructions."""
    runner = GrumpyRunner(ctx.obj['config'])
    source, filename = script.read(), script.name or '<STDIN>'
    print("\033[97mtokens are:\033[0m")
    runner.show_tokens(source, filename)
    print("\n\033[97mprogram is:\033[0m")
    runner.show_ast(source, filename)
    print("\n\033[97minstructions are:\033[0m")
    runner.show_code(source, filename)
    ctx.exit(runner.finalize())


@cli.command('run')
@click.argument('script', type=click.File('r', encoding='utf-8'))
@click.pass_context
def run_file(ctx: click.Context, script) -> None:
    runner = GrumpyRunner(ctx.obj['config'])
    runner.execute_script(script.read(), script.name or '<STDIN>')
    ctx.exit(runner.finalize())


@cli.command('repl')
@click.pass_context
def run_repl(ctx: click.Context) -> None:
    runner = GrumpyRunner(ctx.obj['config'])
    runner.repl()
    ctx.exit(runner.finalize())


def main(argv: list[str] | None = None) -> None:
    a = list(sys.argv[1:] if argv is None else argv)
    if not any(t in SUBCOMMANDS or t == '--help' for t in a):
        opts, pos, tokens = [], [], iter(a)
        for t in tokens:
            if t.startswith('-') and t != '-':
                opts.append(t)
                if t in VALUE_OPTIONS: opts.append(next(tokens, ''))
            else:
                pos.append(t)
        if not pos:
            # No script: read a program from stdin when piped, else start the REPL.
            a = [*opts, 'run', '-'] if not sys.stdin.isatty() else [*opts, 'repl']
        elif len(pos) == 1 and (pos[0] == '-' or Path(pos[0]).exists()):
            a = [*opts, 'run', pos[0]]
    cli.main(args=a, prog_name='grumpy')


if __name__ == "__main__":
    main()
