"""
Special `%` commands: configure the kernel from inside a cell.

Handlers are registered by name in COMMANDS. Argument problems raise
DirectiveError, which dispatch() reports on stderr; the rest of the cell
still runs. System errors (e.g. `go` missing) propagate.
"""

import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from notebook_go.declarations import DeclKind
from notebook_go.directives import Directive
from notebook_go.errors import DirectiveError, TrackingError

if TYPE_CHECKING:
    from notebook_go.kernel import ExecutionResult, GoKernel

logger = logging.getLogger(__name__)

# Set to the kernel's current directory, so programs can find notebook files.
DIR_ENV = "NOTEBOOK_GO_DIR"

HELP_MESSAGE = """\
## notebook-go

Cells hold Go code. Functions, types, variables, constants and imports are
memorized and available to the cells that follow. Code after a `%%` line runs
inside `func main()`; a cell may also define `func main()` itself.

### Program

- `%%` or `%main`: start of `main()`. Arguments after it are passed to the program,
  e.g. `%% --name=world`. `flag.Parse()` is called for you.
- `%args <args...>`: set program arguments without starting `main()`.
- `%autoget` / `%noautoget`: run (or not) `go mod tidy` before each build to fetch
  missing modules.

### Environment

- `%env <VAR> [<value>]`: set, or print, an environment variable.
- `%cd [<directory>]`: change (or print) the current directory.

### Memorized declarations

- `%ls` or `%list`: list memorized declarations.
- `%rm <name>...` or `%remove <name>...`: forget declarations; methods are named
  `Type~Method`, imports by their path.
- `%reset`: forget all declarations and re-create `go.mod`.
- `%reset go.mod`: only re-create `go.mod`.

### Tracking and modules

- `%track [<path>...]`: track files or directories for the language server; no
  arguments lists tracked paths.
- `%untrack <path>...`: stop tracking; `<dir>...` untracks everything below `<dir>`.
- `%goworkfix`: add `replace` directives to `go.mod` for the modules in `go.work`.

### Shell

- `!<command>`: run a shell command in the current directory.
- `!*<command>`: run it in the Go workspace directory (where `go.mod` lives).

Lines ending in `\\` continue on the next line.
"""

CommandHandler = Callable[["GoKernel", list[str], "ExecutionResult"], None]

COMMANDS: dict[str, CommandHandler] = {}

_KIND_TITLES = {
    DeclKind.IMPORT: "Imports",
    DeclKind.CONST: "Constants",
    DeclKind.VAR: "Variables",
    DeclKind.TYPE: "Types",
    DeclKind.FUNC: "Functions",
    DeclKind.METHOD: "Methods",
}


def command(*names: str):
    """Register a handler under one or more command names."""
    def register(func: CommandHandler) -> CommandHandler:
        for name in names:
            COMMANDS[name] = func
        return func
    return register


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def dispatch(kernel: "GoKernel", directive: Directive, result: "ExecutionResult") -> None:
    """Run a `%` directive, reporting user errors instead of raising them."""
    handler = COMMANDS.get(directive.name)
    if handler is None:
        kernel.write_stream(result, "stderr", f'"%{directive.name}" unknown or not implemented yet.\n')
        return
    try:
        handler(kernel, directive.args, result)
    except (DirectiveError, TrackingError) as e:
        logger.info("Directive failed: %s", e)
        kernel.write_stream(result, "stderr", f"{e}\n")


@command("%", "main", "args")
def _set_args(kernel: "GoKernel", args: list[str], result: "ExecutionResult") -> None:
    kernel.args = list(args)
    logger.debug("Program args: %r", kernel.args)


@command("env")
def _env(kernel, args, result):
    if len(args) == 2:
        name, value = args
        os.environ[name] = value
        kernel.write_stream(result, "stdout", f"Set: {name}={_quote(value)}\n")
    elif len(args) == 1:
        value = os.environ.get(args[0])
        if value is None:
            kernel.write_stream(result, "stdout", f"{args[0]} is not set\n")
        else:
            kernel.write_stream(result, "stdout", f"{args[0]}={_quote(value)}\n")
    else:
        raise DirectiveError("env", f"`%env <VAR_NAME> [<value>]` takes 1 or 2 arguments, but {len(args)} were given")


@command("cd")
def _cd(kernel, args, result):
    if len(args) > 1:
        raise DirectiveError("cd", f"`%cd [<directory>]` takes none or one argument, but {len(args)} were given")
    if args:
        try:
            os.chdir(Path(args[0]).expanduser())
        except OSError as e:
            raise DirectiveError("cd", f"{_quote(args[0])}: {e.strerror or e}") from e
        cwd = os.getcwd()
        os.environ[DIR_ENV] = cwd
        kernel.write_stream(result, "stdout", f"Changed directory to {_quote(cwd)}\n")
    else:
        kernel.write_stream(result, "stdout", f"Current directory: {_quote(os.getcwd())}\n")


@command("autoget")
def _autoget(kernel, args, result):
    kernel.auto_get = True


@command("noautoget")
def _noautoget(kernel, args, result):
    kernel.auto_get = False


@command("help")
def _help(kernel, args, result):
    kernel.display_markdown(result, HELP_MESSAGE)


@command("reset")
def _reset(kernel, args, result):
    if not args:
        kernel.reset_declarations()
        kernel.reset_manifest()
        kernel.write_stream(result, "stdout", "State reset: all memorized declarations discarded.\n")
    elif args == ["go.mod"]:
        kernel.reset_manifest()
        kernel.write_stream(result, "stdout", "go.mod reset.\n")
    else:
        raise DirectiveError("reset", 'only takes one optional parameter "go.mod"')


@command("ls", "list")
def _list(kernel, args, result):
    grouped = kernel.store.by_kind()
    if not grouped:
        kernel.write_stream(result, "stdout", "No memorized declarations.\n")
        return
    lines = ["Memorized declarations:"]
    for kind, title in _KIND_TITLES.items():
        if kind in grouped:
            lines.append(f"  {title}:")
            lines.extend(f"    {decl.key}" for decl in grouped[kind])
    kernel.write_stream(result, "stdout", "\n".join(lines) + "\n")


@command("rm", "remove")
def _remove(kernel, args, result):
    if not args:
        raise DirectiveError("rm", "takes one or more declaration names, see %ls")
    lines = []
    for name in args:
        removed = kernel.store.remove(name)
        if removed:
            lines.append(f"Removed {removed[0]}")
        else:
            lines.append(f"{name} not found")
    kernel.write_stream(result, "stdout", "\n".join(lines) + "\n")


@command("track")
def _track(kernel, args, result):
    if not args:
        tracked = kernel.tracker.tracked()
        if not tracked:
            kernel.write_stream(result, "stdout", "No paths tracked.\n")
        else:
            listing = "\n".join(f"  {path}" for path in tracked)
            kernel.write_stream(result, "stdout", f"Tracked paths:\n{listing}\n")
        return
    for path in args:
        tracked_path = kernel.tracker.track(path)
        kernel.write_stream(result, "stdout", f"Tracking {_quote(str(tracked_path))}\n")


@command("untrack")
def _untrack(kernel, args, result):
    if not args:
        raise DirectiveError("untrack", "takes one or more paths")
    for path in args:
        for removed in kernel.tracker.untrack(path):
            kernel.write_stream(result, "stdout", f"Untracked {_quote(str(removed))}\n")


@command("goworkfix")
def _goworkfix(kernel, args, result):
    replaced = kernel.toolchain.go_work_fix()
    if not replaced:
        kernel.write_stream(result, "stdout", "Nothing to fix: no modules used in go.work.\n")
        return
    for module, directory in replaced:
        kernel.write_stream(result, "stdout", f"Added replace {module} => {directory}\n")
