"""
CLI interface for notebook-go.
"""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from notebook_go.config import KernelConfig, configure_logging
from notebook_go.errors import KernelSystemError
from notebook_go.kernel import GoKernel
from notebook_go.notebook import NOTEBOOK_SUFFIX, CellType, Notebook
from notebook_go.session import SessionManager
from notebook_go.utils import format_go_source, format_rich_output, get_cell_status, truncate_text

console = Console()

WELCOME_CELL = """\
import "fmt"

func greet(name string) string {
\treturn "Hello, " + name + "!"
}

%%
fmt.Println(greet("notebook-go"))
"""


def _print_live(output: dict) -> None:
    console.print(format_rich_output(output))


def _make_kernel(ctx: click.Context) -> GoKernel:
    config: KernelConfig = ctx.obj["config"]
    kernel = GoKernel(config)
    kernel.on_output = _print_live
    return kernel


def _restore_checkpoint(sm: SessionManager, kernel: GoKernel, notebook_path: Path) -> None:
    info = sm.load_checkpoint(kernel, notebook_path)
    if info is None:
        console.print("[yellow]No saved session for this notebook[/yellow]")
        return
    console.print(f"[green]Restored session with {len(info['restored_declarations'])} declarations[/green]")
    if info["missing_tracked"]:
        console.print(f"  [yellow]Could not track: {', '.join(info['missing_tracked'])}[/yellow]")
    console.print()


@click.group()
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.option("--go", "go_binary", default=None, help="Go command to use")
@click.option("--work-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Go workspace directory (default: a temporary directory)")
@click.pass_context
def main(ctx: click.Context, log_level: Optional[str], go_binary: Optional[str], work_dir: Optional[Path]):
    """notebook-go: Go notebooks with declarations memorized across cells."""
    config = KernelConfig.from_env(log_level=log_level, go_binary=go_binary, work_dir=work_dir)
    configure_logging(config.log_level, RichHandler(console=Console(stderr=True), show_path=False))
    ctx.obj = {"config": config}


@main.command()
@click.argument("path", type=click.Path(), default=f"notebook{NOTEBOOK_SUFFIX}")
@click.option("--name", "-n", default=None, help="Notebook name")
def new(path: str, name: Optional[str]):
    """Create a new notebook."""
    if name is None:
        name = Path(path).stem

    nb = Notebook.new(name=name)
    nb.add_cell(type=CellType.CODE, source=WELCOME_CELL)
    nb.add_cell(type=CellType.MARKDOWN, source="## Notes\n\nAdd your notes here.")
    nb.save(Path(path))

    console.print(Panel(
        f"[green]Created:[/green] {path}\n"
        f"[dim]Name:[/dim] {name}\n"
        f"[dim]Cells:[/dim] 2 (1 code, 1 markdown)",
        title="[bold blue]notebook-go[/bold blue]",
        border_style="green",
    ))
    console.print(f"\n[dim]Run with:[/dim] notebook-go run {path}")


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.option("--save-session", "-s", is_flag=True, help="Save session state after execution")
@click.option("--restore-session", "-r", is_flag=True, help="Restore the session saved by a previous --save-session")
@click.option("--keep-going", "-k", is_flag=True, help="Continue after a failing cell")
@click.pass_context
def run(ctx: click.Context, path: str, save_session: bool, restore_session: bool, keep_going: bool):
    """Run a notebook non-interactively."""
    nb = Notebook.load(Path(path))

    nb_name = nb.metadata.get("name", Path(path).stem)
    console.print(Panel(
        f"[bold]{nb_name}[/bold]  [dim]{path}[/dim]",
        title="[bold blue]notebook-go[/bold blue]",
        border_style="blue",
    ))
    console.print()

    code_cells = [(i, c) for i, c in nb.iter_code_cells() if c.source.strip()]
    if not code_cells:
        console.print("[yellow]No code cells to execute[/yellow]")
        return

    success_count = 0
    try:
        sm = SessionManager(ctx.obj["config"].sessions_dir)
        with _make_kernel(ctx) as kernel:
            if restore_session:
                _restore_checkpoint(sm, kernel, Path(path))

            for cell_idx, cell in code_cells:
                console.print(f"[dim]--- Cell {cell_idx} ---[/dim]")
                console.print(format_go_source(cell.source))

                result = kernel.execute_cell(cell.source)
                cell.apply_result(result)

                if result.success:
                    success_count += 1
                else:
                    console.print(f"[red]Cell {cell_idx} failed ({result.state.value})[/red]")
                    if not keep_going:
                        break
                console.print()

            if save_session:
                sm.save_checkpoint(kernel, Path(path))
                console.print("[dim]Session saved[/dim]")
    except KernelSystemError as e:
        console.print(f"[bold red]{e}[/bold red]")
        sys.exit(2)

    nb.save(Path(path))

    total = len(code_cells)
    if success_count == total:
        console.print(f"[green]All {total} cells executed successfully[/green]")
    else:
        console.print(f"[yellow]Executed {success_count}/{total} cells[/yellow]")
        sys.exit(1)


@main.command(name="exec")
@click.argument("source", type=click.File("r"), default="-")
@click.pass_context
def exec_cell(ctx: click.Context, source):
    """Execute a single cell read from SOURCE (default: stdin)."""
    code = source.read()
    try:
        with _make_kernel(ctx) as kernel:
            result = kernel.execute_cell(code)
    except KernelSystemError as e:
        console.print(f"[bold red]{e}[/bold red]")
        sys.exit(2)
    if not result.success:
        sys.exit(1)


@main.command()
@click.argument("path", type=click.Path(exists=True))
def show(path: str):
    """Show the cells of a notebook with their status."""
    nb = Notebook.load(Path(path))
    table = Table(title=nb.metadata.get("name", Path(path).stem), border_style="blue", show_lines=True)
    table.add_column("#", style="bold cyan", justify="right")
    table.add_column("Type", style="dim")
    table.add_column("Status")
    table.add_column("Source")
    for i, cell in enumerate(nb.cells):
        indicator, style = get_cell_status(cell)
        first_line = cell.source.strip().split("\n", 1)[0] if cell.source.strip() else ""
        table.add_row(str(i), cell.type.value, f"[{style}]{indicator}[/{style}]", truncate_text(first_line, 60))
    console.print(table)


@main.command()
@click.option("--delete", "-d", "delete_name", default=None, metavar="NAME", help="Delete the session NAME")
@click.pass_context
def sessions(ctx: click.Context, delete_name: Optional[str]):
    """List saved sessions, or delete one."""
    sm = SessionManager(ctx.obj["config"].sessions_dir)
    sessions_list = sm.list_sessions()

    if delete_name is not None:
        matches = [s for s in sessions_list if s["name"] == delete_name]
        if not matches or not sm.delete_session(Path(matches[0]["path"])):
            console.print(f"[red]No saved session named {delete_name}[/red]")
            sys.exit(1)
        console.print(f"[green]Deleted session {delete_name}[/green]")
        return

    if not sessions_list:
        console.print("[yellow]No saved sessions found[/yellow]")
        console.print("[dim]Save a session with --save-session when running a notebook[/dim]")
        return

    table = Table(
        title="Saved Sessions",
        border_style="blue",
        show_lines=True,
    )
    table.add_column("#", style="bold cyan", justify="right")
    table.add_column("Name", style="white")
    table.add_column("Kind", style="dim")
    table.add_column("Saved At", style="dim")
    table.add_column("Declarations", justify="right", style="green")

    for i, session in enumerate(sessions_list):
        table.add_row(
            str(i),
            session.get("name", ""),
            session.get("kind", ""),
            session.get("saved_at") or session.get("error", ""),
            str(session.get("declaration_count", 0)),
        )

    console.print(table)


if __name__ == "__main__":
    main()
