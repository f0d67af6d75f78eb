"""
Utility functions for notebook-go.
"""

from typing import Any

from rich.markdown import Markdown
from rich.syntax import Syntax
from rich.text import Text


def format_rich_output(output: dict[str, Any]):
    """
    Format an output dictionary as a Rich renderable.

    Args:
        output: Output dictionary from ExecutionResult

    Returns:
        Rich renderable object for console display
    """
    output_type = output.get("type", "")

    if output_type == "stream":
        text = output.get("text", "")
        name = output.get("name", "stdout")
        if name == "stderr":
            return Text(text.rstrip("\n"), style="yellow")
        return Text(text.rstrip("\n"))

    elif output_type == "error":
        ename = output.get("ename", "Error")
        evalue = output.get("evalue", "")
        traceback_lines = output.get("traceback", [])

        error_text = Text()
        error_text.append(f"{ename}", style="bold red")
        error_text.append(f": {evalue}", style="red")
        # Build errors repeat the report in full; only show it when it adds lines.
        if traceback_lines and "\n".join(traceback_lines).strip() != evalue.strip():
            for tb_line in traceback_lines:
                if isinstance(tb_line, str):
                    error_text.append(f"\n{tb_line}", style="dim red")
        return error_text

    elif output_type == "display_data":
        data = output.get("data", {})
        if "text/markdown" in data:
            return Markdown(data["text/markdown"])
        return Text(data.get("text/plain", str(data)), style="cyan")

    return Text(str(output), style="dim")


def format_go_source(source: str, line_numbers: bool = True) -> Syntax:
    """Go source (a cell or a generated main.go) with syntax highlighting."""
    return Syntax(source, "go", theme="monokai", line_numbers=line_numbers)


def get_cell_status(cell) -> tuple[str, str]:
    """
    Get status indicator and style for a cell.

    Returns:
        Tuple of (indicator_string, rich_style)
    """
    if cell.outputs:
        has_error = any(o.get("type") == "error" for o in cell.outputs)
        if has_error:
            return ("err", "red")
        return ("ok", "green")
    elif cell.execution_count is not None:
        return ("ok", "green")
    return ("--", "dim")


def truncate_text(text: str, max_length: int = 100) -> str:
    """Truncate text to max_length, adding ellipsis if needed."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
