"""Output formatting for the papertray CLI.

Every public function takes a ``json_mode`` flag:
    - ``True``  -> a ``{status, data, error}`` JSON envelope for scripts
    - ``False`` -> Rich panels and tables for humans
"""

from __future__ import annotations

import json
from io import StringIO
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

_STATUS_STYLES = {"Ready": "green", "Disabled": "yellow"}


def _render_to_string(renderable: Any) -> str:
    """Render a Rich object to a string (with ANSI codes)."""
    buf = StringIO()
    console = Console(file=buf, force_terminal=True, width=100)
    console.print(renderable)
    return buf.getvalue().rstrip("\n")


def _key_value_table(data: dict[str, Any]) -> Table:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold cyan", no_wrap=True)
    table.add_column("Value")
    for key, value in data.items():
        # Text() keeps brackets in values from being read as markup.
        table.add_row(key, Text("" if value is None else str(value)))
    return table


def format_response(
    status: str,
    data: dict[str, Any] | None = None,
    error: dict[str, Any] | None = None,
    *,
    json_mode: bool = False,
) -> str:
    if json_mode:
        envelope: dict[str, Any] = {"status": status}
        if data is not None:
            envelope["data"] = data
        if error is not None:
            envelope["error"] = error
        return json.dumps(envelope, indent=2)

    if status == "error" and error:
        text = Text()
        text.append("Error", style="bold red")
        text.append(f" [{error.get('code', 'ERROR')}]: ", style="red")
        text.append(error.get("message", "An unknown error occurred."))
        return _render_to_string(Panel(text, title="Error", border_style="red"))
    if not data:
        return f"Status: {status}"
    return _render_to_string(Panel(_key_value_table(data), title="Response", border_style="green"))


def format_error(message: str, code: str = "ERROR", *, json_mode: bool = False) -> str:
    return format_response("error", error={"code": code, "message": message}, json_mode=json_mode)


def format_devices(devices: list[dict[str, Any]], *, json_mode: bool = False) -> str:
    """Format the printers reported by the print backend."""
    if json_mode:
        return json.dumps({"status": "success", "data": {"printers": devices, "count": len(devices)}}, indent=2)

    if not devices:
        msg = Text("No printers found.  Check that CUPS is running ('lpstat -p').")
        return _render_to_string(Panel(msg, title="Printers", border_style="yellow"))

    table = Table(title="Printers", border_style="blue")
    table.add_column("Name", style="bold")
    table.add_column("Status")
    for device in devices:
        status = device["status"]
        table.add_row(Text(device["name"]), Text(status, style=_STATUS_STYLES.get(status, "red")))
    return _render_to_string(table)


def format_config(config: dict[str, Any], source: str, *, json_mode: bool = False) -> str:
    if json_mode:
        return format_response("success", {"config": config, "source": source}, json_mode=True)
    # The source line stays outside the panel so long paths are never wrapped.
    panel = Panel(_key_value_table(config), title="Configuration", border_style="blue")
    return f"# effective configuration (file: {source})\n{_render_to_string(panel)}"
