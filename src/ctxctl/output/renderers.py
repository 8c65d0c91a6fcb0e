"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO). The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json as _json
from typing import TYPE_CHECKING, Any

from rich.markup import escape
from rich.table import Table
from rich.text import Text

from ctxctl.output.console import create_console, get_output, style_for_scope

if TYPE_CHECKING:
    from rich.console import Console

    from ctxctl.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode.

    A resolved bundle prints as plain ``key: value`` fact lines followed
    by ``- text`` memory lines, ready to paste into a prompt.
    """
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"

    d = result.data
    if result.op == "resolve":
        lines = [f"{fact['key']}: {fact['value']}" for fact in d.get("facts", [])]
        lines.extend(f"- {record['text']}" for record in d.get("memory", []))
        return "\n".join(lines)
    if result.op == "match":
        return "\n".join(item["pattern"] for item in d.get("items", []))
    if result.op == "list_layers":
        return "\n".join(f"{item['scope']}:{item['key']}" for item in d.get("items", []))
    if result.op == "check":
        return f"{d.get('error_count', 0)} errors, {d.get('warning_count', 0)} warnings"

    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK status line."""
    console.print(Text.assemble(("OK", "ctx.ok"), (f"  {result.op}", "ctx.op")))


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="ctx.key")
    if key.endswith("_id") or key.endswith("_hash"):
        v = Text(str(value), style="ctx.id")
    elif key in ("path", "source"):
        v = Text(str(value), style="ctx.path")
    else:
        v = Text(str(value))
    console.print(Text.assemble(k, v))


def _scope_text(scope: str) -> Text:
    return Text(scope, style=style_for_scope(scope))


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including telemetry span tree (verbose only)."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))

    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(
    console: Console,
    span_data: dict[str, Any],
    indent: int = 4,
) -> None:
    """Render a hierarchical span tree with color-coded timing."""
    prefix = " " * indent
    name = span_data.get("name", "?")
    duration = span_data.get("duration_ms", 0.0)

    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"

    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {name}"

    extras: list[str] = []
    if span_data.get("tokens") is not None:
        extras.append(f"tokens={span_data['tokens']}")
    for ak, av in span_data.get("annotations", {}).items():
        extras.append(f"{ak}={av}")
    if extras:
        line += f"  ({', '.join(extras)})"

    console.print(line)

    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    console.print(Text.assemble(("ERROR", "ctx.error"), (f"  {result.op}", "ctx.op"), " — ", msg))

    if err and err.code:
        console.print(Text(f"  code: {err.code}", style="dim"))
    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(Text(f"    {k}: {v}"))


# ── Resolve renderer ──────────────────────────────────────────────────


def _chain_table(chain: list[dict[str, Any]], *, verbose: bool = False) -> Table:
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Scope", no_wrap=True)
    table.add_column("Key", style="ctx.id")
    table.add_column("Tokens", justify="right")
    table.add_column("Entries", justify="right")
    table.add_column("Trimmed", justify="right")
    table.add_column("Archived", justify="right")
    if verbose:
        table.add_column("Source", style="ctx.path")

    for link in chain:
        key = Text(link["key"], style="ctx.omitted" if link["omitted"] else "ctx.id")
        if link["omitted"]:
            key.append(" (omitted)", style="dim")
        row: list[Any] = [
            _scope_text(link["scope"]),
            key,
            str(link["tokens"]),
            str(link["entries"]),
            str(link["trimmed"]),
            str(link["archived"]),
        ]
        if verbose:
            row.append(Text(link["source"]))
        table.add_row(*row)
    return table


def _facts_table(facts: list[dict[str, Any]]) -> Table:
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Key", style="ctx.key", no_wrap=True)
    table.add_column("Value", style="ctx.value")
    table.add_column("From")
    for fact in facts:
        table.add_row(
            Text(fact["key"]),
            Text(fact["value"]),
            Text(fact["layer"], style=style_for_scope(fact["scope"])),
        )
    return table


def _render_resolve(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render a resolved bundle: token usage, chain, facts, and memory."""
    _status_line(console, result)
    d = result.data
    _field(console, "total_tokens", d["total_tokens"])
    _field(console, "budget", d["budget"])
    _field(console, "remaining", d["remaining"])
    _field(console, "pressure", d["pressure"])
    if verbose:
        _field(console, "snapshot_id", d["snapshot_id"])
        _field(console, "request_signature", d["request_signature"])

    console.print()
    console.print(_chain_table(d.get("chain", []), verbose=verbose))

    facts = d.get("facts", [])
    if facts:
        console.print()
        console.print(_facts_table(facts))
        if verbose:
            for fact in facts:
                for old in fact.get("superseded", []):
                    line = (
                        f"  {fact['key']}: {old['value']!r} from {old['layer']} "
                        f"overridden by {old['superseded_by']}"
                    )
                    console.print(Text(line, style="dim"))

    memory = d.get("memory", [])
    if memory:
        console.print()
        console.print(Text(f"  memory ({len(memory)}):", style="ctx.key"))
        for record in memory:
            pin = " [ctx.warning]pinned[/ctx.warning]" if record.get("pinned") else ""
            text, layer = escape(record["text"]), escape(record["layer"])
            console.print(f"    - {text}  [dim]{layer}[/dim]{pin}")

    if d.get("archived_count"):
        console.print(f"\n  {d['archived_count']} memory entries archived")
    if verbose:
        _render_meta(console, result)


# ── Inspection renderers ──────────────────────────────────────────────


def _render_match(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render ranked path matches."""
    d = result.data
    items = d.get("items", [])
    if not items:
        path = escape(d.get("path", ""))
        console.print(f"No path layers match [ctx.path]{path}[/ctx.path]")
        return

    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("#", justify="right")
    table.add_column("Pattern", style="ctx.id")
    table.add_column("Literal Segments", justify="right")
    table.add_column("Literal Prefix", justify="right")
    table.add_column("Source", style="ctx.path")
    for item in items:
        table.add_row(
            str(item["rank"]),
            Text(item["pattern"]),
            str(item["literal_segments"]),
            str(item["literal_prefix"]),
            Text(item["source"]),
        )
    console.print(table)
    console.print(f"\n{d.get('count', len(items))} patterns match {escape(d.get('path', ''))}")
    if verbose:
        _render_meta(console, result)


def _render_layers(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render the layer listing as a table."""
    items = result.data.get("items", [])
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Scope", no_wrap=True)
    table.add_column("Key", style="ctx.id")
    table.add_column("Entries", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Pinned")
    table.add_column("Source", style="ctx.path")
    if verbose:
        table.add_column("Modified", style="dim")

    for item in items:
        row: list[Any] = [
            _scope_text(item["scope"]),
            Text(item["key"]),
            str(item["entries"]),
            str(item["tokens"]),
            "yes" if item["pinned"] else "",
            Text(item["source"]),
        ]
        if verbose:
            row.append(item["modified"])
        table.add_row(*row)

    console.print(table)
    console.print(f"\n{result.data.get('count', len(items))} layers")


def _render_check(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render check results with issues grouped by category."""
    issues = result.data.get("issues", [])
    count = result.data.get("count", len(issues))

    if count == 0:
        layers = result.data.get("layers", 0)
        console.print(f"[ctx.ok]OK[/ctx.ok]  No issues found in {layers} layers.")
        return

    severity_styles = {"error": "ctx.error", "warning": "ctx.warning"}

    by_category: dict[str, list[dict[str, Any]]] = {}
    for issue in issues:
        cat = str(issue.get("category", "unknown"))
        by_category.setdefault(cat, []).append(issue)

    for cat, cat_issues in by_category.items():
        console.print(f"\n[bold]{cat}[/bold]")
        for issue in cat_issues:
            sev = str(issue.get("severity", "warning"))
            style = severity_styles.get(sev, "")
            prefix = f"[{style}]{sev}[/{style}]" if style else sev
            source = issue.get("source")
            where = f" {escape('[' + source + ']')}" if source and verbose else ""
            message = escape(str(issue.get("message", "")))
            console.print(f"  {prefix}{where}: {message}")

    errors = result.data.get("error_count", 0)
    warnings = result.data.get("warning_count", count - errors)
    console.print(f"\n{errors} errors, {warnings} warnings")


def _render_reload(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render a snapshot reload."""
    _status_line(console, result)
    d = result.data
    for key in ("snapshot_id", "layers", "skipped", "source"):
        _field(console, key, d[key])
    if verbose:
        _field(console, "snapshot_hash", d["snapshot_hash"])
        _render_meta(console, result)


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        if isinstance(value, (dict, list)):
            _field(console, key, _json.dumps(value, separators=(",", ":")))
        else:
            _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    "resolve": _render_resolve,
    "match": _render_match,
    "list_layers": _render_layers,
    "check": _render_check,
    "reload": _render_reload,
}
