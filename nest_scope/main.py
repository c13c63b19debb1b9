"""nest-scope CLI - module-scoped definitions and usages for NestJS projects."""
import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .analyzer.models import Position, SymbolDefinition, UsageLocation
from .analyzer.nest_analyzer import NestAnalyzer, normalize_path
from .analyzer.file_watcher import FileWatcher
from .analyzer.workspace import TextDocument
from .config import Config, __version__
from .utils.safe_console import SafeConsole

app = typer.Typer(
    name="nest-scope",
    help="Module-scoped definitions and usages for NestJS TypeScript projects",
    add_completion=False,
)
console = SafeConsole()

# Words that never get a hover card
KEYWORDS = frozenset({
    'if', 'else', 'for', 'while', 'return', 'const', 'let', 'var', 'function',
    'class', 'import', 'export', 'from', 'async', 'await', 'true', 'false',
    'null', 'undefined', 'this', 'new', 'throw', 'try', 'catch', 'finally',
    'typeof', 'instanceof',
})

PREVIEW_WIDTH = 60


def _relative(path: str, root: Path) -> str:
    try:
        return str(Path(path).relative_to(root))
    except ValueError:
        return path


def _truncate(preview: str, width: int = PREVIEW_WIDTH) -> str:
    if len(preview) > width:
        return preview[:width - 3] + '...'
    return preview


def _load(path: Path) -> tuple:
    """Config and analyzer for the workspace containing `path`."""
    root = find_workspace_root(path if path.is_dir() else path.parent)
    config = Config(root)
    return config, NestAnalyzer.from_config(root, config)


def find_workspace_root(start: Path) -> Path:
    """Nearest ancestor holding package.json or tsconfig.json, else `start`."""
    start = start.resolve()
    for candidate in (start, *start.parents):
        if (candidate / 'package.json').is_file() or (candidate / 'tsconfig.json').is_file():
            return candidate
    return start


def hover_lines(
    symbol_name: str,
    definition: Optional[SymbolDefinition],
    usages: List[UsageLocation],
    module_name: Optional[str],
    max_inline: int,
    root: Path,
) -> List[str]:
    """Rich-markup lines of a hover card."""
    lines = []
    if definition is not None:
        kind = definition.kind
        header = f"{kind.icon} [bold]{escape(symbol_name)}[/bold]  [italic]{kind.label}[/italic]"
        if definition.container_name:
            header += f" in [cyan]{escape(definition.container_name)}[/cyan]"
        lines.append(header)
        def_line = definition.range.start.line + 1
        lines.append(f"Definition: {escape(_relative(definition.file_path, root))}:{def_line}")
        lines.append("")

    if not usages:
        lines.append("[dim]No usages found in current module scope[/dim]")
        return lines

    if module_name:
        lines.append(f"Module: [magenta]{escape(module_name)}[/magenta]")
    lines.append(f"Usages ({len(usages)}):")
    for usage in usages[:max_inline]:
        location = f"{_relative(usage.file_path, root)}:{usage.line + 1}"
        lines.append(f"  • {escape(location)} — [dim]{escape(_truncate(usage.preview))}[/dim]")
    if len(usages) > max_inline:
        lines.append(f"📋 Show all {len(usages)} usages with: nest-scope usages --all")
    return lines


def _usage_table(usages: List[UsageLocation], root: Path) -> Table:
    table = Table(title=f"{len(usages)} usage(s)", show_lines=False)
    table.add_column(console.safe("📄 File"), style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Module", style="magenta")
    table.add_column("Preview")
    for usage in usages:
        table.add_row(
            escape(_relative(usage.file_path, root)),
            str(usage.line + 1),
            escape(usage.module_name or "-"),
            escape(_truncate(usage.preview, 80)),
        )
    return table


@app.command()
def version():
    """Show version."""
    console.print(f"nest-scope {__version__}")


@app.command()
def modules(
    path: Path = typer.Argument(Path("."), help="Workspace directory", exists=True, file_okay=False),
):
    """📦 List modules and the modules that can see them."""
    _, analyzer = _load(path)
    with console.status("Building module graph..."):
        asyncio.run(analyzer.initialize())
    graph = analyzer.graph
    root = Path(analyzer.workspace.root)

    table = Table(title=f"{len(graph)} module(s)")
    table.add_column("Module", style="bold magenta")
    table.add_column("File", style="cyan")
    table.add_column("Imports")
    table.add_column("Imported by")
    table.add_column("Providers")
    for name in sorted(graph):
        node = graph[name]
        table.add_row(
            escape(name),
            escape(_relative(node.module.file_path, root)),
            escape(", ".join(sorted(node.imports)) or "-"),
            escape(", ".join(sorted(node.imported_by)) or "-"),
            escape(", ".join(node.module.providers) or "-"),
        )
    console.print(table)


@app.command()
def definition(
    file: Path = typer.Argument(..., help="TypeScript file", exists=True, dir_okay=False),
    line: int = typer.Argument(..., min=1, help="1-based line"),
    col: int = typer.Argument(..., min=1, help="1-based column"),
):
    """🔍 Show where the symbol under the cursor is declared."""
    _, analyzer = _load(file)
    result = asyncio.run(analyzer.find_definition(file, line - 1, col - 1))
    if result is None:
        console.print("[yellow]No definition found[/yellow]")
        raise typer.Exit(1)

    root = Path(analyzer.workspace.root)
    location = f"{_relative(result.file_path, root)}:{result.range.start.line + 1}"
    container = f" in {escape(result.container_name)}" if result.container_name else ""
    console.print(
        f"{result.kind.icon} [bold]{escape(result.name)}[/bold] "
        f"[italic]{result.kind.label}[/italic]{container} → [cyan]{escape(location)}[/cyan]"
    )


@app.command()
def usages(
    file: Path = typer.Argument(..., help="TypeScript file", exists=True, dir_okay=False),
    line: int = typer.Argument(..., min=1, help="1-based line"),
    col: int = typer.Argument(..., min=1, help="1-based column"),
    scoping: Optional[bool] = typer.Option(None, "--scoping/--no-scoping", help="Override module scoping"),
    show_all: bool = typer.Option(False, "--all", help="List every usage"),
):
    """🔍 List usages of the symbol under the cursor."""
    config, analyzer = _load(file)
    if scoping is not None:
        analyzer.enable_module_scoping = scoping

    found = asyncio.run(analyzer.find_usages(file, line - 1, col - 1))
    root = Path(analyzer.workspace.root)
    if not found:
        console.print("[dim]No usages found in current module scope[/dim]")
        return

    shown = found if show_all else found[:config.max_inline_usages]
    console.print(_usage_table(shown, root))
    if len(shown) < len(found):
        console.print(f"[dim]{len(found) - len(shown)} more; use --all to list every usage[/dim]")


@app.command()
def hover(
    file: Path = typer.Argument(..., help="TypeScript file", exists=True, dir_okay=False),
    line: int = typer.Argument(..., min=1, help="1-based line"),
    col: int = typer.Argument(..., min=1, help="1-based column"),
):
    """Show the hover card for the symbol under the cursor."""
    config, analyzer = _load(file)
    path = normalize_path(file)
    document = TextDocument(path, Path(path).read_text(encoding='utf-8'))
    word_range = document.word_range_at(Position(line - 1, col - 1))
    symbol_name = document.get_text(word_range) if word_range else ""
    if len(symbol_name) < 2 or symbol_name in KEYWORDS:
        raise typer.Exit(0)

    async def collect():
        found_definition = await analyzer.find_definition(path, line - 1, col - 1)
        found_usages = await analyzer.find_usages(path, line - 1, col - 1)
        return found_definition, found_usages

    found_definition, found_usages = asyncio.run(collect())
    lines = hover_lines(
        symbol_name,
        found_definition,
        found_usages,
        analyzer.get_module_for_file(path),
        config.max_inline_usages,
        Path(analyzer.workspace.root),
    )
    console.print(Panel(console.safe("\n".join(lines)), title=escape(symbol_name), expand=False))


@app.command()
def watch(
    path: Path = typer.Argument(Path("."), help="Workspace directory", exists=True, file_okay=False),
):
    """👀 Watch the workspace and apply invalidations as files change."""
    try:
        from watchdog.events import FileSystemEventHandler
        from watchdog.observers import Observer
    except ImportError:
        console.print("[red]✗[/red] watchdog is not installed.")
        raise typer.Exit(1)

    config, analyzer = _load(path)
    analyzer.log.verbose = True
    root = Path(analyzer.workspace.root)

    async def run():
        await analyzer.initialize()
        watcher = FileWatcher(analyzer, debounce_seconds=config.debounce_ms / 1000)
        loop = asyncio.get_running_loop()

        class WatchdogAdapter(FileSystemEventHandler):
            """Forward watchdog events onto the event loop."""

            def _forward(self, src_path, kind):
                loop.call_soon_threadsafe(watcher.notify, str(src_path), kind)

            def on_created(self, event):
                if not event.is_directory:
                    self._forward(event.src_path, 'created')

            def on_modified(self, event):
                if not event.is_directory:
                    self._forward(event.src_path, 'changed')

            def on_deleted(self, event):
                if not event.is_directory:
                    self._forward(event.src_path, 'deleted')

            def on_moved(self, event):
                if not event.is_directory:
                    self._forward(event.src_path, 'deleted')
                    self._forward(event.dest_path, 'created')

        observer = Observer()
        observer.schedule(WatchdogAdapter(), str(root), recursive=True)
        observer.start()
        console.print(f"\n[bold green]👀 Watching[/bold green] [cyan]{escape(str(root))}[/cyan]")
        console.print(f"[dim]  Modules:   {len(analyzer.graph)}")
        console.print(f"  Debounce:  {config.debounce_ms}ms")
        console.print("  Press Ctrl+C to stop[/dim]\n")
        try:
            while True:
                await asyncio.sleep(1)
        finally:
            observer.stop()
            observer.join()
            watcher.dispose()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


if __name__ == "__main__":
    app()
