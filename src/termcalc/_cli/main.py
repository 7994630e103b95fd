import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from termcalc._document import Document
from termcalc._eval_engine import calculate_document, validate_document
from termcalc._io import export_results_to_toml

from .config import ConfigError, ModuleSource, TermcalcConfig, get_config
from .discover import load_document, source_from_argument

app = typer.Typer()

logger = logging.getLogger(__name__)
# Console for stderr (info/errors)
err_console = Console(stderr=True)
# Console for stdout (results)
out_console = Console()

PathArgument = Annotated[
    str | None,
    typer.Argument(help="Path to Python script or module path (e.g., examples.demo:document)"),
]
DocumentOption = Annotated[
    str | None,
    typer.Option("--document", help="Name of the document variable (for script paths only)"),
]


@app.callback()
def callback(
    *,
    verbose: bool = typer.Option(default=False, help="Enable verbose output"),
) -> None:
    """Termcalc CLI."""
    log_level = logging.DEBUG if verbose else logging.INFO

    # Configure rich logging handler to output to stderr
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=err_console,
                show_time=False,
                show_path=verbose,
                rich_tracebacks=True,
            ),
        ],
    )


def _load_config() -> TermcalcConfig:
    try:
        return get_config()
    except ConfigError as e:
        err_console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from e


def _load_document(path: str | None, document_var: str | None, config: TermcalcConfig) -> Document:
    if path is not None:
        source = source_from_argument(path, document_var)
    elif config.document is not None:
        source = config.document
    else:
        err_console.print("[red]No document given. Pass a path or set \\[tool.termcalc].document.[/red]")
        raise typer.Exit(code=1)

    label = source.module_path if isinstance(source, ModuleSource) else str(source.script)
    err_console.print(f"[cyan]Loading document from:[/cyan] {escape(label)}")
    document = load_document(source)
    err_console.print(f"[cyan]Document:[/cyan] [bold]{escape(document.name)}[/bold]")
    err_console.print()
    return document


@app.command()
def calc(  # noqa: PLR0913
    path: PathArgument = None,
    *,
    document_var: DocumentOption = None,
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Path to output TOML file"),
    ] = None,
    digits: Annotated[
        int | None,
        typer.Option("--digits", help="Significant digits of the displayed results"),
    ] = None,
    precision: Annotated[
        float | None,
        typer.Option("--precision", help="Accuracy of integration and root solving"),
    ] = None,
) -> None:
    """Calculate all constants of a document and print the results."""
    err_console.print()
    config = _load_config()
    document = _load_document(path, document_var, config)

    try:
        document.settings = config.apply_settings(
            document.settings,
            significant_digits=digits,
            precision=precision,
        )
    except ConfigError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    err_console.print("[cyan]Calculating document...[/cyan]")
    result = calculate_document(document)
    err_console.print()

    if result.aborted:
        err_console.print(f"[red]✗ {escape(result.message or 'Calculation aborted')}[/red]")
        raise typer.Exit(code=1)

    digits_shown = document.settings.significant_digits
    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Equation", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Status", style="yellow")
    for equation in document:
        value = result.values.get(equation.id)
        if value is None:
            continue
        status = result.statuses.get(equation.id)
        table.add_row(
            escape(equation.name),
            escape(value.describe(digits_shown)),
            escape(status.description) if status is not None else "",
        )
    out_console.print(table)

    if result.errors:
        err_console.print()
        for equation_id, message in result.errors:
            name = document.get(equation_id).name
            err_console.print(f"[red]✗ {escape(name)}:[/red] {escape(message)}")
    if result.message:
        err_console.print(f"[red]✗ {escape(result.message)}[/red]")

    output = output if output is not None else config.output
    if output is not None:
        err_console.print()
        err_console.print(f"[cyan]Exporting results to:[/cyan] {output}")
        export_results_to_toml(document, result, output)

    err_console.print()
    if not result.success:
        raise typer.Exit(code=1)
    err_console.print("[green]✓ Calculation complete[/green]")
    err_console.print()


@app.command()
def check(
    path: PathArgument = None,
    *,
    document_var: DocumentOption = None,
) -> None:
    """Validate the equations of a document without calculating them."""
    err_console.print()
    config = _load_config()
    document = _load_document(path, document_var, config)

    validation = validate_document(document)

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Equation", style="bold")
    table.add_column("Links", justify="right", style="yellow")
    table.add_column("Issues", style="red")
    for equation in document:
        report = validation.report_for(equation)
        issues = "\n".join(str(issue) for issue in report.issues)
        table.add_row(escape(repr(equation)), str(len(report.links)), escape(issues))

    n_invalid = sum(not report.is_valid for report in validation.reports.values())
    err_console.print(
        Panel(
            table,
            title=f"[bold]Document: {escape(document.name)}[/bold]",
            subtitle=f"[dim]{len(document)} equations[/dim]",
            border_style="cyan",
        ),
    )
    err_console.print()
    if n_invalid:
        err_console.print(f"[red]✗ {n_invalid} equation(s) with errors[/red]")
        err_console.print()
        raise typer.Exit(code=1)
    err_console.print("[green]✓ Document is valid[/green]")
    err_console.print()


@app.command()
def deps(
    name: Annotated[str, typer.Argument(help="Name of the equation to inspect")],
    path: PathArgument = None,
    *,
    document_var: DocumentOption = None,
) -> None:
    """Show the equations an equation links to and the equations depending on it."""
    err_console.print()
    config = _load_config()
    document = _load_document(path, document_var, config)

    equations = document.find(name)
    if not equations:
        err_console.print(f"[red]✗ No equation named '{escape(name)}'[/red]")
        raise typer.Exit(code=1)

    graph = validate_document(document).graph
    for equation in equations:
        links = ", ".join(repr(document.get(node)) for node in graph.calculation_order(graph.links_of(equation.id)))
        dependents = ", ".join(
            repr(document.get(node)) for node in graph.calculation_order(graph.all_dependents(equation.id))
        )
        out_console.print(f"[bold]{escape(repr(equation))}[/bold]")
        out_console.print(f"  links to:       {escape(links) or '-'}")
        out_console.print(f"  depended on by: {escape(dependents) or '-'}")


def main() -> None:
    app()
