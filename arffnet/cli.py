"""Command-line interface for arffnet datasets and network models."""

import sys
from pathlib import Path

import click
import numpy as np
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .compiler import compile_network
from .dataset import NO_CLASS, Dataset, summarize
from .evaluator import MultilayerPerceptron, accuracy
from .exceptions import ArffNetError, SchemaError
from .persistence import load_model
from .reader import load_arff


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(*, verbose: bool) -> None:
    """Read ARFF datasets, classify them with trained networks and compile networks to C."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


@click.command()
@click.argument("data", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def info(data: Path) -> None:
    """Show the header and row statistics of DATA."""
    console = Console()
    try:
        with console.status(f"[bold green]Reading {data}..."):
            dataset = load_arff(data)
    except ArffNetError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise click.Abort() from e

    summary = summarize(dataset)
    console.print(f"[bold]Relation:[/bold] {summary['relation']}")
    console.print(f"[bold]Instances:[/bold] {summary['instances']}")
    console.print(f"[bold]Sum of weights:[/bold] {summary['sum_of_weights']:g}")
    console.print(f"[bold]Rows with missing values:[/bold] {summary['rows_with_missing']}")

    missing = dataset.missing_counts()
    table = Table(title=f"Attributes ({summary['attributes']})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Type", style="magenta")
    table.add_column("Missing", justify="right")
    for attribute in dataset.schema:
        kind = "numeric" if attribute.is_numeric else f"nominal ({attribute.num_values})"
        table.add_row(str(attribute.index), attribute.name, kind, str(missing[attribute.index]))
    console.print(table)


@click.command()
@click.argument("data", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
def convert(data: Path, output: Path) -> None:
    """Export DATA as CSV to OUTPUT (nominal cells as labels, plus a weight column)."""
    console = Console()
    try:
        dataset = load_arff(data)
    except ArffNetError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise click.Abort() from e

    output.parent.mkdir(parents=True, exist_ok=True)
    dataset.to_dataframe().to_csv(output, index=False)
    console.print(f"✅ [bold green]Wrote {dataset.num_instances} rows to {output}[/bold green]")


def _check_compatible(model: MultilayerPerceptron, dataset: Dataset) -> None:
    if dataset.num_attributes != model.schema.num_attributes:
        msg = (
            f"Dataset has {dataset.num_attributes} attributes, "
            f"model expects {model.schema.num_attributes}"
        )
        raise SchemaError(msg)


@click.command()
@click.argument("model_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("data", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--class-index",
    type=int,
    default=None,
    help="Class attribute of DATA (default: the model's class index)",
)
@click.option("--limit", type=int, default=20, help="Number of predictions to display (default: 20)")
def classify(model_path: Path, data: Path, class_index: int | None, limit: int) -> None:
    """Classify every row of DATA with the model at MODEL_PATH."""
    console = Console()
    try:
        model = load_model(model_path)
        dataset = load_arff(data)
        _check_compatible(model, dataset)
        dataset.set_class_index(model.schema.class_index if class_index is None else class_index)
        with console.status(f"[bold green]Classifying {dataset.num_instances} rows..."):
            predictions = model.classify_dataset(dataset)
    except ArffNetError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise click.Abort() from e

    labels = model.schema.class_attribute
    table = Table(title=f"Predictions for {dataset.name}")
    table.add_column("Row", justify="right", style="dim")
    table.add_column("Predicted", style="cyan")
    table.add_column("Actual", style="magenta")
    for row, (instance, prediction) in enumerate(zip(dataset, predictions, strict=True)):
        if row >= limit:
            break
        predicted = "?" if np.isnan(prediction) else labels.value(int(prediction))
        table.add_row(str(row), predicted, instance.cell_text(dataset.class_index))
    console.print(table)

    if dataset.class_index != NO_CLASS:
        console.print(f"[bold]Accuracy:[/bold] {accuracy(predictions, dataset):.4f}")


@click.command(name="compile")
@click.argument("model_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the C source here instead of standard output",
)
def compile_cmd(model_path: Path, output: Path | None) -> None:
    """Compile the network at MODEL_PATH into fixed-point C."""
    console = Console(stderr=True)
    try:
        model = load_model(model_path)
        program = compile_network(model.graph, model.schema.num_attributes, name=model_path.stem)
    except ArffNetError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise click.Abort() from e

    if model.normalize_attributes:
        console.print("[yellow]Model normalizes its inputs: feed the compiled code normalized values[/yellow]")

    if output is None:
        click.echo(program.source, nl=False)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(program.source, encoding="utf-8")
    console.print(
        f"✅ [bold green]Wrote {len(program.layers)} layers, {program.num_slots} slots to {output}[/bold green]"
    )


# Add commands to CLI group
cli.add_command(info)
cli.add_command(convert)
cli.add_command(classify)
cli.add_command(compile_cmd, name="compile")


if __name__ == "__main__":
    cli()
