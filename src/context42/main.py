"""CLI entrypoint for context42."""

import logging
from pathlib import Path

import rich_click as click

from context42 import __version__
from context42.controllers import Context42CliController, GenerateCommand

click.rich_click.USE_MARKDOWN = True


@click.command()
@click.version_option(version=__version__, prog_name="context42")
@click.option(
    "-i",
    "--input",
    "input_dir",
    type=click.Path(path_type=Path, exists=True, file_okay=False),
    default=Path("."),
    show_default=True,
    help="Directory to analyze.",
)
@click.option(
    "-o",
    "--output",
    "output_dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory for the generated `<language>.md` guides (default `./context42`).",
)
@click.option("-m", "--model", default=None, help="Model passed to the agent command.")
@click.option(
    "-c",
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Number of parallel workers (default 4, capped at the file count).",
)
@click.option("-r", "--run", "run_id", default=None, help="Resume from a previous run ID.")
@click.option(
    "-l",
    "--language",
    "languages",
    multiple=True,
    help="Only generate guides for this language (file extension). Can be repeated.",
)
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("-d", "--debug", is_flag=True, help="Verbose logging; prints the run ID on error.")
def context42(  # noqa: PLR0913
    input_dir: Path,
    output_dir: Path | None,
    model: str | None,
    concurrency: int | None,
    run_id: str | None,
    languages: tuple[str, ...],
    db_path: Path | None,
    debug: bool,
) -> None:
    """Discover the code style your team already follows.

    Writes one style guide per language, built bottom-up from every directory
    of the input tree.
    """

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    controller = Context42CliController(emit=click.echo)
    try:
        lines = controller.generate(
            GenerateCommand(
                input_dir=input_dir,
                output_dir=output_dir,
                model=model,
                concurrency=concurrency,
                run_id=run_id,
                languages=languages,
                db_path=db_path,
                debug=debug,
            ),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    context42()
