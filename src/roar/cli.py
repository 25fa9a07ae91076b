"""roar CLI - Render Once, All Resources.

Renders an Argo CD app-of-apps chart and every child application it declares.
"""

from __future__ import annotations

from pathlib import Path

import rich_click as click
from rich.markup import escape

from roar import __version__
from roar import console as con
from roar.config import RoarConfig, load_config
from roar.console import LOG_LEVELS, configure_logging
from roar.exceptions import RenderFailedError, RoarError
from roar.render import run

click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = (
    "Try running the '--help' flag for more information."
)
click.rich_click.STYLE_OPTION = "cyan"
click.rich_click.STYLE_ARGUMENT = "green"
click.rich_click.STYLE_SWITCH = "cyan"
click.rich_click.MAX_WIDTH = 100

CLI_HELP = """Render an Argo CD app-of-apps chart into per-application manifests.

The [green]CHART_PATH[/green] chart is rendered once, every Argo CD Application
in its output is cloned and rendered, and the result is written to
[cyan]OUTPUT_DIR[/cyan]/[yellow]env[/yellow]/[yellow]instance[/yellow]/[bold]name[/bold].yaml.

\b
[bold cyan]Examples:[/bold cyan]
  [bold yellow]roar ./app-of-apps[/bold yellow]
  [bold yellow]roar ./app-of-apps -f values-dev.yaml -o out -l info[/bold yellow]
"""


@click.command(help=CLI_HELP)
@click.argument("chart_path", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--values",
    "-f",
    "values_files",
    multiple=True,
    type=click.Path(dir_okay=False),
    help="Values file for the app-of-apps chart (can be repeated).",
)
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(file_okay=False),
    help="Directory to save rendered manifests. [default: rendered]",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(sorted(LOG_LEVELS), case_sensitive=False),
    help="Log level. [default: warn]",
)
@click.option(
    "--workers",
    "-w",
    type=click.IntRange(min=1),
    help="Maximum number of applications rendered in parallel. [default: 10]",
)
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to a .roar.yaml file (searched upwards from cwd by default).",
)
@click.version_option(
    __version__,
    "--version",
    "-v",
    prog_name="roar",
    message="%(prog)s version: %(version)s",
)
def cli(
    chart_path: Path,
    values_files: tuple[str, ...],
    output_dir: str | None,
    log_level: str | None,
    workers: int | None,
    config_file: Path | None,
) -> None:
    """roar CLI entry point."""
    cfg: RoarConfig = load_config(config_file).merge(
        chart_path=str(chart_path),
        values_files=list(values_files) or None,
        output_dir=output_dir,
        log_level=log_level,
        max_workers=workers,
    )
    log = configure_logging(cfg.log_level)

    con.print_header(f"Rendering {cfg.chart_path}")
    con.print_key_value("Output", con.format_path(cfg.output_dir))
    con.print_key_value("Workers", str(cfg.max_workers))

    try:
        written: list[Path] = run(cfg, log=log)
    except RenderFailedError as e:
        for failure in e.failures:
            con.print_error(escape(str(failure)))
        con.print_summary(len(e.written), e.count)
        raise SystemExit(1) from None
    except RoarError as e:
        con.print_error(f"Application failed: {escape(str(e))}")
        raise SystemExit(1) from None

    for path in written:
        con.print_success(f"{con.format_app(path.stem)} → {con.format_path(str(path))}")
    con.print_summary(len(written), 0)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
