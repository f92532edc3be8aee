import logging
from typing import Annotated, Optional

import typer
from rich.logging import RichHandler

from mempress import console, controller, utils
from mempress.config import PressureConfig
from mempress.plan import compute_plan

app = typer.Typer(add_completion=False)


def version_callback(value: bool) -> None:
    if value:
        console.console.print(f'mempress version {utils.get_version()}')
        raise typer.Exit()


def setup_logging(verbose: bool):
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(message)s',
        handlers=[RichHandler(console=console.stderr_console, show_path=False)],
    )


@app.command()
def run(
    total_memory_mb: Annotated[
        int,
        typer.Argument(min=1, help='Total memory to allocate across all processes, in MB.'),
    ],
    steps: Annotated[
        int,
        typer.Argument(min=1, help='Number of steps each process allocates its share in.'),
    ],
    delay_ms: Annotated[
        int,
        typer.Argument(min=0, help='Delay between steps, in milliseconds.'),
    ],
    max_per_process: Annotated[
        int,
        typer.Option(
            '--max-per-process',
            '-m',
            min=1,
            help='Maximum memory a single process allocates, in MB.',
        ),
    ] = PressureConfig().max_memory_per_process,
    verbose: Annotated[
        bool, typer.Option('--verbose', '-v', help='Print debug logs to stderr.')
    ] = False,
    version: Annotated[
        Optional[bool],
        typer.Option(
            '--version',
            callback=version_callback,
            is_eager=True,
            help='Show the version and exit.',
        ),
    ] = None,
):
    """Gradually allocate memory across several processes to put the system under pressure.

    Press 'p' to pause/resume every process, Enter to terminate them all.
    """
    setup_logging(verbose)
    config = PressureConfig(max_memory_per_process=max_per_process)
    plan = compute_plan(total_memory_mb, steps, delay_ms, config)
    controller.run(plan, config)
