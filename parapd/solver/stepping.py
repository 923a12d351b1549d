"""Time loop scaffolding shared by the time solvers."""

import logging
import numbers

from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

from ..config import JobOptions
from ..core.conditions import apply_initial_conditions
from ..errors import ConfigurationError, ConsistencyError
from ..io.export import check_export_fields, export_reference_results

logger = logging.getLogger(__name__)


def check_steps(steps) -> int:
    if isinstance(steps, bool) or not isinstance(steps, numbers.Integral):
        raise ConfigurationError(f"`steps` must be an integer, got {steps!r}")
    if steps <= 0:
        raise ConfigurationError(f"`steps` should be larger than zero, got {steps}")
    return int(steps)


def check_positive(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real) or not value > 0:
        raise ConfigurationError(f"`{name}` should be larger than zero, got {value!r}")
    return float(value)


def check_not_negative(solver_name: str, **values) -> None:
    """Re-check solver parameters before the run starts."""
    for name, value in values.items():
        if value is not None and value < 0:
            raise ConsistencyError(f"`{name}` of {solver_name} smaller than zero")


def make_progress(dh, options: JobOptions) -> Progress:
    """Progress bar shown on the coordinator root only."""
    return Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(bar_width=40),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        disable=not (options.progress and dh.coordinator.is_root),
    )


def prepare_run(dh, options: JobOptions) -> None:
    """Steps common to both solvers before the time loop."""
    check_export_fields(dh.chunks, options)
    dh.run_phase(lambda cid: apply_initial_conditions(dh.chunks[cid]))
    export_reference_results(dh.chunks, options)


def time_loop(dh, options: JobOptions, n_steps: int, timestep) -> None:
    """Call ``timestep(n)`` for ``n = 1..n_steps`` with a progress bar."""
    with make_progress(dh, options) as progress:
        task = progress.add_task("TIME INTEGRATION LOOP", total=n_steps)
        for n in range(1, n_steps + 1):
            timestep(n)
            progress.advance(task)
