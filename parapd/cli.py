"""CLI 진입점: Typer 서브커맨드."""

import logging
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .errors import ParapdError

app = typer.Typer(
    name="parapd",
    help="청크 병렬 페리다이나믹스 시뮬레이션",
    no_args_is_help=True,
)

console = Console()


def _setup_logging(verbose: bool) -> None:
    """RichHandler 로깅 설정."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_config(config_path: Path):
    from .config import JobConfig

    try:
        return JobConfig.from_toml(config_path)
    except (FileNotFoundError, ParapdError) as e:
        console.print(f"[red]설정 오류[/]: {e}")
        raise typer.Exit(1)


@app.command()
def run(
    config_path: Path = typer.Argument(..., help="작업 설정 파일 (TOML)"),
    chunks: Optional[int] = typer.Option(None, "--chunks", "-c", help="청크 수 (설정 파일 값 덮어쓰기)"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="스레드 수"),
    mpi: bool = typer.Option(False, "--mpi", help="MPI 실행 (mpirun 으로 시작, 랭크당 청크 1개)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="디버그 로그 출력"),
):
    """작업 설정 파일로 시뮬레이션 실행."""
    from .job import Job, submit

    _setup_logging(verbose)
    cfg = _load_config(config_path)
    n_chunks = chunks if chunks is not None else cfg.job.n_chunks
    n_workers = workers if workers is not None else cfg.job.n_workers

    start = time.time()
    try:
        job = Job.from_config(cfg)
        dh = submit(job, n_chunks=n_chunks, n_workers=n_workers, mpi=mpi)
    except ParapdError as e:
        console.print(f"[red]실패[/]: {e}")
        raise typer.Exit(1)

    if dh.coordinator.is_root:
        console.print(f"[green]완료[/]: {job.time_solver.n_steps} 스텝 ({time.time() - start:.1f}초)")
        if cfg.job.export_dir is not None:
            console.print(f"  결과: {cfg.job.export_dir}")


@app.command()
def info(
    config_path: Path = typer.Argument(..., help="작업 설정 파일 (TOML)"),
    chunks: Optional[int] = typer.Option(None, "--chunks", "-c", help="청크 수 (설정 파일 값 덮어쓰기)"),
):
    """물체 분할 정보 출력 (청크별 점/할로/본드 수)."""
    from .core.body_chunk import chop_body
    from .core.decomposition import PointDecomposition
    from .job import build_body
    from .solver import create_time_solver

    cfg = _load_config(config_path)
    n_chunks = chunks if chunks is not None else cfg.job.n_chunks
    try:
        body = build_body(cfg)
        solver = create_time_solver(cfg.solver.kind, **cfg.solver.params())
        decomp = PointDecomposition(body, n_chunks)
        body_chunks = chop_body(body, solver, decomp)
    except ParapdError as e:
        console.print(f"[red]실패[/]: {e}")
        raise typer.Exit(1)

    table = Table(title=f"{body.name}: {body.n_points} 점, {n_chunks} 청크")
    table.add_column("청크", justify="right")
    table.add_column("소유 점", justify="right")
    table.add_column("할로 점", justify="right")
    table.add_column("본드", justify="right")
    table.add_column("할로 출처", justify="left")
    for chunk in body_chunks:
        srcs = ", ".join(f"{src}:{len(r)}" for src, r in sorted(chunk.ch.halo_by_src.items()))
        table.add_row(
            str(chunk.chunk_id),
            str(chunk.ch.n_loc_points),
            str(chunk.ch.n_halo_points),
            str(chunk.discret.n_bonds),
            srcs or "-",
        )
    console.print(table)
    console.print(f"적분기: {solver!r}")


if __name__ == "__main__":
    app()
