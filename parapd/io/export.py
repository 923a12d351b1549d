"""Export of point fields to NPZ files.

Every chunk writes its owned points to its own file per exported step::

    <export_dir>/<body>_c<chunk>_t<step>.npz

The archive holds the exported fields, the global ids of the points
(``point_ids``) and the simulation time (``time``). ``load_results`` puts
the chunk files of one step back together in global point order.
"""

import logging
import re
import numpy as np
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import ConfigurationError

if TYPE_CHECKING:
    from ..config import JobOptions
    from ..core.body_chunk import BodyChunk

logger = logging.getLogger(__name__)


def result_file(export_dir: Path, body_name: str, chunk_id: int, step: int) -> Path:
    return Path(export_dir) / f"{body_name}_c{chunk_id:04d}_t{step:06d}.npz"


def export_fields(chunk: "BodyChunk", options: "JobOptions") -> tuple:
    return tuple(options.fields) if options.fields else chunk.material.export_fields


def check_export_fields(chunks, options: "JobOptions") -> None:
    """Raise if an exported field is not stored by the chunks."""
    if options.export_dir is None:
        return
    for chunk in chunks:
        missing = [f for f in export_fields(chunk, options) if f not in chunk.storage]
        if missing:
            raise ConfigurationError(f"cannot export unknown point fields {missing}")


def _write(chunk: "BodyChunk", step: int, t: float, options: "JobOptions") -> None:
    n_loc = chunk.ch.n_loc_points
    arrays = {name: chunk.storage[name][:n_loc] for name in export_fields(chunk, options)}
    path = result_file(options.export_dir, chunk.body_name, chunk.chunk_id, step)
    try:
        np.savez(path, point_ids=chunk.ch.loc_points, time=np.float64(t), **arrays)
    except OSError as e:
        logger.error("Export of step %d (chunk %d of '%s') failed: %s",
                     step, chunk.chunk_id, chunk.body_name, e)


def export_reference_results(chunks, options: "JobOptions") -> None:
    """Write the reference configuration as step 0."""
    if options.export_dir is None:
        return
    Path(options.export_dir).mkdir(parents=True, exist_ok=True)
    for chunk in chunks:
        _write(chunk, 0, 0.0, options)


def export_results(chunk: "BodyChunk", step: int, t: float, options: "JobOptions") -> None:
    """Write the owned points of a chunk if ``step`` is on the export cadence.

    Write failures are logged and do not stop the run.
    """
    if options.export_dir is None or step % options.freq != 0:
        return
    _write(chunk, step, t, options)


def load_results(export_dir, step: int, body_name: str = "body") -> dict:
    """Load all chunk files of one step in global point order.

    Returns:
        Dictionary of field arrays plus ``time``

    Raises:
        FileNotFoundError: no result files for the step
    """
    pattern = re.compile(rf"^{re.escape(body_name)}_c(\d+)_t{step:06d}\.npz$")
    files = sorted(p for p in Path(export_dir).iterdir() if pattern.match(p.name))
    if not files:
        raise FileNotFoundError(f"no results of body '{body_name}' at step {step} in {export_dir}")

    parts = []
    for path in files:
        with np.load(path) as data:
            parts.append({key: data[key] for key in data.files})

    point_ids = np.concatenate([p["point_ids"] for p in parts])
    order = np.argsort(point_ids)
    names = [k for k in parts[0] if k not in ("point_ids", "time")]
    results = {name: np.concatenate([p[name] for p in parts])[order] for name in names}
    results["time"] = float(parts[0]["time"])
    return results
