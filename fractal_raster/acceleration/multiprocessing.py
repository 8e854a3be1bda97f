"""
Row-group scheduling for parallel fractal rendering.

The raster is cut into disjoint groups of whole rows. Each group is a pure
function of the (immutable) render configuration, so groups can be computed
in any order, in-process or in a pool of worker processes, and always
produce the same bytes.
"""

import numpy as np
from typing import Iterable, Iterator, List, Optional
import multiprocessing as mp
import logging
import time
from dataclasses import dataclass
from concurrent.futures import ProcessPoolExecutor, as_completed

from ..config import RenderConfig
from ..core.math_functions import ComplexPlane, FractalIterator
from ..core.precision import PrecisionConfig
from ..exceptions import RenderError
from ..rendering.coloring import ColoringAlgorithm, Palette

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RowGroup:
    """Half-open range of raster rows rendered as one task."""
    group_id: int
    y_start: int
    y_end: int

    @property
    def rows(self) -> int:
        return self.y_end - self.y_start


@dataclass(frozen=True)
class RowGroupTask:
    """Everything a worker needs to render one row group."""
    config: RenderConfig
    group: RowGroup
    coloring: ColoringAlgorithm
    palette: Optional[Palette] = None


@dataclass
class RowGroupResult:
    """RGBA block computed for a single row group."""
    group: RowGroup
    pixels: np.ndarray
    processing_time: float


def create_row_groups(height: int, rows_per_group: int = 16) -> List[RowGroup]:
    """
    Partition [0, height) into consecutive row groups.

    Args:
        height: Total image height
        rows_per_group: Rows per group; the last group may be shorter

    Returns:
        List of RowGroup objects covering every row exactly once
    """
    if rows_per_group < 1:
        raise ValueError("rows_per_group must be >= 1")

    groups = []
    for group_id, y in enumerate(range(0, height, rows_per_group)):
        groups.append(RowGroup(group_id, y, min(y + rows_per_group, height)))

    logger.debug(f"Created {len(groups)} row groups of up to {rows_per_group} rows")
    return groups


def render_row_group(task: RowGroupTask) -> RowGroupResult:
    """
    Render a single row group.

    Runs unchanged in the calling process or in a worker process.

    Returns:
        RowGroupResult holding a (rows, width, 4) uint8 block
    """
    start_time = time.time()
    config, group = task.config, task.group

    plane = ComplexPlane(config.viewport, config.width, config.height)
    dtype = PrecisionConfig(config.precision).dtype
    iterator = FractalIterator(config.max_iterations, config.power, dtype)

    c = plane.row_coordinates(group.y_start, group.y_end, dtype)
    result = iterator.iterate(c)

    pixels = task.coloring.apply(result, config.color_settings(), task.palette)

    return RowGroupResult(group, pixels, time.time() - start_time)


def _failed(group: RowGroup, error: BaseException) -> RenderError:
    return RenderError(f"Row group {group.group_id} (rows {group.y_start}-{group.y_end}) "
                       f"failed: {error}")


def render_sequential(tasks: Iterable[RowGroupTask]) -> Iterator[RowGroupResult]:
    """Render row groups one after another in this process."""
    for task in tasks:
        try:
            yield render_row_group(task)
        except RenderError:
            raise
        except Exception as e:
            raise _failed(task.group, e) from e


class MultiprocessingAccelerator:
    """Process-pool execution of row groups."""

    def __init__(self, num_processes: Optional[int] = None):
        """
        Initialize multiprocessing accelerator.

        Args:
            num_processes: Number of worker processes (None for CPU count)
        """
        if num_processes is None:
            self.num_processes = get_optimal_process_count()
        else:
            self.num_processes = max(1, num_processes)

        logger.debug(f"Multiprocessing accelerator: {self.num_processes} processes")

    def render_parallel(self, tasks: List[RowGroupTask]) -> Iterator[RowGroupResult]:
        """
        Render row groups in a process pool.

        Results are yielded in completion order. The first failing group
        aborts the render with RenderError.
        """
        workers = min(self.num_processes, len(tasks)) or 1
        logger.info(f"Processing {len(tasks)} row groups with {workers} processes")

        with ProcessPoolExecutor(max_workers=workers) as executor:
            future_to_task = {executor.submit(render_row_group, task): task for task in tasks}

            completed = 0
            for future in as_completed(future_to_task):
                task = future_to_task[future]
                try:
                    result = future.result()
                except Exception as e:
                    for pending in future_to_task:
                        pending.cancel()
                    raise _failed(task.group, e) from e

                completed += 1
                if completed % max(1, len(tasks) // 10) == 0:
                    logger.debug(f"Completed {completed}/{len(tasks)} row groups "
                                 f"({completed / len(tasks) * 100:.1f}%)")
                yield result


def get_optimal_process_count() -> int:
    """Get the number of worker processes matching the available cores."""
    return max(1, mp.cpu_count())
