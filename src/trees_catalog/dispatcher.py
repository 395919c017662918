"""
Run a batch of work units across a bounded worker pool.

Results are collected into a dict keyed by unit name and handed back in the
order the units were given, whatever order they finished in. A unit that
raises is recorded as a UnitFailure under its own name; the other units keep
running.

Workers are OS threads: every unit spends most of its time in file I/O, and
threads let callers pass closures and mocks that could not be pickled for a
process pool.
"""

from __future__ import annotations

import threading
import traceback
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from .errors import ValidationError

ProgressSink = Callable[[int, int], None]


@dataclass
class UnitFailure:
    """Stands in for the result of a unit whose worker raised."""

    name: str
    error: BaseException
    traceback: str = ""

    @property
    def message(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"


def print_progress(done: int, total: int) -> None:
    """Default progress sink: one status line per completed unit."""
    print(f"  [{done}/{total}] units complete", flush=True)


class ProgressCounter:
    """Thread-safe completion counter; forwards every increment to a sink."""

    def __init__(self, total: int, sink: Optional[ProgressSink] = None):
        self.total = total
        self.sink = sink
        self._value = 0
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            value = self._value
            # Reported under the lock so the sink always sees increasing values
            if self.sink is not None:
                try:
                    self.sink(value, self.total)
                except Exception as e:
                    # Progress reporting never fails a unit
                    print(f"  ⚠ Warning: Progress reporting failed, disabled: {type(e).__name__}: {e}", flush=True)
                    self.sink = None
        return value


class WorkerPool:
    """
    Bounded pool with a submit/join contract.

    Usage:
        with WorkerPool(4) as pool:
            for unit in units:
                pool.submit(work, unit)
        # leaving the block joins every submitted job
    """

    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"Pool size must be >= 1, got {size}")
        self.size = size
        self._executor = ThreadPoolExecutor(max_workers=size, thread_name_prefix="catalog-worker")
        self._futures: List[Future] = []

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        future = self._executor.submit(fn, *args, **kwargs)
        self._futures.append(future)
        return future

    def join(self) -> None:
        """
        Block until every submitted job has finished, then release the threads.

        Re-raises the first exception a job raised, in submission order.
        """
        wait(self._futures)
        self._executor.shutdown(wait=True)
        for future in self._futures:
            error = future.exception()
            if error is not None:
                raise error

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.join()


def dispatch(
    units: Sequence[Any],
    worker: Callable[[Any], Any],
    pool_size: int = 1,
    progress: Optional[ProgressSink] = None,
) -> Dict[str, Any]:
    """
    Apply worker to every unit and return the results keyed by unit name.

    Args:
        units: Objects with a unique ``name`` attribute (WorkUnit, Cluster)
        worker: Callable run once per unit
        pool_size: Requested number of parallel workers, clamped to len(units);
            1 or less runs sequentially in the calling thread
        progress: Optional sink called with (done, total) after every unit

    Returns:
        Dict name -> worker result or UnitFailure, in input order
    """
    names = [unit.name for unit in units]
    if len(set(names)) != len(names):
        raise ValidationError("Work unit names must be unique")

    results: Dict[str, Any] = {}
    if not units:
        return results

    counter = ProgressCounter(len(units), progress)
    results_lock = threading.Lock()

    def run_one(unit):
        try:
            value = worker(unit)
        except Exception as e:
            value = UnitFailure(unit.name, e, traceback.format_exc())
        with results_lock:
            results[unit.name] = value
        counter.increment()

    pool_size = min(pool_size, len(units))

    if pool_size <= 1:
        for unit in units:
            run_one(unit)
    else:
        with WorkerPool(pool_size) as pool:
            for unit in units:
                pool.submit(run_one, unit)

    # Put results back into the requested order
    return {name: results[name] for name in names}


def failures(results: Dict[str, Any]) -> List[str]:
    """Names of the units that failed."""
    return [name for name, value in results.items() if isinstance(value, UnitFailure)]
