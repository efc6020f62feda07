"""Scoped worker pool for independent refit tasks.

Leave-one-out cross-validation runs one PCA + discriminant refit per sample.
Each refit is submitted to a process pool; numpy's BLAS inside each worker
is limited to one thread so that ``num_cores`` workers do not oversubscribe
the machine.
"""

from __future__ import annotations

import multiprocessing
from collections.abc import Generator
from concurrent.futures import ProcessPoolExecutor, as_completed
from contextlib import contextmanager
from typing import Any, Callable, List, Optional, Sequence, Tuple

from loguru import logger
from threadpoolctl import threadpool_limits

from .log import console_level, setup_worker_logging


def _init_worker(
    level: Optional[str],
    initializer: Optional[Callable[..., None]],
    initargs: Tuple[Any, ...],
) -> None:
    setup_worker_logging(level)
    if initializer is not None:
        initializer(*initargs)


@contextmanager
def worker_pool(
    num_workers: int,
    initializer: Optional[Callable[..., None]] = None,
    initargs: Tuple[Any, ...] = (),
) -> Generator[ProcessPoolExecutor, None, None]:
    """Process pool that is always shut down on exit.

    Workers inherit the parent's console log level and then run
    ``initializer(*initargs)`` once, before any task.

    On any exception (including KeyboardInterrupt) futures that have not
    started are cancelled. A refit already running in a worker is not
    interrupted: it finishes its current fit, its result is discarded, and
    the pool is released once it returns.
    """
    # spawn: forking after JAX or BLAS threads have started can deadlock.
    pool = ProcessPoolExecutor(
        max_workers=num_workers,
        mp_context=multiprocessing.get_context("spawn"),
        initializer=_init_worker,
        initargs=(console_level(), initializer, initargs),
    )
    logger.debug(f"Started worker pool with {num_workers} processes")
    try:
        yield pool
    except BaseException:
        pool.shutdown(wait=True, cancel_futures=True)
        logger.debug("Worker pool cancelled")
        raise
    else:
        pool.shutdown(wait=True)
        logger.debug("Worker pool shut down")


@contextmanager
def single_blas_thread() -> Generator[None, None, None]:
    """Limit numpy BLAS to one thread for the duration of the block."""
    with threadpool_limits(limits=1, user_api="blas"):
        yield


def run_ordered(
    fn: Callable[..., Any],
    tasks: Sequence[Tuple[Any, ...]],
    num_workers: int = 1,
    initializer: Optional[Callable[..., None]] = None,
    initargs: Tuple[Any, ...] = (),
) -> List[Any]:
    """Run ``fn(*task)`` for every task and return results in task order.

    With ``num_workers == 1`` tasks run inline, after calling
    ``initializer(*initargs)`` in this process. Otherwise they run in a
    :func:`worker_pool`, where the initializer runs once per worker; large
    shared inputs belong in ``initargs`` so each task only carries its own
    arguments. Results are gathered as they complete so a slow task never
    blocks collection of finished ones. The first task to raise aborts the
    run and its exception propagates.
    """
    if num_workers == 1:
        if initializer is not None:
            initializer(*initargs)
        return [fn(*task) for task in tasks]

    results: List[Any] = [None] * len(tasks)
    with worker_pool(num_workers, initializer=initializer, initargs=initargs) as pool:
        futures = {pool.submit(fn, *task): i for i, task in enumerate(tasks)}
        for fut in as_completed(futures):
            results[futures[fut]] = fut.result()
    return results
