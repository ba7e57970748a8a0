"""
Parallel generation of null samples.

The requested permutations are split into one equal chunk per worker. Every
worker randomizes the community matrix and evaluates the metrics on it
``chunk`` times with its own random stream, then the chunks are stacked
into a single array of null samples.
"""

import multiprocessing as mp
import time
from concurrent.futures import FIRST_EXCEPTION, ProcessPoolExecutor, wait

import numpy as np

from .errors import EvaluatorFailure
from .logger import log_print
from .randomize import NullModel, randomize_matrix

# Set in pool workers; tells every worker to stop after its current permutation
_stop_event = None


def _best_mp_start():
    """fork where the platform has it, spawn elsewhere."""
    methods = mp.get_all_start_methods()
    return "fork" if "fork" in methods else "spawn"


def partition_permutations(nperm, n_workers):
    """
    Split ``nperm`` permutations into equal per-worker chunks.

    When ``nperm`` is not a multiple of ``n_workers`` the total is rounded
    down and the number of dropped permutations is logged.

    Returns:
    --------
    list of int
        Chunk size for each worker
    """
    if nperm < 2 or n_workers < 1:
        raise ValueError(f"nperm must be at least 2 and n_workers positive (got nperm={nperm}, n_workers={n_workers})")
    if nperm < n_workers:
        raise ValueError(f"nperm ({nperm}) must be at least the number of workers ({n_workers})")

    chunk = nperm // n_workers
    used = chunk * n_workers
    if used != nperm:
        log_print(
            f"nperm={nperm} is not divisible by n_workers={n_workers}; "
            f"running {used} permutations ({nperm - used} dropped)",
            level="warning"
        )
    return [chunk] * n_workers


def worker_seeds(n_workers, seed=None):
    """Independent SeedSequence for each worker, reproducible from ``seed``."""
    return np.random.SeedSequence(seed).spawn(n_workers)


def _init_worker(stop_event):
    global _stop_event
    _stop_event = stop_event


def _stop_requested():
    return _stop_event is not None and _stop_event.is_set()


def _signal_stop():
    if _stop_event is not None:
        _stop_event.set()


def _run_chunk(worker_index, n_iter, matrix, aux, evaluator, evaluator_kwargs,
               null_model, iterations, seed_seq, expected_shape):
    """
    Randomize-then-evaluate ``n_iter`` times; runs inside a worker.

    Returns None when another worker failed first.
    """
    rng = np.random.default_rng(seed_seq)
    chunk = np.empty((n_iter,) + tuple(expected_shape), dtype=float)

    for perm in range(n_iter):
        if _stop_requested():
            return None

        randomized = randomize_matrix(matrix, null_model=null_model, iterations=iterations, rng=rng)
        try:
            result = np.asarray(evaluator(randomized, aux, **evaluator_kwargs), dtype=float)
        except Exception as e:
            _signal_stop()
            raise EvaluatorFailure(worker_index, perm, f"{type(e).__name__}: {e}") from e

        if result.shape != tuple(expected_shape):
            _signal_stop()
            raise EvaluatorFailure(
                worker_index, perm,
                f"evaluator returned shape {result.shape}, expected {tuple(expected_shape)}"
            )
        chunk[perm] = result

    return chunk


def run_permutations(matrix, aux, evaluator, nperm, n_workers=4, null_model='richness',
                     iterations=1000, seed=None, expected_shape=None, evaluator_kwargs=None):
    """
    Generate null samples in parallel.

    Parameters:
    -----------
    matrix : numpy.ndarray
        Community matrix, sites as rows, species as columns
    aux : object
        Read-only data passed to every evaluator call (must be picklable)
    evaluator : callable
        ``evaluator(matrix, aux, **evaluator_kwargs)`` returning an array of
        shape ``expected_shape``; must be a module-level function
    nperm : int
        Total number of permutations
    n_workers : int
        Number of worker processes; 1 runs everything in this process
    null_model : str
        Randomization scheme, see ``randomize_matrix``
    iterations : int
        Swap iterations for swap-based null models
    seed : int, optional
        Base seed; each worker gets an independent stream derived from it
    expected_shape : tuple, optional
        Shape of one null sample; taken from the evaluator on the observed
        matrix when omitted
    evaluator_kwargs : dict, optional
        Extra keyword arguments for the evaluator

    Returns:
    --------
    numpy.ndarray
        Null samples, shape (n_used, n_metrics, n_columns), where n_used is
        ``nperm`` rounded down to a multiple of ``n_workers``

    Raises:
    -------
    EvaluatorFailure
        If any evaluation fails; no partial result is returned
    """
    null_model = NullModel(null_model).value
    evaluator_kwargs = dict(evaluator_kwargs or {})
    matrix = np.asarray(matrix)
    chunks = partition_permutations(nperm, n_workers)
    seeds = worker_seeds(n_workers, seed)

    if expected_shape is None:
        expected_shape = np.asarray(evaluator(matrix, aux, **evaluator_kwargs)).shape
    expected_shape = tuple(expected_shape)

    log_print(
        f"Running {sum(chunks)} permutations ({null_model} null model) "
        f"on {n_workers} worker(s), {chunks[0]} per worker",
        level="info"
    )
    start_time = time.time()

    task_args = [
        (worker_index, chunks[worker_index], matrix, aux, evaluator, evaluator_kwargs,
         null_model, iterations, seeds[worker_index], expected_shape)
        for worker_index in range(n_workers)
    ]

    if n_workers == 1:
        results = [_run_chunk(*task_args[0])]
    else:
        results = _run_in_pool(task_args, n_workers)

    null_samples = np.concatenate(results, axis=0)
    log_print(
        f"Generated {null_samples.shape[0]} null samples in {time.time() - start_time:.2f} seconds",
        level="info"
    )
    return null_samples


def _run_in_pool(task_args, n_workers):
    context = mp.get_context(_best_mp_start())
    stop_event = context.Event()

    with ProcessPoolExecutor(max_workers=n_workers, mp_context=context,
                             initializer=_init_worker, initargs=(stop_event,)) as executor:
        futures = [executor.submit(_run_chunk, *args) for args in task_args]
        done, not_done = wait(futures, return_when=FIRST_EXCEPTION)

        for future in futures:
            if future in done and future.exception() is not None:
                # Running chunks stop after their current permutation
                stop_event.set()
                executor.shutdown(wait=False, cancel_futures=True)
                error = future.exception()
                log_print(str(error), level="error")
                raise error

        # Keep worker order so each chunk stays contiguous
        return [future.result() for future in futures]
