import logging
import multiprocessing as mp
import os
import time

import numpy as np
import pytest

from nullmodel_tools import EvaluatorFailure, partition_permutations, run_permutations
from nullmodel_tools import permutation
from nullmodel_tools.permutation import worker_seeds


def richness_evaluator(matrix, aux):
    return matrix.sum(axis=1, keepdims=True).T.astype(float)


def matrix_evaluator(matrix, aux):
    return matrix.astype(float)


def scaled_evaluator(matrix, aux, scale=1.0):
    return matrix.sum(axis=1, keepdims=True).T * scale


def failing_evaluator(matrix, aux):
    raise ValueError("metric library exploded")


def wrong_shape_evaluator(matrix, aux):
    return np.zeros(3)


def first_caller_fails(matrix, aux):
    """The first call anywhere fails; every later call is slow."""
    try:
        fd = os.open(aux, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError:
        time.sleep(0.3)
        return richness_evaluator(matrix, None)
    os.close(fd)
    raise RuntimeError("first evaluation failed")


class FailOnCall:
    """Raises on the n-th call; only usable in-process."""

    def __init__(self, fail_at):
        self.fail_at = fail_at
        self.calls = 0

    def __call__(self, matrix, aux):
        if self.calls == self.fail_at:
            raise RuntimeError("boom")
        self.calls += 1
        return richness_evaluator(matrix, aux)


def test_partition_even():
    assert partition_permutations(100, 4) == [25, 25, 25, 25]


def test_partition_rounds_down_and_reports(caplog):
    with caplog.at_level(logging.WARNING, logger='nullmodel_tools'):
        chunks = partition_permutations(10, 3)

    assert chunks == [3, 3, 3]
    assert "1 dropped" in caplog.text


@pytest.mark.parametrize("nperm, n_workers", [(0, 1), (1, 1), (3, 4), (10, 0)])
def test_partition_rejects_bad_values(nperm, n_workers):
    with pytest.raises(ValueError):
        partition_permutations(nperm, n_workers)


def test_worker_seeds_are_reproducible_and_distinct():
    first = [s.generate_state(2).tolist() for s in worker_seeds(3, seed=42)]
    second = [s.generate_state(2).tolist() for s in worker_seeds(3, seed=42)]

    assert first == second
    assert len({tuple(state) for state in first}) == 3


@pytest.mark.parametrize("n_workers", [1, 4])
def test_returns_nperm_samples_regardless_of_workers(random_matrix, n_workers):
    null_samples = run_permutations(random_matrix, None, richness_evaluator, nperm=100,
                                    n_workers=n_workers, seed=1)

    assert null_samples.shape == (100, 1, random_matrix.shape[0])


def test_richness_null_keeps_site_richness(random_matrix):
    null_samples = run_permutations(random_matrix, None, richness_evaluator, nperm=20, n_workers=2, seed=3)

    expected = random_matrix.sum(axis=1)
    for sample in null_samples:
        np.testing.assert_array_equal(sample[0], expected)


def test_uneven_split_is_rounded_down(random_matrix):
    null_samples = run_permutations(random_matrix, None, richness_evaluator, nperm=10, n_workers=4, seed=1)

    assert null_samples.shape[0] == 8


def test_same_seed_same_samples(random_matrix):
    first = run_permutations(random_matrix, None, matrix_evaluator, nperm=6, n_workers=2, seed=123)
    second = run_permutations(random_matrix, None, matrix_evaluator, nperm=6, n_workers=2, seed=123)

    np.testing.assert_array_equal(first, second)


def test_workers_use_independent_streams(random_matrix):
    null_samples = run_permutations(random_matrix, None, matrix_evaluator, nperm=2, n_workers=2, seed=5)

    # One sample per worker; identical draws would mean a shared random stream
    assert not np.array_equal(null_samples[0], null_samples[1])


def test_evaluator_kwargs_are_forwarded(random_matrix):
    null_samples = run_permutations(random_matrix, None, scaled_evaluator, nperm=4, n_workers=2,
                                    seed=1, evaluator_kwargs={'scale': 2.0})

    np.testing.assert_array_equal(null_samples[0, 0], random_matrix.sum(axis=1) * 2.0)


def test_failure_in_pool_identifies_worker(random_matrix):
    with pytest.raises(EvaluatorFailure) as excinfo:
        run_permutations(random_matrix, None, failing_evaluator, nperm=8, n_workers=2,
                         seed=1, expected_shape=(1, random_matrix.shape[0]))

    error = excinfo.value
    assert error.worker_index in (0, 1)
    assert error.permutation_index == 0
    assert "metric library exploded" in str(error)


def test_failure_reports_permutation_index(random_matrix):
    evaluator = FailOnCall(fail_at=3)

    with pytest.raises(EvaluatorFailure) as excinfo:
        run_permutations(random_matrix, None, evaluator, nperm=10, n_workers=1,
                         seed=1, expected_shape=(1, random_matrix.shape[0]))

    assert excinfo.value.worker_index == 0
    assert excinfo.value.permutation_index == 3


def test_wrong_output_shape_is_a_failure(random_matrix):
    with pytest.raises(EvaluatorFailure, match="shape"):
        run_permutations(random_matrix, None, wrong_shape_evaluator, nperm=4, n_workers=2,
                         seed=1, expected_shape=(1, random_matrix.shape[0]))


def test_failure_stops_other_workers_early(random_matrix, tmp_path):
    marker = str(tmp_path / 'first_call')
    start = time.time()

    with pytest.raises(EvaluatorFailure, match="first evaluation failed"):
        run_permutations(random_matrix, marker, first_caller_fails, nperm=20, n_workers=2,
                         seed=1, expected_shape=(1, random_matrix.shape[0]))

    # Finishing the other worker's chunk would take 10 x 0.3 s
    assert time.time() - start < 2.0


def test_chunk_returns_nothing_once_stop_is_set(random_matrix, monkeypatch):
    stop_event = mp.get_context().Event()
    stop_event.set()
    monkeypatch.setattr(permutation, '_stop_event', stop_event)

    chunk = permutation._run_chunk(0, 5, random_matrix, None, failing_evaluator, {}, 'richness',
                                   10, worker_seeds(1, seed=1)[0], (1, random_matrix.shape[0]))

    assert chunk is None


def test_worker_count_does_not_change_null_distribution(random_matrix):
    single = run_permutations(random_matrix, None, matrix_evaluator, nperm=400, n_workers=1, seed=11)
    pooled = run_permutations(random_matrix, None, matrix_evaluator, nperm=400, n_workers=4, seed=12)

    # Cell means are occurrence probabilities; 400 draws put their sd near 0.025
    np.testing.assert_allclose(single.mean(axis=0), pooled.mean(axis=0), atol=0.2)
    np.testing.assert_array_equal(single.sum(axis=2), pooled.sum(axis=2))
