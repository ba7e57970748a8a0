"""
Exception and warning types raised by the null-model SES pipeline.
"""


class NullModelError(Exception):
    """Base class for fatal errors in a null-model run."""


class InputShapeMismatch(NullModelError, ValueError):
    """Community matrix and auxiliary data do not line up."""


class EvaluatorFailure(NullModelError, RuntimeError):
    """
    A metric evaluation failed on one permutation.

    Parameters:
    -----------
    worker_index : int
        Index of the worker that was running the permutation
    permutation_index : int
        Index of the permutation within that worker's chunk
    reason : str
        Message of the originating exception
    """

    def __init__(self, worker_index, permutation_index, reason):
        # args must mirror the signature so the exception survives pickling
        super().__init__(worker_index, permutation_index, reason)
        self.worker_index = worker_index
        self.permutation_index = permutation_index
        self.reason = reason

    def __str__(self):
        return (f"Evaluator failed in worker {self.worker_index} "
                f"at permutation {self.permutation_index}: {self.reason}")


class DegenerateStatisticsWarning(UserWarning):
    """Null distribution has zero spread, so SES is undefined."""
