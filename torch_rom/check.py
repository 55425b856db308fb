import torch


class ContractViolation(AssertionError):
    """A precondition of a torch_rom operation was broken by the caller."""


class ShapeException(ContractViolation):
    def __init__(self, name, shape, expected_shape):
        self.name = name
        self.shape = shape
        self.expected_shape = expected_shape
        super().__init__(f"{name} has shape {shape} expected {expected_shape}")


class DistributionException(ContractViolation):
    def __init__(self, operation, lhs_distributed, rhs_distributed):
        self.operation = operation
        self.lhs_distributed = lhs_distributed
        self.rhs_distributed = rhs_distributed
        super().__init__(
            f"{operation} does not support "
            f"{_describe(lhs_distributed)} x {_describe(rhs_distributed)} operands"
        )


class IndexException(ContractViolation):
    def __init__(self, index, bounds):
        self.index = index
        self.bounds = bounds
        super().__init__(f"index {index} out of range for local shape {bounds}")


class NumericalFailure(RuntimeError):
    """The dense SVD kernel could not factor the assembled sample matrix."""


def _describe(distributed: bool) -> str:
    return "distributed" if distributed else "undistributed"


def check_positive(name: str, value: int):
    """
    Check that a size argument is a positive integer

    Parameters
    ----------
    name: str
        argument name used in the error message
    value: int
        the size to check
    """
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ContractViolation(f"{name} must be a positive integer, got {value!r}")


def check_dense(name: str, data: torch.Tensor, ndim: int):
    """
    Check a dense tensor argument

    Parameters
    ----------
    name: str
        argument name used in the error message
    data: torch.Tensor
        the tensor to check
    ndim: int
        required number of dimensions (1 for vectors, 2 for matrices)
    """
    if data is None:
        raise ContractViolation(f"{name} must not be None")
    if not isinstance(data, torch.Tensor):
        raise ContractViolation(f"{name} must be a torch.Tensor, got {type(data).__name__}")
    if data.ndim != ndim:
        expected = "[n]" if ndim == 1 else "[m, n]"
        raise ShapeException(name, tuple(data.shape), expected)
    if any(s == 0 for s in data.shape):
        raise ShapeException(name, tuple(data.shape), "non-empty")


def check_index(row: int, col: int, num_rows: int, num_cols: int):
    """
    Check a local (row, col) index against the local matrix bounds
    """
    if not (0 <= row < num_rows and 0 <= col < num_cols):
        raise IndexException((row, col), (num_rows, num_cols))
