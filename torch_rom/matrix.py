"""
Dense matrices whose rows may be distributed across processes.

Only the operations needed by the basis generation algorithms are provided.
A matrix is one of two variants:

- :class:`UndistributedMatrix`: every process holds the same complete matrix.
- :class:`DistributedMatrix`: every process holds a contiguous block of rows;
  blocks may differ in size, the number of columns is the same everywhere.

Which operand combinations an operation accepts is declared once in the rule
tables of :class:`Matrix` and checked in :meth:`Matrix._rule`.

Example
-------
>>> from torch_rom import Matrix, Vector
>>>
>>> # Each rank holds its own rows of a tall matrix
>>> A = Matrix.from_tensor(local_rows, distributed=True)
>>> B = Matrix.from_tensor(small, distributed=False)
>>>
>>> C = A @ B                      # distributed, no communication
>>> G = A.transpose_multiply(A)    # undistributed, all-reduce over ranks
"""

import torch
from typing import Dict, Tuple, Union

from .check import (
    ContractViolation,
    DistributionException,
    ShapeException,
    check_dense,
    check_index,
    check_positive,
)
from .comm import all_gather_rows, all_gather_sizes, all_reduce_sum
from .partition import RowPartition
from .vector import Vector

# (self.distributed, other.distributed) -> result is distributed
_MULTIPLY_RULES: Dict[Tuple[bool, bool], bool] = {
    (False, False): False,
    (True, False): True,
}

_MULTIPLY_VECTOR_RULES: Dict[Tuple[bool, bool], bool] = {
    (True, False): True,
}

# (self.distributed, other.distributed) -> partial products are all-reduced
_TRANSPOSE_MULTIPLY_RULES: Dict[Tuple[bool, bool], bool] = {
    (False, False): False,
    (True, True): True,
}

_TRANSPOSE_MULTIPLY_VECTOR_RULES: Dict[Tuple[bool, bool], bool] = {
    (True, True): True,
}


class Matrix:
    """
    Dense matrix, base of the distributed and undistributed variants.

    Do not instantiate directly; use :meth:`Matrix.zeros`,
    :meth:`Matrix.from_tensor` or one of the variants.

    Attributes
    ----------
    data : torch.Tensor
        Local values [num_rows, num_columns], row-major and owned by the
        matrix. Inputs are always copied.
    group : optional
        Process group used by collective operations (distributed only).
    read_only : bool
        If True, :meth:`set_item` is rejected. Set on matrices that are
        shared from a cache; :meth:`clone` returns a writable copy.
    """

    distributed: bool

    def __init__(self, data: torch.Tensor, group=None):
        if type(self) is Matrix:
            raise TypeError("Matrix is abstract; use Matrix.zeros or Matrix.from_tensor")
        check_dense("data", data, 2)
        self.data = data.detach().clone().contiguous()
        self.group = group
        self.read_only = False

    @staticmethod
    def variant(distributed: bool) -> type:
        return DistributedMatrix if distributed else UndistributedMatrix

    @classmethod
    def zeros(
        cls,
        num_rows: int,
        num_cols: int,
        distributed: bool,
        dtype: torch.dtype = torch.float64,
        device: Union[str, torch.device] = 'cpu',
        group=None
    ) -> "Matrix":
        """
        Create a zero matrix.

        Parameters
        ----------
        num_rows : int
            When undistributed, the total number of rows. When distributed,
            the number of rows on this process.
        num_cols : int
            The total number of columns.
        distributed : bool
            If True the rows are spread over all processes.
        """
        check_positive("num_rows", num_rows)
        check_positive("num_cols", num_cols)
        data = torch.zeros(num_rows, num_cols, dtype=dtype, device=device)
        return Matrix.variant(distributed)(data, group=group)

    @classmethod
    def from_tensor(cls, data: torch.Tensor, distributed: bool, group=None) -> "Matrix":
        """Create a matrix holding a copy of ``data``."""
        return Matrix.variant(distributed)(data, group=group)

    @classmethod
    def diag(cls, values: torch.Tensor) -> "UndistributedMatrix":
        """Undistributed square matrix with ``values`` on the diagonal."""
        check_dense("values", values, 1)
        return UndistributedMatrix(torch.diag(values))

    @property
    def num_rows(self) -> int:
        """Rows held by this process"""
        return self.data.size(0)

    @property
    def num_columns(self) -> int:
        """Total number of columns, same on every process"""
        return self.data.size(1)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.num_rows, self.num_columns)

    @property
    def dtype(self) -> torch.dtype:
        return self.data.dtype

    @property
    def device(self) -> torch.device:
        return self.data.device

    # =========================================================================
    # Legality
    # =========================================================================

    def _rule(self, operation: str, rules: Dict[Tuple[bool, bool], bool], other) -> bool:
        if other is None:
            raise ContractViolation(f"{operation} operand must not be None")
        key = (self.distributed, other.distributed)
        if key not in rules:
            raise DistributionException(operation, *key)
        return rules[key]

    # =========================================================================
    # Algebra
    # =========================================================================

    def multiply(self, other: Union["Matrix", Vector]) -> Union["Matrix", Vector]:
        """
        Multiply this matrix with ``other`` and return the product.

        Supported combinations:

        - undistributed @ undistributed matrix -> undistributed matrix
        - distributed @ undistributed matrix -> distributed matrix
          (same row partition as ``self``)
        - distributed @ undistributed vector -> distributed vector

        No communication is needed since ``other`` is available everywhere.

        Raises
        ------
        DistributionException
            If ``other`` is distributed (or ``self`` is undistributed for a
            vector operand).
        ShapeException
            If ``num_columns != other.num_rows`` (``other.dim`` for vectors).
        """
        if isinstance(other, Vector):
            self._rule("multiply", _MULTIPLY_VECTOR_RULES, other)
            if self.num_columns != other.dim:
                raise ShapeException("other", (other.dim,), f"[{self.num_columns}]")
            return Vector(self.data @ other.data, distributed=True, group=self.group)

        if not isinstance(other, Matrix):
            raise ContractViolation(f"cannot multiply Matrix with {type(other).__name__}")
        result_distributed = self._rule("multiply", _MULTIPLY_RULES, other)
        if self.num_columns != other.num_rows:
            raise ShapeException("other", other.shape, f"[{self.num_columns}, *]")
        return Matrix.from_tensor(self.data @ other.data, result_distributed, group=self.group)

    def transpose_multiply(self, other: Union["Matrix", Vector]) -> Union["Matrix", Vector]:
        """
        Multiply the transpose of this matrix with ``other``.

        Supported combinations:

        - undistributed^T @ undistributed matrix -> undistributed matrix
        - distributed^T @ distributed matrix -> undistributed matrix
        - distributed^T @ distributed vector -> undistributed vector

        For distributed operands every process computes the product of its
        own rows and the partial products are summed over the process group,
        so this is a collective operation.

        Raises
        ------
        DistributionException
            If the operands do not have the same distribution (or the vector
            case is not distributed x distributed).
        ShapeException
            If ``num_rows != other.num_rows`` (``other.dim`` for vectors).
        """
        if isinstance(other, Vector):
            self._rule("transpose_multiply", _TRANSPOSE_MULTIPLY_VECTOR_RULES, other)
            if self.num_rows != other.dim:
                raise ShapeException("other", (other.dim,), f"[{self.num_rows}]")
            partial = self.data.T @ other.data
            return Vector(all_reduce_sum(partial, self.group), distributed=False)

        if not isinstance(other, Matrix):
            raise ContractViolation(f"cannot multiply Matrix with {type(other).__name__}")
        reduce = self._rule("transpose_multiply", _TRANSPOSE_MULTIPLY_RULES, other)
        if self.num_rows != other.num_rows:
            raise ShapeException("other", other.shape, f"[{self.num_rows}, *]")
        product = self.data.T @ other.data
        if reduce:
            product = all_reduce_sum(product, self.group)
        return UndistributedMatrix(product)

    def __matmul__(self, other: Union["Matrix", Vector]) -> Union["Matrix", Vector]:
        return self.multiply(other)

    # =========================================================================
    # Element access (local rows only)
    # =========================================================================

    def item(self, row: int, col: int) -> float:
        """
        Value at local ``row`` and ``col``.

        For distributed matrices ``row`` indexes this process's rows, not the
        global row.
        """
        check_index(row, col, self.num_rows, self.num_columns)
        return self.data[row, col].item()

    def set_item(self, row: int, col: int, value: float) -> None:
        if self.read_only:
            raise ContractViolation(f"{type(self).__name__} is read-only; clone it to modify")
        check_index(row, col, self.num_rows, self.num_columns)
        self.data[row, col] = value

    def __getitem__(self, index: Tuple[int, int]) -> float:
        row, col = index
        return self.item(row, col)

    def __setitem__(self, index: Tuple[int, int], value: float):
        row, col = index
        self.set_item(row, col, value)

    # =========================================================================
    # Utilities
    # =========================================================================

    def get_first_n_columns(self, n: int) -> "Matrix":
        """Copy of the leading ``n`` columns, same distribution and partition."""
        check_positive("n", n)
        if n > self.num_columns:
            raise ShapeException("n", n, f"<= {self.num_columns}")
        return type(self)(self.data[:, :n], group=self.group)

    def freeze(self) -> "Matrix":
        """Mark this matrix read-only and return it."""
        self.read_only = True
        return self

    def to_tensor(self) -> torch.Tensor:
        """Copy of the local values"""
        return self.data.clone()

    def clone(self) -> "Matrix":
        return type(self)(self.data, group=self.group)

    def __copy__(self) -> "Matrix":
        return self.clone()

    def __deepcopy__(self, memo) -> "Matrix":
        return self.clone()

    def __repr__(self) -> str:
        kind = "distributed" if self.distributed else "undistributed"
        return (f"{type(self).__name__}(num_rows={self.num_rows}, "
                f"num_columns={self.num_columns}, {kind}, dtype={self.dtype})")


class UndistributedMatrix(Matrix):
    """Matrix replicated identically on every process."""

    distributed = False

    def transpose(self) -> "UndistributedMatrix":
        return UndistributedMatrix(self.data.T)

    def gather(self) -> "UndistributedMatrix":
        return self.clone()


class DistributedMatrix(Matrix):
    """Matrix whose rows are split in contiguous blocks over the processes."""

    distributed = True

    @classmethod
    def from_global(
        cls,
        global_data: torch.Tensor,
        partition: RowPartition,
        group=None
    ) -> "DistributedMatrix":
        """
        Take this process's rows of a global matrix available on every rank.

        Parameters
        ----------
        global_data : torch.Tensor
            Complete matrix [partition.num_global, num_cols]
        partition : RowPartition
            Row layout; rows ``partition.local_slice`` are kept
        """
        check_dense("global_data", global_data, 2)
        if global_data.size(0) != partition.num_global:
            raise ShapeException("global_data", tuple(global_data.shape),
                                 f"[{partition.num_global}, *]")
        return cls(global_data[partition.local_slice], group=group)

    def partition(self) -> RowPartition:
        """Row layout over the process group (collective)."""
        return RowPartition.gather(self.num_rows, self.group)

    def gather(self) -> UndistributedMatrix:
        """
        Assemble the global matrix on every process (collective).
        """
        sizes = all_gather_sizes([self.num_rows, self.num_columns], self.group)
        if any(cols != self.num_columns for _, cols in sizes):
            raise ShapeException("data", self.shape, "same number of columns on every rank")
        blocks = all_gather_rows(self.data, [rows for rows, _ in sizes], self.group)
        return UndistributedMatrix(torch.cat(blocks, dim=0))
