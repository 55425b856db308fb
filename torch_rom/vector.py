"""
Dense vector that is either replicated on every process or distributed by
contiguous blocks of entries.
"""

import torch
from typing import Union

from .check import ContractViolation, DistributionException, ShapeException, IndexException, check_dense
from .comm import all_reduce_sum


class Vector:
    """
    Dense vector, distributed or undistributed.

    Attributes
    ----------
    data : torch.Tensor
        Local entries [dim]. Owned by the vector (inputs are copied).
    distributed : bool
        If True, ``data`` is this process's block of a longer global vector.
        If False, every process holds the same complete vector.
    group : optional
        Process group used by the collective operations.

    Example
    -------
    >>> v = Vector(torch.tensor([1.0, 2.0]), distributed=True)
    >>> v.dim
    2
    >>> v.norm()  # all-reduces over the process group
    """

    def __init__(self, data: torch.Tensor, distributed: bool, group=None):
        check_dense("data", data, 1)
        self.data = data.detach().clone().contiguous()
        self._distributed = bool(distributed)
        self.group = group

    @classmethod
    def zeros(
        cls,
        dim: int,
        distributed: bool,
        dtype: torch.dtype = torch.float64,
        device: Union[str, torch.device] = 'cpu',
        group=None
    ) -> "Vector":
        return cls(torch.zeros(dim, dtype=dtype, device=device), distributed, group=group)

    @property
    def dim(self) -> int:
        """Local length when distributed, total length otherwise"""
        return self.data.size(0)

    @property
    def distributed(self) -> bool:
        return self._distributed

    @property
    def dtype(self) -> torch.dtype:
        return self.data.dtype

    @property
    def device(self) -> torch.device:
        return self.data.device

    def __len__(self) -> int:
        return self.dim

    def item(self, i: int) -> float:
        if not 0 <= i < self.dim:
            raise IndexException(i, (self.dim,))
        return self.data[i].item()

    def __getitem__(self, i: int) -> float:
        return self.item(i)

    def __setitem__(self, i: int, value: float):
        if not 0 <= i < self.dim:
            raise IndexException(i, (self.dim,))
        self.data[i] = value

    def inner_product(self, other: "Vector") -> float:
        """
        Inner product with ``other``.

        Both vectors must have the same distribution and local length.
        Distributed vectors all-reduce their local partial sums.
        """
        if not isinstance(other, Vector):
            raise ContractViolation("inner_product expects a Vector")
        if self.distributed != other.distributed:
            raise DistributionException("inner_product", self.distributed, other.distributed)
        if self.dim != other.dim:
            raise ShapeException("other", (other.dim,), f"[{self.dim}]")
        local = torch.dot(self.data, other.data)
        if self.distributed:
            local = all_reduce_sum(local, self.group)
        return local.item()

    def norm(self) -> float:
        return self.inner_product(self) ** 0.5

    def clone(self) -> "Vector":
        return Vector(self.data, self.distributed, group=self.group)

    def __copy__(self) -> "Vector":
        return self.clone()

    def __deepcopy__(self, memo) -> "Vector":
        return self.clone()

    def __repr__(self) -> str:
        kind = "distributed" if self.distributed else "undistributed"
        return f"Vector(dim={self.dim}, {kind}, dtype={self.dtype})"
