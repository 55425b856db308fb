"""
Rank retention policies.

A policy maps the descending singular values of the assembled sample matrix
to the number ``k`` of singular values and vectors that are kept. Policies are
plain callables, so any ``f(S: torch.Tensor) -> int`` can be passed to
:class:`~torch_rom.static_svd.StaticSVD`.

The result is clamped to ``[1, len(S)]`` by :func:`retained_rank`.
"""

import torch
from typing import Callable, Optional

from .check import ContractViolation

RankPolicy = Callable[[torch.Tensor], int]


class KeepAll:
    """Keep every singular value (no truncation)."""

    def __call__(self, S: torch.Tensor) -> int:
        return S.numel()

    def __repr__(self) -> str:
        return "KeepAll()"


class FixedRank:
    """Keep at most ``k`` singular values."""

    def __init__(self, k: int):
        if k <= 0:
            raise ContractViolation(f"k must be positive, got {k}")
        self.k = k

    def __call__(self, S: torch.Tensor) -> int:
        return min(self.k, S.numel())

    def __repr__(self) -> str:
        return f"FixedRank(k={self.k})"


class ToleranceRank:
    """
    Drop singular values below ``atol`` or below ``rtol`` times the largest
    one, optionally also bounding the l2 truncation error.

    Parameters
    ----------
    rtol : float
        Relative threshold w.r.t. ``S[0]``
    atol : float
        Absolute threshold
    l2_err : float
        Keep the fewest values such that the discarded energy
        ``sqrt(sum(S[k:]**2))`` does not exceed ``l2_err`` (0 disables)
    max_rank : int, optional
        Upper bound on the result
    """

    def __init__(
        self,
        rtol: float = 1e-7,
        atol: float = 0.,
        l2_err: float = 0.,
        max_rank: Optional[int] = None
    ):
        if rtol < 0 or atol < 0 or l2_err < 0:
            raise ContractViolation("rtol, atol and l2_err must be non-negative")
        self.rtol = rtol
        self.atol = atol
        self.l2_err = l2_err
        self.max_rank = max_rank

    def __call__(self, S: torch.Tensor) -> int:
        if S.numel() == 0:
            return 0
        threshold = max(self.atol, self.rtol * S[0].item())
        k = int((S > threshold).sum().item())

        if self.l2_err > 0:
            # tail[i] = sqrt(sum(S[i:]**2)), tail[n] = 0
            tail = torch.cat([S.flip(0).square().cumsum(0).flip(0).sqrt(),
                              S.new_zeros(1)])
            k = min(k, int(torch.nonzero(tail <= self.l2_err)[0].item()))

        if self.max_rank is not None:
            k = min(k, self.max_rank)
        return k

    def __repr__(self) -> str:
        return (f"ToleranceRank(rtol={self.rtol}, atol={self.atol}, "
                f"l2_err={self.l2_err}, max_rank={self.max_rank})")


def retained_rank(policy: RankPolicy, S: torch.Tensor, rank_budget: Optional[int] = None) -> int:
    """
    Apply ``policy`` to ``S`` and clamp the result.

    Parameters
    ----------
    policy : RankPolicy
        Rank retention policy
    S : torch.Tensor
        [r] singular values, descending
    rank_budget : int, optional
        Additional upper bound (rank growth allowed by the sampler)

    Returns
    -------
    k : int
        Number of retained values, ``1 <= k <= len(S)``
    """
    k = int(policy(S))
    if rank_budget is not None:
        k = min(k, rank_budget)
    return max(1, min(k, S.numel()))
