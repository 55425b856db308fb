"""
Per-process sample buffer of the static SVD.

Samples are grouped in time intervals of at most ``samples_per_time_interval``
samples. A sample arriving when the current interval is full starts a new
interval and drops the samples of the previous one.
"""

import enum
import warnings
import torch
from typing import List, Union

from .check import ContractViolation, ShapeException, check_positive
from .comm import all_reduce_sum
from .vector import Vector


class SVDState(enum.Enum):
    EMPTY = "empty"                   # no sample in the current interval
    ACCUMULATING = "accumulating"     # samples present, basis stale
    BASIS_CURRENT = "basis_current"   # basis computed, no sample since


class SampleCollector:
    """
    Buffer of this process's sample columns for the current time interval.

    Attributes
    ----------
    dim : int
        Length of every sample on this process (local rows of the state)
    samples_per_time_interval : int
        Maximum number of samples of one time interval
    rank_budget : int
        Upper bound on the retained rank. Grows by one per sample except for
        samples taken with ``add_without_increase``.
    time_interval_start_times : List[float]
        Simulation time of the first sample of every interval seen so far
    state : SVDState
    group : optional
        Process group; :meth:`add` is collective over it
    """

    def __init__(
        self,
        dim: int,
        samples_per_time_interval: int,
        dtype: torch.dtype = torch.float64,
        device: Union[str, torch.device] = 'cpu',
        group=None
    ):
        check_positive("dim", dim)
        check_positive("samples_per_time_interval", samples_per_time_interval)
        self.dim = dim
        self.samples_per_time_interval = samples_per_time_interval
        self.dtype = dtype
        self.device = torch.device(device) if isinstance(device, str) else device
        self.group = group

        self._samples: List[torch.Tensor] = []
        self._times: List[float] = []
        self.rank_budget = 0
        self.time_interval_start_times: List[float] = []
        self.state = SVDState.EMPTY

    @property
    def num_samples(self) -> int:
        """Samples in the current time interval"""
        return len(self._samples)

    @property
    def sample_times(self) -> List[float]:
        return list(self._times)

    @property
    def is_current(self) -> bool:
        return self.state is SVDState.BASIS_CURRENT

    def is_new_time(self, time: float) -> bool:
        """True if a sample taken now would start a new time interval."""
        return (not self.time_interval_start_times
                or self.num_samples >= self.samples_per_time_interval)

    def _as_column(self, u_in: Union[torch.Tensor, Vector]) -> torch.Tensor:
        if u_in is None:
            raise ContractViolation("u_in must not be None")
        if isinstance(u_in, Vector):
            u_in = u_in.data
        if not isinstance(u_in, torch.Tensor):
            raise ContractViolation(f"u_in must be a torch.Tensor or Vector, got {type(u_in).__name__}")
        if u_in.ndim != 1 or u_in.size(0) != self.dim:
            raise ShapeException("u_in", tuple(u_in.shape), f"[{self.dim}]")
        return u_in.detach().to(dtype=self.dtype, device=self.device).clone()

    def add(
        self,
        u_in: Union[torch.Tensor, Vector],
        time: float,
        add_without_increase: bool = False
    ) -> bool:
        """
        Copy ``u_in`` into the buffer (collective: the refusal checks count
        zero and non-finite entries over all ranks).

        Returns
        -------
        bool
            False if the sample was refused (all zeros or not finite); the
            collector is unchanged in that case.
        """
        column = self._as_column(u_in)
        if not time >= 0:
            raise ContractViolation(f"time must be non-negative, got {time}")

        # Entry counts summed over ranks, so every rank takes the same decision
        counts = torch.stack([(~torch.isfinite(column)).sum(), (column != 0).sum()])
        num_non_finite, num_nonzero = all_reduce_sum(counts, self.group).tolist()
        if num_non_finite > 0:
            warnings.warn(f"Sample at time {time} has non-finite entries, ignored")
            return False
        if num_nonzero == 0:
            warnings.warn(f"Sample at time {time} is zero, ignored")
            return False

        if self.is_new_time(time):
            self.start_interval(time)

        self._samples.append(column)
        self._times.append(float(time))
        # The first sample of an interval always adds rank
        if not add_without_increase or self.rank_budget == 0:
            self.rank_budget += 1
        self.state = SVDState.ACCUMULATING
        return True

    def start_interval(self, time: float) -> None:
        """Drop the current samples and open a new interval at ``time``."""
        self._samples = []
        self._times = []
        self.rank_budget = 0
        self.time_interval_start_times.append(float(time))
        self.state = SVDState.EMPTY

    def sample_matrix(self) -> torch.Tensor:
        """Local samples as columns [dim, num_samples]"""
        if not self._samples:
            raise ContractViolation("no samples in the current time interval")
        return torch.stack(self._samples, dim=1)

    def mark_current(self) -> None:
        self.state = SVDState.BASIS_CURRENT

    def __repr__(self) -> str:
        return (f"SampleCollector(dim={self.dim}, num_samples={self.num_samples}/"
                f"{self.samples_per_time_interval}, rank_budget={self.rank_budget}, "
                f"state={self.state.value})")
