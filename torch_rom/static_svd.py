"""
Static SVD: basis generation by a full SVD of all samples of a time interval.

Every process holds its own rows of each sample. A factorization pass
gathers the rows of every process into one dense sample matrix that is
identical on all processes, factors it with a dense SVD kernel and keeps:

- the spatial basis (left singular vectors), distributed by rows like the
  samples
- the temporal basis (right singular vectors), undistributed
- the singular values, as an undistributed diagonal matrix

The gather moves the whole sample matrix to every process, so this algorithm
does not scale; it serves as the reference for incremental variants.

Example
-------
>>> import torch.distributed as dist
>>> from torch_rom import StaticSVD
>>>
>>> dist.init_process_group('gloo')
>>> svd = StaticSVD(dim=local_rows, samples_per_time_interval=100)
>>> for step, t in enumerate(times):
>>>     svd.take_sample(local_state[step], t)
>>>
>>> U = svd.get_spatial_basis()      # DistributedMatrix [local_rows, k]
>>> S = svd.get_singular_values()    # UndistributedMatrix [k, k]
>>> V = svd.get_temporal_basis()     # UndistributedMatrix [num_samples, k]
"""

import abc
import torch
from typing import List, Optional, Tuple, Union
from dataclasses import dataclass

from .backends import BACKEND_NAMES, BackendType, dense_svd
from .check import ContractViolation, ShapeException, check_positive
from .comm import all_gather_rows, all_gather_sizes, get_rank
from .matrix import DistributedMatrix, Matrix, UndistributedMatrix
from .partition import RowPartition
from .rank import KeepAll, RankPolicy, retained_rank
from .sampler import SampleCollector, SVDState
from .vector import Vector


@dataclass(frozen=True)
class BasisTriple:
    """
    Result of one factorization pass; replaced as a whole, never updated.

    The three matrices are read-only (see :meth:`Matrix.freeze`).
    """
    spatial_basis: DistributedMatrix        # [dim_local, k]
    temporal_basis: UndistributedMatrix     # [num_samples, k]
    singular_values: UndistributedMatrix    # [k, k] diagonal

    @property
    def rank(self) -> int:
        return self.spatial_basis.num_columns

    def project(self, u: Vector) -> Vector:
        """Reduced coordinates ``U^T u`` of a distributed state (collective)."""
        return self.spatial_basis.transpose_multiply(u)

    def lift(self, coefficients: Vector) -> Vector:
        """Distributed state ``U c`` from undistributed reduced coordinates."""
        return self.spatial_basis.multiply(coefficients)

    def reconstruct(self) -> DistributedMatrix:
        """This process's rows of ``U S V^T``."""
        return self.spatial_basis.multiply(
            self.singular_values.multiply(self.temporal_basis.transpose()))


class SVD(abc.ABC):
    """
    Interface shared by the basis generation algorithms.

    Parameters
    ----------
    dim : int
        Dimension of the system on this process
    samples_per_time_interval : int
        Maximum number of samples collected in a time interval
    debug_algorithm : bool
        If True, results of the algorithm are printed (rank 0 only)
    """

    def __init__(self, dim: int, samples_per_time_interval: int, debug_algorithm: bool = False):
        check_positive("dim", dim)
        check_positive("samples_per_time_interval", samples_per_time_interval)
        self.dim = dim
        self.samples_per_time_interval = samples_per_time_interval
        self.debug_algorithm = debug_algorithm

    @abc.abstractmethod
    def take_sample(
        self,
        u_in: Union[torch.Tensor, Vector],
        time: float,
        add_without_increase: bool = False
    ) -> bool:
        """Collect the new sample ``u_in`` at simulation ``time``."""

    @abc.abstractmethod
    def get_spatial_basis(self) -> DistributedMatrix:
        ...

    @abc.abstractmethod
    def get_temporal_basis(self) -> UndistributedMatrix:
        ...

    @abc.abstractmethod
    def get_singular_values(self) -> UndistributedMatrix:
        ...

    @property
    @abc.abstractmethod
    def num_samples(self) -> int:
        ...

    @property
    @abc.abstractmethod
    def time_interval_start_times(self) -> List[float]:
        ...

    @abc.abstractmethod
    def is_new_time(self, time: float) -> bool:
        ...

    @property
    def num_basis_time_intervals(self) -> int:
        return len(self.time_interval_start_times)

    def get_basis_interval_start_time(self, which_interval: int) -> float:
        if not 0 <= which_interval < self.num_basis_time_intervals:
            raise ContractViolation(
                f"interval {which_interval} out of range [0, {self.num_basis_time_intervals})")
        return self.time_interval_start_times[which_interval]


class SVDFactorizer:
    """
    One factorization pass: gather, dense SVD, redistribute.

    Parameters
    ----------
    rank_policy : RankPolicy, optional
        Chooses the retained rank from the singular values (default: keep all)
    backend : str
        Dense SVD backend, see :func:`torch_rom.backends.dense_svd`
    group : optional
        Process group
    debug_algorithm : bool
        Print the assembled matrix and the factors on rank 0
    """

    def __init__(
        self,
        rank_policy: Optional[RankPolicy] = None,
        backend: BackendType = 'auto',
        group=None,
        debug_algorithm: bool = False
    ):
        if backend != 'auto' and backend not in BACKEND_NAMES:
            raise ValueError(f"Unknown backend '{backend}', available: {BACKEND_NAMES + ['auto']}")
        self.rank_policy = rank_policy if rank_policy is not None else KeepAll()
        self.backend = backend
        self.group = group
        self.debug_algorithm = debug_algorithm

    def gather(self, local_block: torch.Tensor) -> Tuple[torch.Tensor, RowPartition]:
        """
        Assemble the global sample matrix on every process (collective).

        Parameters
        ----------
        local_block : torch.Tensor
            This process's rows of the samples [dim_local, num_samples]

        Returns
        -------
        A : torch.Tensor
            Global sample matrix [dim_global, num_samples], same on all ranks
        partition : RowPartition
            Row layout of ``A`` over the processes
        """
        sizes = all_gather_sizes(list(local_block.shape), self.group)
        num_samples = local_block.size(1)
        if any(n != num_samples for _, n in sizes):
            raise ShapeException("local_block", tuple(local_block.shape),
                                 f"same number of samples on every rank, got {[n for _, n in sizes]}")

        partition = RowPartition(rank=get_rank(self.group),
                                 row_counts=tuple(rows for rows, _ in sizes))
        blocks = all_gather_rows(local_block, partition.row_counts, self.group)
        return torch.cat(blocks, dim=0), partition

    def factorize(self, local_block: torch.Tensor, rank_budget: Optional[int] = None) -> BasisTriple:
        """
        Compute the basis triple of the samples (collective).

        Raises
        ------
        NumericalFailure
            If the dense kernel cannot factor the sample matrix
        """
        A, partition = self.gather(local_block)
        U, S, V = dense_svd(A, backend=self.backend)
        k = retained_rank(self.rank_policy, S, rank_budget)

        spatial = DistributedMatrix(U[partition.local_slice, :k], group=self.group).freeze()
        temporal = UndistributedMatrix(V[:, :k]).freeze()
        singular = Matrix.diag(S[:k]).freeze()

        if self.debug_algorithm and partition.rank == 0:
            self._print_pass(A, S, k, partition)
        return BasisTriple(spatial, temporal, singular)

    def _print_pass(self, A: torch.Tensor, S: torch.Tensor, k: int, partition: RowPartition):
        """Print the factorization pass for debugging"""
        print(f"[Rank {partition.rank}] Static SVD of {A.size(0)}x{A.size(1)} sample matrix "
              f"(row counts {list(partition.row_counts)}), "
              f"backend={self.backend}, kept {k}/{S.numel()}")
        print(f"  - Sample matrix:\n{A}")
        print(f"  - Singular values: {S.tolist()}")


class StaticSVD(SVD):
    """
    Static SVD algorithm over a fixed process group.

    :meth:`take_sample` and the ``get_*`` methods are collective: every
    process of ``group`` must call them in the same order.

    Parameters
    ----------
    dim : int
        Dimension of the system on this process
    samples_per_time_interval : int
        Maximum number of samples in a time interval; the next sample starts
        a new interval
    debug_algorithm : bool
        Print every factorization pass on rank 0
    rank_policy : RankPolicy, optional
        Retained rank policy (default: keep all singular values)
    backend : str
        Dense SVD backend: 'auto', 'pytorch' or 'scipy'
    group : optional
        torch.distributed process group (default group if None)
    dtype, device
        Storage of the samples and the bases
    """

    def __init__(
        self,
        dim: int,
        samples_per_time_interval: int,
        debug_algorithm: bool = False,
        rank_policy: Optional[RankPolicy] = None,
        backend: BackendType = 'auto',
        group=None,
        dtype: torch.dtype = torch.float64,
        device: Union[str, torch.device] = 'cpu'
    ):
        super().__init__(dim, samples_per_time_interval, debug_algorithm)
        self.group = group
        self._collector = SampleCollector(dim, samples_per_time_interval,
                                          dtype=dtype, device=device, group=group)
        self._factorizer = SVDFactorizer(rank_policy=rank_policy, backend=backend,
                                         group=group, debug_algorithm=debug_algorithm)
        self._basis: Optional[BasisTriple] = None
        self.num_factorizations = 0

    @property
    def state(self) -> SVDState:
        return self._collector.state

    @property
    def num_samples(self) -> int:
        return self._collector.num_samples

    @property
    def time_interval_start_times(self) -> List[float]:
        return list(self._collector.time_interval_start_times)

    @property
    def sample_times(self) -> List[float]:
        return self._collector.sample_times

    @property
    def rank_budget(self) -> int:
        return self._collector.rank_budget

    def is_new_time(self, time: float) -> bool:
        return self._collector.is_new_time(time)

    def take_sample(
        self,
        u_in: Union[torch.Tensor, Vector],
        time: float,
        add_without_increase: bool = False
    ) -> bool:
        """
        Collect the new sample ``u_in`` at simulation ``time``.

        Parameters
        ----------
        u_in : torch.Tensor or Vector
            This process's part of the sample [dim]
        time : float
            Simulation time, non-negative
        add_without_increase : bool
            The sample was found linearly dependent on the previous ones; it
            is stored but does not raise the retained rank

        Returns
        -------
        bool
            True if the sample was taken. False for zero or non-finite
            samples, which leave the state unchanged.
        """
        new_interval = self._collector.is_new_time(time)
        if not self._collector.add(u_in, time, add_without_increase):
            return False
        if new_interval:
            self._basis = None
        return True

    def compute_svd(self) -> BasisTriple:
        """
        Run a factorization pass now, regardless of the cached basis.

        The cached triple is only replaced once the pass has succeeded.
        """
        if self._collector.state is SVDState.EMPTY:
            raise ContractViolation("no samples taken in the current time interval")
        basis = self._factorizer.factorize(self._collector.sample_matrix(),
                                           self._collector.rank_budget)
        self._basis = basis
        self.num_factorizations += 1
        self._collector.mark_current()
        return basis

    def get_basis(self) -> BasisTriple:
        """Basis triple of the current interval, computed if stale."""
        if not self._collector.is_current:
            self.compute_svd()
        return self._basis

    def get_spatial_basis(self) -> DistributedMatrix:
        """Spatial basis [dim, k], distributed like the samples."""
        return self.get_basis().spatial_basis

    def get_temporal_basis(self) -> UndistributedMatrix:
        """Temporal basis [num_samples, k], undistributed."""
        return self.get_basis().temporal_basis

    def get_singular_values(self) -> UndistributedMatrix:
        """Singular values as an undistributed diagonal matrix [k, k]."""
        return self.get_basis().singular_values

    def __repr__(self) -> str:
        return (f"StaticSVD(dim={self.dim}, num_samples={self.num_samples}/"
                f"{self.samples_per_time_interval}, state={self.state.value}, "
                f"factorizations={self.num_factorizations})")
