"""
torch-rom: Distributed basis generation for reduced-order models in PyTorch

Builds a reduced basis of a large dynamical system from state snapshots
("samples") whose rows are spread over the processes of a torch.distributed
process group.

Components
----------
- Matrix / Vector: dense containers, either undistributed (replicated on every
  process) or distributed by contiguous row blocks
- StaticSVD: collects samples, gathers them and computes the spatial basis,
  temporal basis and singular values with a dense SVD
- Dense SVD backends: PyTorch (torch.linalg.svd) and SciPy (LAPACK)

Usage
-----
>>> import torch
>>> from torch_rom import StaticSVD
>>>
>>> svd = StaticSVD(dim=3, samples_per_time_interval=10)
>>> svd.take_sample(torch.tensor([1.0, 0.0, 0.0]), time=0.0)
>>> svd.take_sample(torch.tensor([0.0, 1.0, 0.0]), time=1.0)
>>> U = svd.get_spatial_basis()       # DistributedMatrix [3, 2]
>>> S = svd.get_singular_values()     # UndistributedMatrix [2, 2]
>>> V = svd.get_temporal_basis()      # UndistributedMatrix [2, 2]
>>>
>>> # Multi-process: initialize torch.distributed first, each rank passes its
>>> # own rows of every sample
>>> import torch.distributed as dist
>>> dist.init_process_group('gloo')
>>> svd = StaticSVD(dim=local_rows, samples_per_time_interval=100)
"""

from .check import (
    ContractViolation,
    ShapeException,
    DistributionException,
    IndexException,
    NumericalFailure,
)

from .comm import (
    get_rank,
    get_world_size,
    all_gather_sizes,
    all_gather_rows,
    all_reduce_sum,
)

from .partition import (
    RowPartition,
    partition_simple,
)

from .vector import Vector

from .matrix import (
    Matrix,
    DistributedMatrix,
    UndistributedMatrix,
)

from .backends import (
    dense_svd,
    get_available_backends,
    select_backend,
    BACKEND_NAMES,
    BackendType,
)

from .rank import (
    RankPolicy,
    KeepAll,
    FixedRank,
    ToleranceRank,
    retained_rank,
)

from .sampler import (
    SampleCollector,
    SVDState,
)

from .static_svd import (
    SVD,
    StaticSVD,
    SVDFactorizer,
    BasisTriple,
)

__version__ = "0.1.0"

__all__ = [
    # Errors
    "ContractViolation",
    "ShapeException",
    "DistributionException",
    "IndexException",
    "NumericalFailure",
    # Process group
    "get_rank",
    "get_world_size",
    "all_gather_sizes",
    "all_gather_rows",
    "all_reduce_sum",
    "RowPartition",
    "partition_simple",
    # Containers
    "Vector",
    "Matrix",
    "DistributedMatrix",
    "UndistributedMatrix",
    # Dense SVD
    "dense_svd",
    "get_available_backends",
    "select_backend",
    "BACKEND_NAMES",
    "BackendType",
    # Rank policies
    "RankPolicy",
    "KeepAll",
    "FixedRank",
    "ToleranceRank",
    "retained_rank",
    # Static SVD
    "SampleCollector",
    "SVDState",
    "SVD",
    "StaticSVD",
    "SVDFactorizer",
    "BasisTriple",
    # Version
    "__version__",
]
