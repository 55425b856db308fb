"""
Process-group primitives used by the distributed matrix algebra and the
static SVD.

Every function takes an optional ``group`` (a ``torch.distributed`` process
group, ``None`` for the default group). When ``torch.distributed`` is not
available or no process group has been initialized, the functions behave as a
group of one process: rank 0, world size 1, and collectives return their
input unchanged.

All collectives here must be called by every process of the group, in the
same order and with compatible shapes.
"""

import torch
from typing import List, Sequence, Tuple

try:
    import torch.distributed as dist
    DIST_AVAILABLE = True
except ImportError:
    DIST_AVAILABLE = False


def is_initialized() -> bool:
    """Check if a torch.distributed process group is active"""
    return DIST_AVAILABLE and dist.is_available() and dist.is_initialized()


def get_rank(group=None) -> int:
    """Rank of this process in ``group`` (0 when not distributed)"""
    if not is_initialized():
        return 0
    return dist.get_rank(group)


def get_world_size(group=None) -> int:
    """Number of processes in ``group`` (1 when not distributed)"""
    if not is_initialized():
        return 1
    return dist.get_world_size(group)


def _comm_device(tensor: torch.Tensor, group=None) -> torch.device:
    # NCCL only moves CUDA tensors
    if dist.get_backend(group) == 'nccl' and not tensor.is_cuda:
        return torch.device('cuda', torch.cuda.current_device())
    return tensor.device


def all_reduce_sum(value: torch.Tensor, group=None) -> torch.Tensor:
    """
    Sum ``value`` over all processes.

    Returns a new tensor; ``value`` is left untouched.
    """
    result = value.clone()
    if not is_initialized():
        return result
    device = _comm_device(result, group)
    result = result.to(device)
    dist.all_reduce(result, op=dist.ReduceOp.SUM, group=group)
    return result.to(value.device)


def all_gather_sizes(sizes: Sequence[int], group=None) -> List[Tuple[int, ...]]:
    """
    Exchange a small tuple of integers with every process.

    Parameters
    ----------
    sizes : Sequence[int]
        Local integers, same length on every process
    group : optional
        Process group

    Returns
    -------
    List[Tuple[int, ...]]
        One tuple per rank, in rank order
    """
    local = torch.tensor(list(sizes), dtype=torch.int64)
    if not is_initialized():
        return [tuple(local.tolist())]

    device = _comm_device(local, group)
    local = local.to(device)
    gathered = [torch.zeros_like(local) for _ in range(get_world_size(group))]
    dist.all_gather(gathered, local, group=group)
    return [tuple(t.cpu().tolist()) for t in gathered]


def all_gather_rows(
    block: torch.Tensor,
    row_counts: Sequence[int],
    group=None
) -> List[torch.Tensor]:
    """
    All-gather 2D blocks whose row counts differ between processes.

    Blocks are padded to the largest row count before the exchange and
    trimmed afterwards, so the result is exact for uneven partitions.

    Parameters
    ----------
    block : torch.Tensor
        Local block [row_counts[rank], num_cols]
    row_counts : Sequence[int]
        Row count of every rank's block (from :func:`all_gather_sizes`)
    group : optional
        Process group

    Returns
    -------
    List[torch.Tensor]
        Every rank's block, in rank order, on ``block.device``
    """
    if not is_initialized():
        return [block.clone()]

    num_cols = block.size(1)
    max_rows = max(row_counts)
    device = _comm_device(block, group)

    padded = torch.zeros(max_rows, num_cols, dtype=block.dtype, device=device)
    padded[:block.size(0)] = block.to(device)
    gathered = [torch.zeros_like(padded) for _ in range(len(row_counts))]
    dist.all_gather(gathered, padded, group=group)

    return [g[:n].to(block.device) for g, n in zip(gathered, row_counts)]
