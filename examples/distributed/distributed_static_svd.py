#!/usr/bin/env python
"""
Distributed Static SVD Example

Snapshots of a travelling wave u(x, t) = sin(x - t) + 0.5 sin(3x + 2t) on a
1D grid whose points are split over the ranks. The static SVD recovers the
four modes spanning the snapshots.

Usage:
    torchrun --standalone --nproc_per_node=4 distributed_static_svd.py
"""

import math
import torch
import torch.distributed as dist
from torch_rom import StaticSVD, RowPartition, partition_simple, ToleranceRank


def main():
    # Initialize distributed
    dist.init_process_group(backend='gloo')
    rank = dist.get_rank()
    world_size = dist.get_world_size()

    if rank == 0:
        print("=" * 60)
        print("Distributed Static SVD")
        print(f"  World size: {world_size}")
        print("=" * 60)

    # Grid points, split into contiguous blocks
    n = 200
    num_steps = 40
    partition = RowPartition(rank=rank, row_counts=tuple(partition_simple(n, world_size)))
    x = torch.linspace(0, 2 * math.pi, n, dtype=torch.float64)[partition.local_slice]

    svd = StaticSVD(
        dim=partition.num_local,
        samples_per_time_interval=num_steps,
        rank_policy=ToleranceRank(rtol=1e-10),
    )

    for step in range(num_steps):
        t = 0.05 * step
        u = torch.sin(x - t) + 0.5 * torch.sin(3 * x + 2 * t)
        svd.take_sample(u, t)

    U = svd.get_spatial_basis()
    S = svd.get_singular_values()

    print(f"[Rank {rank}] spatial basis rows {partition.local_slice.start}-"
          f"{partition.local_slice.stop - 1}: {U.num_rows}x{U.num_columns}")
    dist.barrier()

    if rank == 0:
        print(f"\nSingular values: {torch.diagonal(S.data).tolist()}")
        print("\n" + "=" * 60)
        print("Static SVD completed!")
        print("=" * 60)

    dist.destroy_process_group()


if __name__ == "__main__":
    main()
