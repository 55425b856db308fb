#!/usr/bin/env python
"""
Basic usage of torch_rom in a single process.

Usage:
    python basic_usage.py
"""

import torch
from torch_rom import StaticSVD, FixedRank, Vector


def main():
    torch.manual_seed(0)
    dim, num_samples = 50, 8

    # Snapshots of rank 3 plus small noise
    modes = torch.randn(dim, 3, dtype=torch.float64)
    coefficients = torch.randn(3, num_samples, dtype=torch.float64)
    snapshots = modes @ coefficients + 1e-6 * torch.randn(dim, num_samples, dtype=torch.float64)

    svd = StaticSVD(dim=dim, samples_per_time_interval=num_samples, rank_policy=FixedRank(3))
    for j in range(num_samples):
        svd.take_sample(snapshots[:, j], time=0.1 * j)

    basis = svd.get_basis()
    print(f"Retained rank: {basis.rank}")
    print(f"Singular values: {torch.diagonal(basis.singular_values.data).tolist()}")

    error = (basis.reconstruct().data - snapshots).norm() / snapshots.norm()
    print(f"Relative reconstruction error: {error:.2e}")

    # Reduced coordinates of the first snapshot and back
    u = Vector(snapshots[:, 0], distributed=True)
    c = basis.project(u)
    u_approx = basis.lift(c)
    print(f"Projection error: {(u_approx.data - u.data).norm():.2e}")


if __name__ == "__main__":
    main()
