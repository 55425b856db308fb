"""
PyTorch-native dense SVD (CPU & CUDA) via ``torch.linalg.svd``.
"""

import torch
from typing import Tuple


def torch_svd(A: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """
    Thin SVD of a dense matrix.

    Parameters
    ----------
    A : torch.Tensor
        [m, n] dense matrix

    Returns
    -------
    U : torch.Tensor
        [m, r] left singular vectors
    S : torch.Tensor
        [r] singular values, descending
    V : torch.Tensor
        [n, r] right singular vectors (not transposed)
    """
    U, S, Vh = torch.linalg.svd(A, full_matrices=False)
    return U, S, Vh.mT.contiguous()
