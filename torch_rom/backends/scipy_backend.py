"""
SciPy backend for the dense SVD (CPU only).

LAPACK drivers:
- 'gesdd': divide and conquer (default), fastest
- 'gesvd': QR iteration, slower but converges in cases where gesdd does not
"""

import torch
import numpy as np
from typing import Tuple, Literal
import warnings

try:
    import scipy.linalg as spla
    SCIPY_AVAILABLE = True
except ImportError:
    SCIPY_AVAILABLE = False

LapackDriver = Literal['gesdd', 'gesvd']


def is_scipy_available() -> bool:
    """Check if SciPy is available"""
    return SCIPY_AVAILABLE


def scipy_svd(
    A: torch.Tensor,
    lapack_driver: LapackDriver = 'gesdd'
) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """
    Thin SVD of a dense matrix using SciPy.

    If ``gesdd`` fails to converge the factorization is retried once with
    ``gesvd``.

    Returns
    -------
    U, S, V : torch.Tensor
        [m, r], [r] and [n, r], on the device and dtype of ``A``
    """
    if not SCIPY_AVAILABLE:
        raise ImportError("SciPy is required for the scipy SVD backend")

    A_np = A.detach().cpu().numpy()
    try:
        U, S, Vh = spla.svd(A_np, full_matrices=False, lapack_driver=lapack_driver)
    except np.linalg.LinAlgError:
        if lapack_driver == 'gesvd':
            raise
        warnings.warn("gesdd did not converge, retrying with gesvd")
        U, S, Vh = spla.svd(A_np, full_matrices=False, lapack_driver='gesvd')

    # SciPy may return arrays with negative strides, need to copy
    return (
        torch.from_numpy(U.copy()).to(dtype=A.dtype, device=A.device),
        torch.from_numpy(S.copy()).to(dtype=A.dtype, device=A.device),
        torch.from_numpy(Vh.T.copy()).to(dtype=A.dtype, device=A.device),
    )
