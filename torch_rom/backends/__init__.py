"""
Dense SVD kernels for torch_rom

The static SVD gathers all samples into one dense matrix that is identical on
every process and hands it to one of these kernels:

Backends:
- 'pytorch': ``torch.linalg.svd`` (CPU & CUDA), always available
- 'scipy': ``scipy.linalg.svd`` with LAPACK gesdd, falling back to gesvd
  (CPU only)

Every process factors the same matrix with the same backend, so the factors
(including the signs of the singular vectors) agree across processes.

Usage:
    U, S, V = dense_svd(A)                    # Auto-select backend
    U, S, V = dense_svd(A, backend='scipy')   # Specify backend
"""

from typing import Dict, List, Literal, Tuple
import torch
import numpy as np

from ..check import NumericalFailure, check_dense
from .pytorch_backend import torch_svd
from .scipy_backend import is_scipy_available, scipy_svd

# Type aliases
BackendType = Literal['pytorch', 'scipy', 'auto']

BACKEND_NAMES: List[str] = ['pytorch', 'scipy']

# Backend -> supported device types
BACKEND_DEVICES: Dict[str, List[str]] = {
    'pytorch': ['cpu', 'cuda'],
    'scipy': ['cpu'],
}


def get_available_backends() -> List[str]:
    """Get list of available backends"""
    backends = ['pytorch']
    if is_scipy_available():
        backends.append('scipy')
    return backends


def select_backend(device: torch.device) -> str:
    """
    Auto-select the dense SVD backend for a device.

    - CPU: scipy if installed (LAPACK with a gesvd retry), else pytorch
    - CUDA: pytorch
    """
    if device.type == 'cpu':
        if is_scipy_available():
            return 'scipy'
        return 'pytorch'
    return 'pytorch'


def dense_svd(
    A: torch.Tensor,
    backend: BackendType = 'auto'
) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """
    Thin SVD ``A = U diag(S) V^T``.

    Parameters
    ----------
    A : torch.Tensor
        [m, n] dense matrix, identical on every process
    backend : str
        'auto', 'pytorch' or 'scipy'

    Returns
    -------
    U : torch.Tensor
        [m, r] left singular vectors, r = min(m, n)
    S : torch.Tensor
        [r] singular values, non-negative and descending
    V : torch.Tensor
        [n, r] right singular vectors

    Raises
    ------
    NumericalFailure
        If ``A`` is not finite or the kernel fails to factor it
    """
    check_dense("A", A, 2)
    if backend == 'auto':
        backend = select_backend(A.device)
    if backend not in BACKEND_NAMES:
        raise ValueError(f"Unknown backend '{backend}', available: {BACKEND_NAMES}")
    if A.device.type not in BACKEND_DEVICES[backend]:
        raise ValueError(f"Backend '{backend}' does not support device {A.device}")

    if not torch.isfinite(A).all():
        raise NumericalFailure("sample matrix contains non-finite values")

    try:
        if backend == 'scipy':
            U, S, V = scipy_svd(A)
        else:
            U, S, V = torch_svd(A)
    except (RuntimeError, ValueError, np.linalg.LinAlgError) as e:
        raise NumericalFailure(f"{backend} SVD failed: {e}") from e

    if not (torch.isfinite(U).all() and torch.isfinite(S).all() and torch.isfinite(V).all()):
        raise NumericalFailure(f"{backend} SVD returned non-finite factors")
    return U, S, V
