"""
Tests for the static SVD in a single process.

Tests cover:
- Concrete scenarios (identity samples, random samples)
- Reconstruction, orthonormality, singular value ordering
- Lazy, cached factorization and state transitions
- Time intervals, add_without_increase, rank policies
- Refused samples and contract violations
"""

import pytest
import torch
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
import torch_rom.static_svd
from torch_rom import (
    StaticSVD,
    SVDState,
    Vector,
    DistributedMatrix,
    UndistributedMatrix,
    FixedRank,
    ContractViolation,
    ShapeException,
    NumericalFailure,
)


def random_samples(dim: int, num_samples: int, seed: int = 0) -> torch.Tensor:
    """Samples as columns [dim, num_samples]"""
    generator = torch.Generator().manual_seed(seed)
    return torch.randn(dim, num_samples, dtype=torch.float64, generator=generator)


def take_all(svd: StaticSVD, samples: torch.Tensor, t0: float = 0.0):
    for j in range(samples.size(1)):
        assert svd.take_sample(samples[:, j], t0 + j)


def assert_orthonormal(Q: torch.Tensor):
    k = Q.size(1)
    torch.testing.assert_close(Q.T @ Q, torch.eye(k, dtype=Q.dtype))


# ============================================================================
# Scenarios
# ============================================================================

class TestScenarios:

    @pytest.mark.parametrize('backend', ['pytorch', 'auto'])
    def test_identity_samples(self, backend):
        """dim=3, samples e1, e2, e3 at times 0, 1, 2."""
        svd = StaticSVD(dim=3, samples_per_time_interval=3, backend=backend)
        take_all(svd, torch.eye(3, dtype=torch.float64))

        U = svd.get_spatial_basis()
        S = svd.get_singular_values()
        V = svd.get_temporal_basis()

        assert isinstance(U, DistributedMatrix)
        assert isinstance(S, UndistributedMatrix)
        assert isinstance(V, UndistributedMatrix)
        assert U.shape == (3, 3)
        assert V.shape == (3, 3)
        torch.testing.assert_close(torch.diagonal(S.data), torch.ones(3, dtype=torch.float64))
        assert_orthonormal(U.data)
        assert_orthonormal(V.data)
        torch.testing.assert_close(svd.get_basis().reconstruct().data, torch.eye(3, dtype=torch.float64))

    @pytest.mark.parametrize(['dim', 'num_samples'], [(8, 5), (4, 6), (10, 1)])
    def test_reconstruction(self, dim, num_samples):
        A = random_samples(dim, num_samples)
        svd = StaticSVD(dim=dim, samples_per_time_interval=num_samples)
        take_all(svd, A)

        basis = svd.get_basis()
        r = min(dim, num_samples)
        assert basis.rank == r
        assert basis.temporal_basis.shape == (num_samples, r)
        torch.testing.assert_close(basis.reconstruct().data, A)

        # Same through the public matrix algebra
        US = svd.get_spatial_basis().multiply(svd.get_singular_values())
        USVt = US.multiply(svd.get_temporal_basis().transpose())
        torch.testing.assert_close(USVt.data, A)

    def test_orthonormality_and_ordering(self):
        svd = StaticSVD(dim=12, samples_per_time_interval=7)
        take_all(svd, random_samples(12, 7, seed=3))

        assert_orthonormal(svd.get_spatial_basis().data)
        assert_orthonormal(svd.get_temporal_basis().data)

        S = svd.get_singular_values().data
        sigma = torch.diagonal(S)
        torch.testing.assert_close(S, torch.diag(sigma))
        assert (sigma >= 0).all()
        assert (sigma[:-1] >= sigma[1:]).all()

    def test_project_lift(self):
        A = random_samples(6, 3, seed=5)
        svd = StaticSVD(dim=6, samples_per_time_interval=3)
        take_all(svd, A)
        basis = svd.get_basis()

        u = Vector(A[:, 1], distributed=True)
        coefficients = basis.project(u)
        assert not coefficients.distributed
        assert coefficients.dim == 3
        torch.testing.assert_close(basis.lift(coefficients).data, A[:, 1])

    def test_vector_sample(self):
        svd = StaticSVD(dim=2, samples_per_time_interval=2)
        assert svd.take_sample(Vector(torch.tensor([3.0, 4.0], dtype=torch.float64), distributed=True), 0.0)
        torch.testing.assert_close(torch.diagonal(svd.get_singular_values().data),
                                   torch.tensor([5.0], dtype=torch.float64))


# ============================================================================
# Caching and state
# ============================================================================

class TestCaching:

    def test_states(self):
        svd = StaticSVD(dim=3, samples_per_time_interval=4)
        assert svd.state is SVDState.EMPTY
        svd.take_sample(torch.ones(3, dtype=torch.float64), 0.0)
        assert svd.state is SVDState.ACCUMULATING
        svd.get_singular_values()
        assert svd.state is SVDState.BASIS_CURRENT
        svd.take_sample(torch.arange(3, dtype=torch.float64), 1.0)
        assert svd.state is SVDState.ACCUMULATING

    def test_idempotent_query(self):
        svd = StaticSVD(dim=5, samples_per_time_interval=4)
        take_all(svd, random_samples(5, 4))

        U1 = svd.get_spatial_basis()
        data1 = U1.data.clone()
        U2 = svd.get_spatial_basis()
        svd.get_temporal_basis()
        svd.get_singular_values()

        assert svd.num_factorizations == 1
        assert U1 is U2
        assert torch.equal(U2.data, data1)

    def test_returned_basis_is_read_only(self):
        svd = StaticSVD(dim=3, samples_per_time_interval=3)
        take_all(svd, torch.eye(3, dtype=torch.float64))

        U = svd.get_spatial_basis()
        data = U.data.clone()
        with pytest.raises(ContractViolation):
            U[0, 0] = 99.0
        with pytest.raises(ContractViolation):
            svd.get_singular_values()[0, 0] = 99.0
        with pytest.raises(ContractViolation):
            svd.get_temporal_basis().set_item(0, 0, 99.0)

        assert torch.equal(svd.get_spatial_basis().data, data)
        torch.testing.assert_close(svd.get_basis().reconstruct().data, torch.eye(3, dtype=torch.float64))

        # A clone is a writable copy detached from the cache
        W = U.clone()
        W[0, 0] = 99.0
        assert torch.equal(svd.get_spatial_basis().data, data)

    def test_new_sample_invalidates(self):
        svd = StaticSVD(dim=5, samples_per_time_interval=4)
        A = random_samples(5, 3)
        take_all(svd, A[:, :2])
        assert svd.get_temporal_basis().num_rows == 2

        svd.take_sample(A[:, 2], 2.0)
        V = svd.get_temporal_basis()
        assert svd.num_factorizations == 2
        assert V.num_rows == 3
        torch.testing.assert_close(svd.get_basis().reconstruct().data, A)

    def test_lazy(self):
        svd = StaticSVD(dim=4, samples_per_time_interval=4)
        take_all(svd, random_samples(4, 3))
        assert svd.num_factorizations == 0

    def test_empty_query(self):
        svd = StaticSVD(dim=4, samples_per_time_interval=4)
        with pytest.raises(ContractViolation):
            svd.get_spatial_basis()

    def test_numerical_failure_keeps_basis(self, monkeypatch):
        svd = StaticSVD(dim=4, samples_per_time_interval=4)
        A = random_samples(4, 2)
        svd.take_sample(A[:, 0], 0.0)
        old = svd.get_basis()
        svd.take_sample(A[:, 1], 1.0)

        def failing_svd(A, backend='auto'):
            raise NumericalFailure("kernel failed")

        monkeypatch.setattr(torch_rom.static_svd, "dense_svd", failing_svd)
        with pytest.raises(NumericalFailure):
            svd.get_spatial_basis()
        assert svd.state is SVDState.ACCUMULATING
        assert svd._basis is old
        assert svd.num_factorizations == 1

        monkeypatch.undo()
        assert svd.get_temporal_basis().num_rows == 2

    def test_debug_output(self, capsys):
        svd = StaticSVD(dim=2, samples_per_time_interval=2, debug_algorithm=True)
        svd.take_sample(torch.tensor([1.0, 2.0], dtype=torch.float64), 0.0)
        svd.get_spatial_basis()
        out = capsys.readouterr().out
        assert "[Rank 0] Static SVD of 2x1 sample matrix" in out


# ============================================================================
# Time intervals and rank
# ============================================================================

class TestTimeIntervals:

    def test_interval_rollover(self):
        svd = StaticSVD(dim=3, samples_per_time_interval=2)
        A = random_samples(3, 3)
        assert svd.is_new_time(0.0)
        take_all(svd, A[:, :2])
        assert svd.num_basis_time_intervals == 1
        assert svd.is_new_time(2.0)
        svd.get_basis()

        svd.take_sample(A[:, 2], 2.0)
        assert svd.num_samples == 1
        assert svd.num_basis_time_intervals == 2
        assert svd.get_basis_interval_start_time(0) == 0.0
        assert svd.get_basis_interval_start_time(1) == 2.0
        assert svd.sample_times == [2.0]
        assert svd.get_temporal_basis().shape == (1, 1)
        torch.testing.assert_close(svd.get_basis().reconstruct().data, A[:, 2:])

        with pytest.raises(ContractViolation):
            svd.get_basis_interval_start_time(2)

    def test_add_without_increase(self):
        svd = StaticSVD(dim=4, samples_per_time_interval=5)
        e = torch.eye(4, dtype=torch.float64)
        svd.take_sample(e[:, 0], 0.0)
        svd.take_sample(e[:, 1], 1.0)
        svd.take_sample(e[:, 0] + 2 * e[:, 1], 2.0, add_without_increase=True)
        assert svd.rank_budget == 2
        assert svd.num_samples == 3

        basis = svd.get_basis()
        assert basis.rank == 2
        assert basis.temporal_basis.shape == (3, 2)
        A = torch.stack([e[:, 0], e[:, 1], e[:, 0] + 2 * e[:, 1]], dim=1)
        torch.testing.assert_close(basis.reconstruct().data, A)

    def test_add_without_increase_first_sample(self):
        svd = StaticSVD(dim=2, samples_per_time_interval=2)
        svd.take_sample(torch.ones(2, dtype=torch.float64), 0.0, add_without_increase=True)
        assert svd.rank_budget == 1
        assert svd.get_basis().rank == 1

    def test_rank_policy(self):
        svd = StaticSVD(dim=6, samples_per_time_interval=4, rank_policy=FixedRank(2))
        take_all(svd, random_samples(6, 4, seed=7))
        assert svd.get_spatial_basis().shape == (6, 2)
        assert svd.get_singular_values().shape == (2, 2)
        assert svd.get_temporal_basis().shape == (4, 2)
        assert_orthonormal(svd.get_spatial_basis().data)


# ============================================================================
# Refused samples and contract violations
# ============================================================================

class TestSampleValidation:

    def test_zero_sample(self):
        svd = StaticSVD(dim=3, samples_per_time_interval=2)
        with pytest.warns(UserWarning):
            assert not svd.take_sample(torch.zeros(3, dtype=torch.float64), 0.0)
        assert svd.num_samples == 0
        assert svd.state is SVDState.EMPTY
        assert svd.num_basis_time_intervals == 0

    def test_non_finite_sample(self):
        svd = StaticSVD(dim=3, samples_per_time_interval=2)
        svd.take_sample(torch.ones(3, dtype=torch.float64), 0.0)
        svd.get_basis()
        with pytest.warns(UserWarning):
            assert not svd.take_sample(torch.tensor([1.0, float('inf'), 0.0], dtype=torch.float64), 1.0)
        assert svd.state is SVDState.BASIS_CURRENT
        assert svd.num_samples == 1

    def test_wrong_shape(self):
        svd = StaticSVD(dim=3, samples_per_time_interval=2)
        with pytest.raises(ShapeException):
            svd.take_sample(torch.ones(4, dtype=torch.float64), 0.0)
        with pytest.raises(ShapeException):
            svd.take_sample(torch.ones(3, 1, dtype=torch.float64), 0.0)
        with pytest.raises(ContractViolation):
            svd.take_sample(None, 0.0)

    def test_negative_time(self):
        svd = StaticSVD(dim=3, samples_per_time_interval=2)
        with pytest.raises(ContractViolation):
            svd.take_sample(torch.ones(3, dtype=torch.float64), -1.0)
        with pytest.raises(ContractViolation):
            svd.take_sample(torch.ones(3, dtype=torch.float64), float('nan'))
        assert svd.num_basis_time_intervals == 0

    def test_large_finite_sample(self):
        svd = StaticSVD(dim=3, samples_per_time_interval=2)
        u = torch.tensor([1e200, 0.0, 0.0], dtype=torch.float64)
        assert svd.take_sample(u, 0.0)
        assert svd.num_samples == 1
        torch.testing.assert_close(torch.diagonal(svd.get_singular_values().data),
                                   torch.tensor([1e200], dtype=torch.float64))

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            StaticSVD(dim=3, samples_per_time_interval=2, backend='lapack')

    @pytest.mark.parametrize(['dim', 'per_interval'], [(0, 1), (3, 0), (-2, 4)])
    def test_invalid_construction(self, dim, per_interval):
        with pytest.raises(ContractViolation):
            StaticSVD(dim=dim, samples_per_time_interval=per_interval)

    def test_sample_is_copied(self):
        svd = StaticSVD(dim=2, samples_per_time_interval=2)
        u = torch.tensor([1.0, 0.0], dtype=torch.float64)
        svd.take_sample(u, 0.0)
        u[0] = 100.0
        torch.testing.assert_close(torch.diagonal(svd.get_singular_values().data),
                                   torch.tensor([1.0], dtype=torch.float64))
