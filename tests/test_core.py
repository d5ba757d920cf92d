"""
Tests for spin configurations and the energy/field engine.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose


def _p1_crystal():
    """Two sublattices, no symmetry beyond the identity."""
    from spinsim.lattice import Crystal
    return Crystal(np.eye(3), [[0, 0, 0], [0.5, 0.5, 0]])


def _random_hamiltonian(mode='dipole', N=None, extents=(3, 4, 2), seed=0):
    """Generic couplings on several bonds, including generator couplings in SU(N) mode."""
    from spinsim.lattice import Bond
    from spinsim.models import InteractionSet, anisotropy

    rng = np.random.default_rng(seed)
    cryst = _p1_crystal()
    interactions = InteractionSet(cryst, cryst.lattice(extents), mode=mode, N=N)

    for bond in [Bond(0, 0, (1, 0, 0)), Bond(0, 1), Bond(1, 0, (0, 1, 0)), Bond(1, 1, (1, 1, -1))]:
        interactions.add_exchange(rng.standard_normal((3, 3)), bond)
    if mode == 'SUN':
        K = N * N - 1
        interactions.add_exchange(0.3 * rng.standard_normal((K, K)), Bond(0, 0, (0, 0, 1)))
    interactions.add(anisotropy([(0.4, 'zz'), (-0.2, 'xy'), (0.1, 'xxyy')], site=0))
    interactions.add(anisotropy([(0.3, 'x'), (0.5, 'yz')], site=1))
    return cryst, interactions.build()


class TestSpinConfiguration:
    """Tests for configuration state handling."""

    def test_polarized_dipoles(self):
        from spinsim.core import SpinConfiguration
        from spinsim.lattice import Lattice

        config = SpinConfiguration(Lattice(2, (2, 2, 1)), magnitudes=[1.0, 2.5])

        assert config.states.shape == (2, 2, 1, 2, 3)
        assert_allclose(config.states[..., 0, :], [[[[0, 0, 1.0]]] * 2] * 2)
        assert_allclose(config.states[..., 1, 2], 2.5)

    def test_highest_weight_state(self):
        from spinsim.core import SpinConfiguration
        from spinsim.lattice import Lattice

        config = SpinConfiguration(Lattice(1, (2, 1, 1)), mode='SUN', N=3)
        dipoles = config.dipoles()

        assert config.states.dtype == np.complex128
        assert_allclose(config.states[0, 0, 0, 0], [1, 0, 0])
        assert_allclose(dipoles[..., 2], 1.0)

    def test_coherent_state_direction(self):
        from spinsim.core import SpinConfiguration
        from spinsim.lattice import Lattice

        config = SpinConfiguration(Lattice(1, (1, 1, 1)), magnitudes=np.sqrt(2), mode='SUN', N=4)
        n = np.array([1.0, -2.0, 0.5])
        config.polarize(n)

        # Spin 3/2 with kappa = 2
        expected = 2 * 1.5 * n / np.linalg.norm(n)
        assert_allclose(config.dipoles()[0, 0, 0, 0], expected, atol=1e-12)

    def test_randomize_preserves_magnitudes(self):
        from spinsim.core import SpinConfiguration
        from spinsim.lattice import Lattice

        lat = Lattice(2, (3, 3, 3))
        dipole = SpinConfiguration(lat, magnitudes=[0.5, 1.5], seed=1)
        dipole.randomize()
        sun = SpinConfiguration(lat, magnitudes=1.3, mode='SUN', N=3, seed=1)
        sun.randomize()

        assert_allclose(np.linalg.norm(dipole.states, axis=-1)[..., 0], 0.5)
        assert_allclose(np.linalg.norm(dipole.states, axis=-1)[..., 1], 1.5)
        assert_allclose(np.linalg.norm(sun.states, axis=-1), 1.3)

    def test_seed_reproducible(self):
        from spinsim.core import SpinConfiguration
        from spinsim.lattice import Lattice

        lat = Lattice(1, (4, 4, 1))
        a = SpinConfiguration(lat, seed=42)
        b = SpinConfiguration(lat, seed=42)
        a.randomize()
        b.randomize()

        assert_allclose(a.states, b.states)

    def test_copy_is_independent(self):
        from spinsim.core import SpinConfiguration
        from spinsim.lattice import Lattice

        config = SpinConfiguration(Lattice(1, (2, 2, 2)), seed=5)
        clone = config.copy()
        clone.randomize()
        config.randomize()

        assert_allclose(clone.states, config.states)
        clone.polarize((1, 0, 0))
        assert not np.allclose(clone.states, config.states)

    def test_zero_state_warns(self):
        from spinsim.core import SpinConfiguration
        from spinsim.lattice import Lattice

        config = SpinConfiguration(Lattice(1, (2, 1, 1)))
        config.states[0, 0, 0, 0] = 0.0

        with pytest.warns(RuntimeWarning):
            config.normalize()
        assert_allclose(config.states[0, 0, 0, 0], [0, 0, 1])

    def test_sun_requires_n(self):
        from spinsim.core import SpinConfiguration
        from spinsim.lattice import Lattice

        with pytest.raises(ValueError):
            SpinConfiguration(Lattice(1, (2, 2, 2)), mode='SUN')
        with pytest.raises(ValueError):
            SpinConfiguration(Lattice(1, (2, 2, 2)), magnitudes=0.0)


class TestHamiltonianEnergy:
    """Tests for energy evaluation."""

    def test_ferromagnet_energy(self):
        from spinsim.core import SpinConfiguration
        from spinsim.lattice import Bond, Crystal, cubic_operations
        from spinsim.models import InteractionSet

        cryst = Crystal(np.eye(3), [[0, 0, 0]], cubic_operations())
        lat = cryst.lattice((4, 3, 2))
        interactions = InteractionSet(cryst, lat)
        interactions.add_exchange(-1.0, Bond(0, 0, (1, 0, 0)))
        H = interactions.build()

        config = SpinConfiguration(lat, magnitudes=1.5)
        assert_allclose(H.energy(config), -3 * lat.nsites * 1.5 ** 2)
        assert_allclose(H.energy_per_site(config), -3 * 1.5 ** 2)

    def test_two_cell_ring(self):
        """A bond on a two-cell ring is evaluated from both cells."""
        from spinsim.core import SpinConfiguration
        from spinsim.lattice import Bond, Crystal
        from spinsim.models import InteractionSet

        cryst = Crystal(np.eye(3), [[0, 0, 0]])
        lat = cryst.lattice((2, 1, 1))
        interactions = InteractionSet(cryst, lat)
        interactions.add_exchange(0.7, Bond(0, 0, (1, 0, 0)))
        H = interactions.build()

        config = SpinConfiguration(lat, seed=2)
        config.randomize()
        s0, s1 = config.states[0, 0, 0, 0], config.states[1, 0, 0, 0]
        assert_allclose(H.energy(config), 2 * 0.7 * s0 @ s1)

    def test_translation_invariance(self):
        from spinsim.core import SpinConfiguration

        cryst, H = _random_hamiltonian()
        config = SpinConfiguration(H.lattice, seed=3)
        config.randomize()

        E = H.energy(config)
        shifted = np.roll(config.states, shift=(1, -2, 1), axis=(0, 1, 2))
        assert_allclose(H.energy(shifted), E, rtol=1e-12)

    def test_sun_matches_dipole_for_bilinear_terms(self):
        """For N = 2, dipole couplings of coherent states equal classical couplings."""
        from spinsim.core import SpinConfiguration
        from spinsim.lattice import Bond, Crystal
        from spinsim.models import InteractionSet

        cryst = Crystal(np.eye(3), [[0, 0, 0]])
        lat = cryst.lattice((3, 3, 1))
        J = np.array([[1.0, 0.3, 0.0], [-0.2, 0.5, 0.1], [0.0, 0.4, -0.8]])
        hams = {}
        for mode, N in [('dipole', None), ('SUN', 2)]:
            interactions = InteractionSet(cryst, lat, mode=mode, N=N)
            interactions.add_exchange(J, Bond(0, 0, (1, 0, 0)))
            interactions.add_exchange(0.5, Bond(0, 0, (0, 1, 0)))
            hams[mode] = interactions.build()

        sun = SpinConfiguration(lat, mode='SUN', N=2, seed=4)
        sun.randomize()
        dipoles = sun.dipoles()

        assert_allclose(hams['SUN'].energy(sun), hams['dipole'].energy(dipoles), rtol=1e-12)

    def test_state_validation(self):
        from spinsim.core import SpinConfiguration
        from spinsim.lattice import Lattice

        cryst, H = _random_hamiltonian()
        with pytest.raises(ValueError):
            H.energy(np.zeros((3, 4, 2, 2, 4)))
        with pytest.raises(ValueError):
            H.energy(SpinConfiguration(H.lattice, mode='SUN', N=3))
        with pytest.raises(ValueError):
            H.field(SpinConfiguration(Lattice(2, (3, 3, 2))))

    def test_duplicate_bond_rejected(self):
        from spinsim.lattice import Bond, Lattice
        from spinsim.models import Hamiltonian, PairwiseQuadratic

        terms = [
            PairwiseQuadratic(Bond(0, 1, (1, 0, 0)), np.eye(3)),
            PairwiseQuadratic(Bond(1, 0, (-1, 0, 0)), np.eye(3)),
        ]
        with pytest.raises(ValueError):
            Hamiltonian(Lattice(2, (3, 3, 3)), terms)

    def test_couplings_are_read_only(self):
        cryst, H = _random_hamiltonian()

        with pytest.raises(ValueError):
            H.pair_terms[0].coupling[0, 0] = 1.0


class TestHamiltonianField:
    """The field is the negative energy gradient."""

    def test_dipole_field_finite_difference(self):
        from spinsim.core import SpinConfiguration

        cryst, H = _random_hamiltonian()
        config = SpinConfiguration(H.lattice, magnitudes=[1.0, 1.5], seed=6)
        config.randomize()
        s = config.states
        B = H.field(config)

        rng = np.random.default_rng(7)
        h = 1e-5
        for _ in range(3):
            ds = rng.standard_normal(s.shape)
            numeric = (H.energy(s + h * ds) - H.energy(s - h * ds)) / (2 * h)
            assert_allclose(numeric, -np.sum(B * ds), rtol=1e-6)

    def test_dipole_field_single_site(self):
        from spinsim.core import SpinConfiguration

        cryst, H = _random_hamiltonian()
        config = SpinConfiguration(H.lattice, seed=8)
        config.randomize()
        s = config.states
        B = H.field(s)

        h = 1e-6
        site = (2, 1, 0, 1)
        for a in range(3):
            ds = np.zeros_like(s)
            ds[site + (a,)] = h
            numeric = (H.energy(s + ds) - H.energy(s - ds)) / (2 * h)
            assert_allclose(numeric, -B[site + (a,)], rtol=1e-6, atol=1e-8)

    @pytest.mark.parametrize("N", [2, 3])
    def test_sun_field_finite_difference(self, N):
        """dE = -2 Re <dZ|field>."""
        from spinsim.core import SpinConfiguration

        cryst, H = _random_hamiltonian(mode='SUN', N=N)
        config = SpinConfiguration(H.lattice, mode='SUN', N=N, seed=9)
        config.randomize()
        Z = config.states
        field = H.field(config)

        rng = np.random.default_rng(10)
        h = 1e-5
        for _ in range(3):
            dZ = rng.standard_normal(Z.shape) + 1j * rng.standard_normal(Z.shape)
            numeric = (H.energy(Z + h * dZ) - H.energy(Z - h * dZ)) / (2 * h)
            assert_allclose(numeric, -2 * np.sum(dZ.conj() * field).real, rtol=1e-6)

    def test_local_hamiltonian_energy(self):
        """For purely on-site terms, <Z|H_loc|Z> sums to the energy."""
        from spinsim.core import SpinConfiguration
        from spinsim.lattice import Crystal
        from spinsim.models import InteractionSet

        cryst = Crystal(np.eye(3), [[0, 0, 0]])
        lat = cryst.lattice((2, 2, 2))
        interactions = InteractionSet(cryst, lat, mode='SUN', N=3)
        interactions.add_interaction(0, [(-1.0, 'zz'), (0.2, 'x')])
        H = interactions.build()

        config = SpinConfiguration(lat, mode='SUN', N=3, seed=11)
        config.randomize()
        Z = config.states
        Hloc = H.local_hamiltonians(config)

        E_loc = np.einsum('xyzbi,xyzbij,xyzbj->', Z.conj(), Hloc, Z).real
        assert_allclose(E_loc, H.energy(config))


class TestEinsum:

    def test_matches_numpy(self):
        from spinsim.core import einsum, clear_cache

        rng = np.random.default_rng(0)
        s = rng.standard_normal((3, 2, 2, 2, 3))
        J = rng.standard_normal((3, 3))

        clear_cache()
        first = einsum('xyzba,ac->xyzbc', s, J)
        second = einsum('xyzba,ac->xyzbc', s, J)

        assert_allclose(first, np.einsum('xyzba,ac->xyzbc', s, J))
        assert_allclose(second, first)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
