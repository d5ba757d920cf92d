"""
Tests for Langevin dynamics and thermal sampling.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose


def _two_site_system(J=1.0, seed=0, mode='dipole', N=None, magnitudes=1.0):
    """Two spins coupled once by J S_0 . S_1."""
    from spinsim.core import SpinConfiguration
    from spinsim.lattice import Bond, Crystal
    from spinsim.models import InteractionSet

    cryst = Crystal(np.eye(3), [[0, 0, 0], [0.5, 0, 0]])
    lat = cryst.lattice((1, 1, 1))
    interactions = InteractionSet(cryst, lat, mode=mode, N=N)
    interactions.add_exchange(J, Bond(0, 1))
    H = interactions.build()
    config = SpinConfiguration(lat, magnitudes=magnitudes, mode=mode, N=N, seed=seed)
    config.randomize()
    return H, config


def _cubic_system(mode='dipole', N=None, extents=(4, 4, 4), seed=0):
    from spinsim.core import SpinConfiguration
    from spinsim.lattice import Bond, Crystal, cubic_operations
    from spinsim.models import InteractionSet

    cryst = Crystal(np.eye(3), [[0, 0, 0]], cubic_operations())
    lat = cryst.lattice(extents)
    interactions = InteractionSet(cryst, lat, mode=mode, N=N)
    interactions.add_exchange(1.0, Bond(0, 0, (1, 0, 0)))
    interactions.add_exchange(-0.3, Bond(0, 0, (1, 1, 0)))
    H = interactions.build()
    config = SpinConfiguration(lat, mode=mode, N=N, seed=seed)
    config.randomize()
    return cryst, H, config


def su3_mean_energy(kT, D):
    """Mean of D <Sz^2> for spin-1 coherent states at temperature kT."""
    a = D / kT
    return D * (2 - (2 + 2 * a + a ** 2) * np.exp(-a)) / (a * (1 - (1 + a) * np.exp(-a)))


def su5_mean_energy(kT, D):
    """Mean of D <Sz^2 - Sz^4 / 5> for spin-2 coherent states at temperature kT."""
    a = 4 * D / (5 * kT)
    num = np.exp(-a) * (-a * (a * (a * (a + 4) + 12) + 24) - 24) + 24
    den = np.exp(-a) * (-a * (a * (a + 3) + 6) - 6) + 6
    return 4 * D * num / (5 * a * den)


class TestLangevinConfig:

    def test_defaults(self):
        from spinsim.algorithms import LangevinConfig

        config = LangevinConfig()

        assert config.kT == 0.0
        assert config.damping == 0.1
        assert config.dt == 0.01

    def test_invalid(self):
        from spinsim.algorithms import LangevinConfig

        with pytest.raises(ValueError):
            LangevinConfig(dt=0.0)
        with pytest.raises(ValueError):
            LangevinConfig(damping=-1.0)
        with pytest.raises(ValueError):
            LangevinConfig(kT=-0.1)


class TestLangevinHeun:
    """Tests for the stochastic integrator."""

    @pytest.mark.parametrize("mode,N", [('dipole', None), ('SUN', 3)])
    def test_norm_preserved(self, mode, N):
        from spinsim.algorithms import LangevinConfig, LangevinHeun

        cryst, H, config = _cubic_system(mode, N)
        integrator = LangevinHeun(H, LangevinConfig(kT=0.5, damping=0.2, dt=0.02))
        integrator.evolve(config, 50)

        assert_allclose(np.linalg.norm(config.states, axis=-1), 1.0, rtol=1e-12)

    def test_damping_lowers_energy(self):
        from spinsim.algorithms import LangevinConfig, LangevinHeun

        cryst, H, config = _cubic_system()
        integrator = LangevinHeun(H, LangevinConfig(kT=0.0, damping=0.5, dt=0.02))

        energies = [H.energy(config)]
        for _ in range(5):
            integrator.evolve(config, 20)
            energies.append(H.energy(config))

        assert np.all(np.diff(energies) < 0)

    @pytest.mark.parametrize("mode,N", [('dipole', None), ('SUN', 3)])
    def test_precession_conserves_energy(self, mode, N):
        from spinsim.algorithms import LangevinConfig, LangevinHeun

        cryst, H, config = _cubic_system(mode, N, extents=(3, 3, 3))
        integrator = LangevinHeun(H, LangevinConfig(kT=0.0, damping=0.0, dt=0.002))

        E0 = H.energy(config)
        integrator.evolve(config, 200)

        assert_allclose(H.energy(config), E0, rtol=1e-3, atol=1e-3)

    def test_no_draws_at_zero_temperature(self):
        from spinsim.algorithms import LangevinConfig, LangevinHeun

        cryst, H, config = _cubic_system()
        state = config.rng.bit_generator.state
        LangevinHeun(H, LangevinConfig(kT=0.0, damping=0.1)).step(config)

        assert config.rng.bit_generator.state == state

    def test_one_noise_draw_per_step(self):
        """Predictor and corrector share a single dipole noise draw."""
        from spinsim.algorithms import LangevinConfig, LangevinHeun

        cryst, H, config = _cubic_system(seed=12)
        reference = np.random.default_rng()
        reference.bit_generator.state = config.rng.bit_generator.state

        integrator = LangevinHeun(H, LangevinConfig(kT=0.3, damping=0.2, dt=0.01))
        integrator.step(config)
        reference.standard_normal(config.states.shape)

        assert config.rng.bit_generator.state == reference.bit_generator.state

    def test_one_complex_noise_draw_per_step(self):
        from spinsim.algorithms import LangevinConfig, LangevinHeun

        cryst, H, config = _cubic_system('SUN', 3, seed=13)
        reference = np.random.default_rng()
        reference.bit_generator.state = config.rng.bit_generator.state

        integrator = LangevinHeun(H, LangevinConfig(kT=0.3, damping=0.2, dt=0.01))
        integrator.step(config)
        reference.standard_normal(config.states.shape)
        reference.standard_normal(config.states.shape)

        assert config.rng.bit_generator.state == reference.bit_generator.state

    def test_heun_matches_explicit_update(self):
        """One step equals s + dt (f(s) + f(s + dt f(s))) / 2 with a shared noise, renormalized."""
        from spinsim.algorithms import LangevinConfig, LangevinHeun

        cryst, H, config = _cubic_system(seed=14)
        params = LangevinConfig(kT=0.4, damping=0.3, dt=0.01)
        integrator = LangevinHeun(H, params)

        s = config.states.copy()
        rng = np.random.default_rng()
        rng.bit_generator.state = config.rng.bit_generator.state
        xi = np.sqrt(2 * params.damping * params.kT / params.dt) * rng.standard_normal(s.shape)

        def f(x):
            B = H.field(x)
            return -np.cross(x, B + xi) - params.damping * np.cross(x, np.cross(x, B))

        f1 = f(s)
        f2 = f(s + params.dt * f1)
        expected = s + 0.5 * params.dt * (f1 + f2)
        expected /= np.linalg.norm(expected, axis=-1, keepdims=True)

        integrator.step(config)
        assert_allclose(config.states, expected, rtol=1e-12, atol=1e-14)

    def test_reproducible(self):
        from spinsim.algorithms import LangevinConfig, LangevinHeun

        final = []
        for _ in range(2):
            cryst, H, config = _cubic_system(seed=21)
            LangevinHeun(H, LangevinConfig(kT=0.5, damping=0.1, dt=0.02)).evolve(config, 10)
            final.append(config.states.copy())

        assert_allclose(final[0], final[1])


class TestThermalStatistics:
    """Sampled distributions match Boltzmann statistics."""

    @pytest.mark.parametrize("mode,N,magnitude", [
        ('dipole', None, 1.0),
        # Spin-1/2 coherent states with kappa = 2 carry unit dipoles
        ('SUN', 2, np.sqrt(2)),
    ])
    def test_two_site_energy_distribution(self, mode, N, magnitude):
        """P(E) = exp(-E/kT) / (2 kT sinh(J/kT)) on [-J, J]."""
        from spinsim.algorithms import LangevinConfig, LangevinHeun, LangevinSampler

        J, kT = 1.0, 0.5
        H, config = _two_site_system(J, seed=3, mode=mode, N=N, magnitudes=magnitude)
        assert_allclose(np.linalg.norm(config.dipoles(), axis=-1), 1.0)

        integrator = LangevinHeun(H, LangevinConfig(kT=kT, damping=1.0, dt=0.02))
        sampler = LangevinSampler(integrator, nsteps=40)
        sampler.thermalize(config, 500)
        energies = sampler.collect_energies(config, 1500)

        edges = np.linspace(-J, J, 11)
        empirical, _ = np.histogram(energies, bins=edges)
        empirical = empirical / len(energies)
        exact = (np.exp(-edges[:-1] / kT) - np.exp(-edges[1:] / kT)) / (2 * np.sinh(J / kT))

        assert_allclose(exact.sum(), 1.0)
        assert np.sqrt(np.mean((empirical - exact) ** 2)) < 0.05

    @pytest.mark.parametrize("N,terms,reference", [
        (3, [(1.0, 'zz')], su3_mean_energy),
        (5, [(1.0, 'zz'), (-0.2, 'zzzz')], su5_mean_energy),
    ])
    @pytest.mark.parametrize("kT", [0.125, 0.5])
    def test_anisotropy_mean_energy(self, kT, N, terms, reference):
        from spinsim.algorithms import LangevinConfig, LangevinHeun, LangevinSampler
        from spinsim.core import SpinConfiguration
        from spinsim.lattice import Crystal
        from spinsim.models import InteractionSet

        D = 1.0
        cryst = Crystal(np.eye(3), [[0, 0, 0]])
        lat = cryst.lattice((10, 10, 1))
        interactions = InteractionSet(cryst, lat, mode='SUN', N=N)
        interactions.add_interaction(0, terms)
        H = interactions.build()

        config = SpinConfiguration(lat, mode='SUN', N=N, seed=7)
        config.randomize()
        integrator = LangevinHeun(H, LangevinConfig(kT=kT, damping=1.0, dt=0.02))
        sampler = LangevinSampler(integrator, nsteps=20)
        sampler.thermalize(config, 500)
        energies = sampler.collect_energies(config, 100) / lat.nsites

        assert_allclose(np.mean(energies), reference(kT, D), rtol=0.05)


class TestSampler:
    """Tests for the sampler bookkeeping."""

    def test_sample_runs_nsteps(self):
        from spinsim.algorithms import LangevinConfig, LangevinHeun, LangevinSampler, sample

        cryst, H, config = _cubic_system(seed=30)
        reference = np.random.default_rng()
        reference.bit_generator.state = config.rng.bit_generator.state

        integrator = LangevinHeun(H, LangevinConfig(kT=0.2, damping=0.1, dt=0.01))
        LangevinSampler(integrator, nsteps=5).sample(config)
        sample(config, integrator, 3)
        for _ in range(8):
            reference.standard_normal(config.states.shape)

        assert config.rng.bit_generator.state == reference.bit_generator.state

    def test_nsteps_settable(self):
        from spinsim.algorithms import LangevinHeun, LangevinSampler, SamplerConfig

        cryst, H, config = _cubic_system()
        sampler = LangevinSampler(LangevinHeun(H), config=SamplerConfig(nsteps=10))
        sampler.nsteps = 3

        assert sampler.nsteps == 3
        with pytest.raises(ValueError):
            sampler.nsteps = -1

    def test_shared_config_untouched(self):
        from spinsim.algorithms import LangevinHeun, LangevinSampler, SamplerConfig

        cryst, H, config = _cubic_system()
        shared = SamplerConfig(nsteps=10, verbosity=0)
        first = LangevinSampler(LangevinHeun(H), nsteps=4, config=shared)
        second = LangevinSampler(LangevinHeun(H), config=shared)
        second.nsteps = 7

        assert first.nsteps == 4
        assert second.nsteps == 7
        assert shared.nsteps == 10

    def test_collect_structure_factor(self):
        from spinsim.algorithms import LangevinConfig, LangevinHeun, LangevinSampler

        cryst, H, config = _cubic_system(extents=(3, 3, 3))
        integrator = LangevinHeun(H, LangevinConfig(kT=0.5, damping=0.5, dt=0.02))
        sampler = LangevinSampler(integrator, nsteps=5)
        sf = sampler.collect_structure_factor(config, 4, cryst)

        assert sf.data.shape == (27, 6)
        assert sf.nsamples == 4
        # Diagonal correlations are real and nonnegative
        for a in range(3):
            diag = sf.pair_data(a, a)
            assert_allclose(diag.imag, 0, atol=1e-12)
            assert np.all(diag.real >= -1e-12)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
