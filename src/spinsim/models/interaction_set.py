"""
Symmetry-validated construction of spin Hamiltonians.

A coupling is specified once, on a representative bond or site. The
InteractionSet propagates it to every symmetry-equivalent bond (site)
using the crystal's space-group operations, checks that the propagated
couplings are mutually consistent and that none of them wraps the
periodic box, and finally freezes everything into a Hamiltonian.

The transformation rules are
- dipole channels: J' = M J M^T with M = det(R) R (axial spins), times -1
  for time-reversing operations
- su(N) generator channels: J' = Ad J Ad^T with Ad the adjoint action of
  the rotation (and time reversal) on the generators
- anisotropies: T'[b..] = sum_a T[a..] prod M[b, a], or A Lambda A^-1 for
  the operator form
"""

from __future__ import annotations

import math
import numpy as np
from collections import Counter
from functools import reduce
from itertools import combinations_with_replacement
from typing import Dict, List, Optional, Union

from scipy.linalg import null_space

from spinsim.core.configuration import Mode
from spinsim.exceptions import SymmetryViolationError, WrappingBondError
from spinsim.lattice.crystal import Crystal, SymmetryOperation
from spinsim.lattice.lattice import Bond, Lattice
from spinsim.models.hamiltonian import Hamiltonian
from spinsim.models.interactions import (
    Interaction,
    OnSiteAnisotropy,
    PairwiseQuadratic,
    SymmetryPolicy,
    anisotropy,
    symmetrize,
)
from spinsim.models.operators import (
    adjoint_action,
    proper_rotation,
    rotation_operator,
    su_n_generators,
    time_reversal_operator,
)


class InteractionSet:
    """
    Mutable builder of a symmetry-consistent Hamiltonian.

    Parameters
    ----------
    crystal : Crystal
        Symmetry collaborator supplying bond/site images and rotations
    lattice : Lattice
        Periodic lattice the Hamiltonian will act on
    mode : Mode or str
        DIPOLE (classical spins) or SUN (coherent states)
    N : int, optional
        Levels per site, required in SU(N) mode
    policy : SymmetryPolicy, optional
        Transformation conventions
    verbosity : int
        0 silent, 2 prints every installed orbit

    Examples
    --------
    >>> cryst = Crystal(np.eye(3), [[0, 0, 0]], cubic_operations())
    >>> interactions = InteractionSet(cryst, cryst.lattice((4, 4, 4)))
    >>> interactions.add_exchange(1.0, Bond(0, 0, (1, 0, 0)))
    >>> H = interactions.build()
    >>> len(H.pair_terms)
    3
    """

    def __init__(
        self,
        crystal: Crystal,
        lattice: Lattice,
        mode: Union[Mode, str] = Mode.DIPOLE,
        N: Optional[int] = None,
        policy: Optional[SymmetryPolicy] = None,
        verbosity: int = 0,
    ):
        if lattice.nbasis != crystal.nbasis:
            raise ValueError(
                f"Lattice has {lattice.nbasis} sublattices but the crystal has {crystal.nbasis}"
            )
        self.crystal = crystal
        self.lattice = lattice
        self.mode = Mode(mode)
        if self.mode == Mode.SUN and (N is None or N < 2):
            raise ValueError(f"SU(N) mode needs N >= 2, got N={N}")
        self.N = int(N) if self.mode == Mode.SUN else None
        self.policy = policy if policy is not None else SymmetryPolicy()
        self.verbosity = verbosity

        self._pairs: Dict[Bond, PairwiseQuadratic] = {}
        self._onsite: Dict[int, OnSiteAnisotropy] = {}
        self._reps: Dict[tuple, np.ndarray] = {}

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def add_interaction(self, target: Union[Bond, int], coupling) -> None:
        """
        Add a coupling on a representative bond or site.

        Parameters
        ----------
        target : Bond or int
            Bond for a pair coupling, sublattice index for an anisotropy
        coupling : array_like, OnSiteAnisotropy, dict, or list of terms
            Exchange matrix (or scalar for Heisenberg) on a bond;
            anisotropy, degree -> tensor dict, or ``(coefficient, axes)``
            terms on a site

        Raises
        ------
        SymmetryViolationError
            If the coupling is inconsistent with the crystal symmetry or
            with a coupling already installed on an equivalent bond
        WrappingBondError
            If any equivalent bond spans the whole periodic box
        """
        if isinstance(target, Bond):
            self.add(PairwiseQuadratic(target, coupling))
        elif isinstance(coupling, OnSiteAnisotropy):
            self.add(OnSiteAnisotropy(int(target), coupling.coefficients))
        elif isinstance(coupling, dict):
            self.add(OnSiteAnisotropy(int(target), coupling))
        else:
            self.add(anisotropy(coupling, int(target)))

    def add(self, interaction: Interaction) -> None:
        """Add a ready-made interaction; see :meth:`add_interaction`."""
        if isinstance(interaction, PairwiseQuadratic):
            self._add_pair(interaction)
        elif isinstance(interaction, OnSiteAnisotropy):
            self._add_anisotropy(interaction)
        else:
            raise TypeError(f"Unsupported interaction type: {type(interaction).__name__}")

    def add_exchange(self, J, bond: Bond) -> None:
        """Exchange coupling on ``bond``; a scalar ``J`` means Heisenberg."""
        self.add(PairwiseQuadratic(bond, J))

    def add_anisotropy(self, aniso: OnSiteAnisotropy) -> None:
        self.add(aniso)

    @property
    def pair_interactions(self) -> List[PairwiseQuadratic]:
        return list(self._pairs.values())

    @property
    def onsite_interactions(self) -> List[OnSiteAnisotropy]:
        return [self._onsite[k] for k in sorted(self._onsite)]

    def build(self) -> Hamiltonian:
        """Freeze the installed interactions into an immutable Hamiltonian."""
        return Hamiltonian(
            self.lattice,
            pair_terms=self.pair_interactions,
            onsite_terms=self.onsite_interactions,
            mode=self.mode,
            N=self.N,
        )

    # ------------------------------------------------------------------
    # Representations of symmetry operations
    # ------------------------------------------------------------------

    def _spin_matrix(self, op: SymmetryOperation, time_reversal_flips: bool) -> np.ndarray:
        """Action of ``op`` on a classical dipole."""
        R = self.crystal.cartesian_rotation(op)
        M = proper_rotation(R) if self.policy.axial_spins else R
        if op.time_reversal and time_reversal_flips:
            M = -M
        return M

    def _channel_matrix(self, index: int, K: int, time_reversal_flips: bool) -> np.ndarray:
        """Action of the ``index``-th operation on a vector of K channels."""
        key = (index, K, time_reversal_flips)
        if key not in self._reps:
            op = self.crystal.symops[index]
            if K == 3:
                M = self._spin_matrix(op, time_reversal_flips)
            else:
                R = self.crystal.cartesian_rotation(op)
                D = rotation_operator(R, self.N)
                U = (time_reversal_operator(self.N)
                     if op.time_reversal and time_reversal_flips else None)
                M = adjoint_action(su_n_generators(self.N), D, U)
            self._reps[key] = M
        return self._reps[key]

    def _check_channels(self, K: int) -> None:
        if self.mode == Mode.DIPOLE:
            if K != 3:
                raise ValueError(f"Dipole mode couplings must be 3x3, got {K}x{K}")
        elif K not in (3, self.N ** 2 - 1):
            raise ValueError(
                f"SU({self.N}) couplings must be 3x3 or {self.N ** 2 - 1}x{self.N ** 2 - 1}, "
                f"got {K}x{K}"
            )

    # ------------------------------------------------------------------
    # Pair couplings
    # ------------------------------------------------------------------

    def _add_pair(self, interaction: PairwiseQuadratic) -> None:
        bond, J = interaction.bond, interaction.coupling
        if bond.is_on_site():
            raise ValueError(
                f"{bond!r} couples a site to itself; use an on-site anisotropy instead"
            )
        for site in (bond.i, bond.j):
            if not 0 <= site < self.crystal.nbasis:
                raise IndexError(f"Sublattice {site} out of range in {bond!r}")
        K = interaction.nchannels
        self._check_channels(K)

        images: Dict[Bond, np.ndarray] = {}
        for index, op in enumerate(self.crystal.symops):
            image = self.crystal.bond_image(op, bond)
            M = self._channel_matrix(index, K, self.policy.exchange_time_reversal)
            Jp = M @ J @ M.T
            canon, rev = image.canonical()
            if rev:
                Jp = Jp.T
            if canon in images:
                if not np.allclose(images[canon], Jp, atol=self.policy.atol):
                    raise self._pair_violation(bond, K, "is inconsistent with the crystal symmetry")
            else:
                images[canon] = Jp

        wrapping = [b for b in images if b.wraps(self.lattice.extents)]
        if wrapping:
            raise WrappingBondError(
                f"{bond!r} is equivalent to {wrapping[0]!r}, which wraps the periodic "
                f"system of extents {self.lattice.extents}; use a larger lattice"
            )

        existing = [b for b in images if b in self._pairs]
        if existing:
            for b in existing:
                old = self._pairs[b].coupling
                if old.shape != images[b].shape or not np.allclose(
                        old, images[b], atol=self.policy.atol):
                    raise self._pair_violation(
                        bond, K, f"conflicts with the coupling already set on {b!r}")
            if self.verbosity >= 2:
                print(f"  {bond!r}: orbit already installed")
            return

        for b, Jp in images.items():
            self._pairs[b] = PairwiseQuadratic(b, Jp)
        if self.verbosity >= 2:
            print(f"  {bond!r}: installed {len(images)} equivalent bonds")

    def allowed_exchange_basis(self, bond: Bond, K: int = 3) -> List[np.ndarray]:
        """
        Basis of K x K couplings on ``bond`` permitted by its stabilizer.

        The allowed couplings satisfy J = M J M^T for every operation
        mapping the bond onto itself, and J = (M J M^T)^T for every
        operation reversing it.
        """
        n = K * K
        transpose = np.zeros((n, n))
        for a in range(K):
            for b in range(K):
                transpose[a * K + b, b * K + a] = 1.0

        rows = [np.zeros((1, n))]
        reverse = bond.reverse()
        for index, op in enumerate(self.crystal.symops):
            image = self.crystal.bond_image(op, bond)
            if image != bond and image != reverse:
                continue
            M = self._channel_matrix(index, K, self.policy.exchange_time_reversal)
            L = np.kron(M, M)
            if image != bond:
                L = transpose @ L
            rows.append(L - np.eye(n))
        basis = null_space(np.vstack(rows), rcond=1e-10)
        return [_clean(v.reshape(K, K)) for v in basis.T]

    def _pair_violation(self, bond: Bond, K: int, reason: str) -> SymmetryViolationError:
        basis = self.allowed_exchange_basis(bond, K)
        lines = [f"Coupling on {bond!r} {reason}."]
        if basis:
            lines.append(f"Allowed couplings are linear combinations of {len(basis)} matrices:")
            lines.extend(_format_matrix(B) for B in basis)
        else:
            lines.append("No coupling is allowed on this bond.")
        return SymmetryViolationError("\n".join(lines), bond=bond, allowed_basis=basis)

    # ------------------------------------------------------------------
    # On-site anisotropies
    # ------------------------------------------------------------------

    def _add_anisotropy(self, aniso: OnSiteAnisotropy) -> None:
        site = aniso.site
        if not 0 <= site < self.crystal.nbasis:
            raise IndexError(f"Sublattice {site} out of range for {self.crystal.nbasis} sites")

        images: Dict[int, OnSiteAnisotropy] = {}
        for op in self.crystal.symops:
            k, _ = self.crystal.site_image(op, site)
            M = self._spin_matrix(op, self.policy.anisotropy_time_reversal)
            transformed = aniso.transformed(M, k)
            if k in images:
                if not self._same_anisotropy(images[k], transformed):
                    raise self._anisotropy_violation(
                        aniso, "is inconsistent with the crystal symmetry")
            else:
                images[k] = transformed

        existing = [k for k in images if k in self._onsite]
        if existing:
            for k in existing:
                if not self._same_anisotropy(self._onsite[k], images[k]):
                    raise self._anisotropy_violation(
                        aniso, f"conflicts with the anisotropy already set on sublattice {k}")
            return

        self._onsite.update(images)
        if self.verbosity >= 2:
            print(f"  anisotropy on sublattice {site}: installed on {sorted(images)}")

    def _same_anisotropy(self, a: OnSiteAnisotropy, b: OnSiteAnisotropy) -> bool:
        atol = self.policy.atol
        if self.mode == Mode.SUN:
            return np.allclose(a.operator(self.N), b.operator(self.N), atol=atol)
        sa, sb = a.symmetrized(), b.symmetrized()
        for k in set(sa) | set(sb):
            Ta = sa.get(k, np.zeros((3,) * k))
            Tb = sb.get(k, np.zeros((3,) * k))
            if not np.allclose(Ta, Tb, atol=atol):
                return False
        return True

    def _site_stabilizer(self, site: int) -> List[SymmetryOperation]:
        return [op for op in self.crystal.symops
                if self.crystal.site_image(op, site)[0] == site]

    def allowed_anisotropy_basis(self, site: int, degree: Optional[int] = None) -> List[np.ndarray]:
        """
        Basis of anisotropies on ``site`` permitted by its stabilizer.

        In SU(N) mode the basis consists of Hermitian N x N matrices
        (identity included). In dipole mode it consists of symmetric
        coefficient tensors of the given ``degree``.
        """
        stabilizer = self._site_stabilizer(site)
        if self.mode == Mode.SUN:
            generators = su_n_generators(self.N)
            n = len(generators)
            rows = [np.zeros((1, n))]
            for op in stabilizer:
                R = self.crystal.cartesian_rotation(op)
                D = rotation_operator(R, self.N)
                U = (time_reversal_operator(self.N)
                     if op.time_reversal and self.policy.anisotropy_time_reversal else None)
                rows.append(adjoint_action(generators, D, U) - np.eye(n))
            coeffs = null_space(np.vstack(rows), rcond=1e-10)
            basis = [np.eye(self.N, dtype=np.complex128)]
            basis.extend(_clean(np.tensordot(c, generators, axes=1)) for c in coeffs.T)
            return basis

        if degree is None:
            raise ValueError("Dipole-mode anisotropy basis needs a polynomial degree")
        n = 3 ** degree
        unit = np.eye(n)
        sym = np.array([symmetrize(e.reshape((3,) * degree)).ravel() for e in unit]).T
        rows = [sym - unit]
        for op in stabilizer:
            M = self._spin_matrix(op, self.policy.anisotropy_time_reversal)
            L = reduce(np.kron, [M] * degree) if degree > 0 else np.ones((1, 1))
            rows.append(L - unit)
        coeffs = null_space(np.vstack(rows), rcond=1e-10)
        return [_clean(c.reshape((3,) * degree)) for c in coeffs.T]

    def _anisotropy_violation(self, aniso: OnSiteAnisotropy, reason: str) -> SymmetryViolationError:
        site = aniso.site
        lines = [f"Anisotropy on sublattice {site} {reason}."]
        if self.mode == Mode.SUN:
            basis = self.allowed_anisotropy_basis(site)
            lines.append(f"Allowed operators are linear combinations of {len(basis)} matrices:")
            lines.extend(_format_matrix(B) for B in basis)
        else:
            basis = []
            for k in sorted(aniso.coefficients):
                degree_basis = self.allowed_anisotropy_basis(site, k)
                basis.extend(degree_basis)
                terms = [_format_polynomial(T) for T in degree_basis]
                lines.append(f"Allowed degree-{k} terms: " + (", ".join(terms) or "none"))
        return SymmetryViolationError("\n".join(lines), bond=site, allowed_basis=basis)


def _clean(A: np.ndarray, tol: float = 1e-10) -> np.ndarray:
    """Zero out numerical noise and fix an overall sign."""
    A = np.where(np.abs(A) < tol, 0, A)
    if np.iscomplexobj(A):
        A = np.where(np.abs(A.real) < tol, 0, A.real) + 1j * np.where(np.abs(A.imag) < tol, 0, A.imag)
    flat = A.ravel()
    nonzero = np.flatnonzero(np.abs(flat) > tol)
    if nonzero.size and np.real(flat[nonzero[0]]) < 0:
        A = -A
    return A


def _format_matrix(A: np.ndarray) -> str:
    return np.array2string(np.round(A, 4), precision=4, suppress_small=True)


def _format_polynomial(T: np.ndarray) -> str:
    """Render a symmetric coefficient tensor as a polynomial in Sx, Sy, Sz."""
    k = T.ndim
    if k == 0:
        return f"{float(T):.4g}"
    terms = []
    for combo in combinations_with_replacement(range(3), k):
        counts = Counter(combo)
        multiplicity = math.factorial(k)
        for c in counts.values():
            multiplicity //= math.factorial(c)
        coef = T[combo] * multiplicity
        if abs(coef) < 1e-10:
            continue
        monomial = "*".join(
            f"S{'xyz'[a]}" + (f"^{c}" if c > 1 else "") for a, c in sorted(counts.items())
        )
        terms.append(f"{coef:.4g}*{monomial}")
    return " + ".join(terms) if terms else "0"
