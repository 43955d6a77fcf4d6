"""Spherical harmonic gravity field of an oblate body, with radial damping.

Each degree n >= 2 of the field is multiplied by a damping function σ(‖r‖)
that is 1 close to the body, 0 far from it, and a smooth cubic in between,
so that negligible harmonics can be dropped at large distances without
introducing discontinuities in the force or its gradient.  The degree 2
sectoral terms are damped separately from J2.
"""

import math
from typing import List, Tuple

import numpy as np
from numpy.polynomial import Polynomial

from ephemeris_sim.physics.bodies import Body


class HarmonicDamping:
    """Radial multiplier σ acting on the potential of one group of harmonics.

    σ = 1 below the inner threshold s, σ = 0 above the outer threshold 3s,
    and in between the cubic with σ(s) = 1, σ(3s) = 0, σ'(s) = σ'(3s) = 0,
    stored in the monomial basis of r.
    """

    def __init__(self, inner_threshold: float = math.inf):
        if inner_threshold < 0:
            raise ValueError("Damping threshold must be non-negative")
        self.inner_threshold = float(inner_threshold)
        self.outer_threshold = 3.0 * self.inner_threshold
        self._sigmoid = None
        self._sigmoid_derivative = None
        if 0.0 < self.inner_threshold < math.inf:
            s = self.inner_threshold
            u = Polynomial([-s, 1.0]) / (2.0 * s)
            self._sigmoid = Polynomial([1.0, 0.0, -3.0, 2.0])(u)
            self._sigmoid_derivative = self._sigmoid.deriv()

    @property
    def sigmoid_coefficients(self) -> np.ndarray:
        if self._sigmoid is None:
            return np.zeros(0)
        return self._sigmoid.coef.copy()

    def sigma(self, r_norm: float) -> float:
        if r_norm >= self.outer_threshold:
            return 0.0
        if r_norm <= self.inner_threshold:
            return 1.0
        return float(self._sigmoid(r_norm))

    def sigma_derivative(self, r_norm: float) -> float:
        if r_norm >= self.outer_threshold or r_norm <= self.inner_threshold:
            return 0.0
        return float(self._sigmoid_derivative(r_norm))

    def __repr__(self) -> str:
        return f"HarmonicDamping(inner_threshold={self.inner_threshold})"


def _normalization_factor(n: int, m: int) -> float:
    delta = 1.0 if m == 0 else 2.0
    return math.sqrt(delta * (2 * n + 1) * math.factorial(n - m) / math.factorial(n + m))


class Geopotential:
    """Geopotential model of an oblate body.

    Spherical harmonics are not damped where their contribution to the radial
    acceleration exceeds ``tolerance`` times the central force.  A tolerance
    of 0 disables damping.
    """

    def __init__(self, body: Body, tolerance: float):
        if body.multipole is None:
            raise ValueError(f"Body {body.name} has no multipole field")
        if tolerance < 0:
            raise ValueError("Geopotential tolerance must be non-negative")
        self.body = body
        self.tolerance = float(tolerance)
        self._mu = body.gravitational_parameter
        self._rotation = body.rotation
        self._radius = body.multipole.reference_radius
        self._cos = body.multipole.cos
        self._sin = body.multipole.sin
        self._degree = body.multipole.degree

        thresholds = [math.inf, math.inf]
        for n in range(2, self._degree + 1):
            orders = [0] if n == 2 else range(0, n + 1)
            thresholds.append(self._threshold(n, self._normalized_norm(n, orders)))
        # A higher degree never outlives a lower one.
        for n in range(self._degree - 1, 1, -1):
            thresholds[n] = max(thresholds[n], thresholds[n + 1])
        sectoral = self._threshold(2, self._normalized_norm(2, [1, 2]))
        lower = thresholds[3] if self._degree >= 3 else 0.0
        sectoral = min(max(sectoral, lower), thresholds[2])

        self._degree_damping = [HarmonicDamping(s) for s in thresholds]
        self._sectoral_damping = HarmonicDamping(sectoral)
        self._max_outer_threshold = max(
            [d.outer_threshold for d in self._degree_damping[2:]]
            + [self._sectoral_damping.outer_threshold])

    def _normalized_norm(self, n: int, orders) -> float:
        total = 0.0
        for m in orders:
            factor = _normalization_factor(n, m)
            total += (self._cos[n, m] / factor) ** 2 + (self._sin[n, m] / factor) ** 2
        return math.sqrt(total)

    def _threshold(self, n: int, normalized_norm: float) -> float:
        if self.tolerance == 0.0:
            return math.inf
        if normalized_norm == 0.0:
            return 0.0
        bound = (n + 1) * math.sqrt(2 * n + 1) * normalized_norm
        return self._radius * (bound / self.tolerance) ** (1.0 / n)

    @property
    def degree_damping(self) -> List[HarmonicDamping]:
        return list(self._degree_damping)

    @property
    def sectoral_damping(self) -> HarmonicDamping:
        return self._sectoral_damping

    def _legendre(self, sin_phi: float, cos_phi: float) -> np.ndarray:
        """Unnormalized associated Legendre functions P[n, m] of sin φ.

        Column m = n + 1 is kept at zero for the latitude derivative.
        """
        size = self._degree + 1
        p = np.zeros((size, size + 1))
        p[0, 0] = 1.0
        for m in range(1, size):
            p[m, m] = (2 * m - 1) * cos_phi * p[m - 1, m - 1]
        for m in range(0, size - 1):
            p[m + 1, m] = (2 * m + 1) * sin_phi * p[m, m]
        for m in range(0, size):
            for n in range(m + 2, size):
                p[n, m] = ((2 * n - 1) * sin_phi * p[n - 1, m]
                           - (n + m - 1) * p[n - 2, m]) / (n - m)
        return p

    def _groups(self, surface_r: np.ndarray):
        """Potential and spherical gradient of each damped group of harmonics.

        Yields (damping, V, dV/dr, dV/dφ, dV/dλ) together with the geometry.
        """
        x, y, z = surface_r
        r_norm = math.sqrt(x * x + y * y + z * z)
        rho = math.hypot(x, y)
        sin_phi = z / r_norm
        cos_phi = max(rho / r_norm, 1e-300)
        tan_phi = sin_phi / cos_phi
        longitude = math.atan2(y, x)
        p = self._legendre(sin_phi, cos_phi)

        groups = []
        for n in range(2, self._degree + 1):
            scale = self._mu / r_norm * (self._radius / r_norm) ** n
            orders = [(self._degree_damping[n], [0])] if n == 2 else [
                (self._degree_damping[n], range(0, n + 1))]
            if n == 2:
                orders.append((self._sectoral_damping, [1, 2]))
            for damping, group_orders in orders:
                if r_norm >= damping.outer_threshold:
                    continue
                v = d_phi = d_lambda = 0.0
                for m in group_orders:
                    c = self._cos[n, m]
                    s = self._sin[n, m]
                    if c == 0.0 and s == 0.0:
                        continue
                    cos_ml = math.cos(m * longitude)
                    sin_ml = math.sin(m * longitude)
                    harmonic = c * cos_ml + s * sin_ml
                    v += p[n, m] * harmonic
                    d_phi += (p[n, m + 1] - m * tan_phi * p[n, m]) * harmonic
                    d_lambda += p[n, m] * m * (s * cos_ml - c * sin_ml)
                v *= scale
                groups.append((damping, v, -(n + 1) / r_norm * v,
                               scale * d_phi, scale * d_lambda))
        return r_norm, sin_phi, cos_phi, longitude, groups

    def _surface_r(self, t: float, r) -> Tuple[np.ndarray, np.ndarray]:
        rotation = self._rotation.inertial_to_surface(t)
        return rotation, rotation @ np.asarray(r, dtype=float)

    def spherical_harmonics_acceleration(self, t: float, r) -> np.ndarray:
        """Acceleration at displacement ``r`` from the centre of the body, at ``t``.

        Excludes the central (degree 0) term.
        """
        r = np.asarray(r, dtype=float)
        if float(np.dot(r, r)) >= self._max_outer_threshold ** 2:
            return np.zeros(3)
        rotation, surface_r = self._surface_r(t, r)
        r_norm, sin_phi, cos_phi, longitude, groups = self._groups(surface_r)
        if not groups:
            return np.zeros(3)

        sin_l = math.sin(longitude)
        cos_l = math.cos(longitude)
        r_hat = np.array([cos_phi * cos_l, cos_phi * sin_l, sin_phi])
        phi_hat = np.array([-sin_phi * cos_l, -sin_phi * sin_l, cos_phi])
        lambda_hat = np.array([-sin_l, cos_l, 0.0])

        d_r_total = d_phi_total = d_lambda_total = 0.0
        for damping, v, d_r, d_phi, d_lambda in groups:
            sigma = damping.sigma(r_norm)
            # Gradient of σV: σ∇V + V σ'(r) r̂.
            d_r_total += sigma * d_r + v * damping.sigma_derivative(r_norm)
            d_phi_total += sigma * d_phi
            d_lambda_total += sigma * d_lambda

        surface_acceleration = (d_r_total * r_hat
                                + d_phi_total / r_norm * phi_hat
                                + d_lambda_total / (r_norm * cos_phi) * lambda_hat)
        return rotation.T @ surface_acceleration

    def potential(self, t: float, r) -> float:
        """Damped potential of the harmonics of degree >= 2 (acceleration is its gradient)."""
        r = np.asarray(r, dtype=float)
        _, surface_r = self._surface_r(t, r)
        r_norm, _, _, _, groups = self._groups(surface_r)
        return float(sum(damping.sigma(r_norm) * v for damping, v, _, _, _ in groups))
