"""Tests for oblate bodies and the damped geopotential."""

import math

import numpy as np
import pytest

from ephemeris_sim.physics.bodies import Body, Capability, MultipoleField, RotationParameters
from ephemeris_sim.physics.geopotential import Geopotential, HarmonicDamping
from ephemeris_sim.physics.gravity import GravityModel


def make_rotation(right_ascension=0.0, declination=math.pi / 2):
    return RotationParameters(
        mean_radius=1.0,
        reference_angle=0.3,
        reference_time=0.0,
        angular_frequency=2.0,
        right_ascension_of_pole=right_ascension,
        declination_of_pole=declination,
    )


def make_body(multipole, rotation=None, mu=1.0):
    return Body("Oblate", mu, rotation or make_rotation(), multipole)


def j2_acceleration(mu, j2, radius, r, axis):
    r_norm = np.linalg.norm(r)
    z = np.dot(r, axis)
    factor = -1.5 * j2 * mu * radius ** 2 / r_norm ** 5
    return factor * ((1 - 5 * z ** 2 / r_norm ** 2) * r + 2 * z * axis)


def numerical_gradient(function, r, h=1e-6):
    gradient = np.zeros(3)
    for k in range(3):
        step = np.zeros(3)
        step[k] = h
        gradient[k] = (function(r + step) - function(r - step)) / (2 * h)
    return gradient


def random_field(degree, seed=1):
    rng = np.random.default_rng(seed)
    cos = np.zeros((degree + 1, degree + 1))
    sin = np.zeros((degree + 1, degree + 1))
    for n in range(2, degree + 1):
        for m in range(n + 1):
            cos[n, m] = rng.normal(scale=1e-3)
            if m > 0:
                sin[n, m] = rng.normal(scale=1e-3)
    return MultipoleField.from_normalized(1.0, cos, sin)


def test_rotation_frame_is_orthonormal():
    rotation = make_rotation(right_ascension=0.4, declination=1.1)
    matrix = rotation.inertial_to_surface(1.7)
    assert np.allclose(matrix @ matrix.T, np.eye(3))
    assert np.linalg.det(matrix) == pytest.approx(1.0)
    assert np.allclose(matrix[2], rotation.polar_axis)
    assert rotation.angle_at(1.0) == pytest.approx(2.3)
    assert np.allclose(rotation.angular_velocity, 2.0 * rotation.polar_axis)


def test_rotation_rejects_zero_frequency():
    with pytest.raises(ValueError):
        RotationParameters(1.0, 0.0, 0.0, 0.0, 0.0, 0.0)


def test_body_capabilities():
    point = Body("Point", 1.0)
    oblate = make_body(MultipoleField.from_j2(1e-3, 1.0))
    assert point.capabilities == frozenset({Capability.GRAVITY})
    assert oblate.capabilities == frozenset(Capability)
    assert oblate.is_oblate and oblate.is_rotating
    with pytest.raises(ValueError):
        Body("NoRotation", 1.0, multipole=MultipoleField.from_j2(1e-3, 1.0))
    with pytest.raises(ValueError):
        Body("Massless", 0.0)


def test_body_to_dict_round_trip():
    body = make_body(random_field(3))
    restored = Body.from_dict(body.to_dict())
    assert restored == body
    assert np.array_equal(restored.multipole.cos, body.multipole.cos)


def test_from_normalized():
    j2 = 1e-3
    field = MultipoleField.from_normalized(
        2.0, [[0, 0, 0], [0, 0, 0], [-j2 / math.sqrt(5), 0, 0]], np.zeros((3, 3)))
    assert field.j2 == pytest.approx(j2)
    assert field.degree == 2
    with pytest.raises(ValueError):
        MultipoleField(1.0, np.zeros((2, 2)), np.zeros((2, 2)))


def test_damping_function():
    """σ goes smoothly from 1 at s to 0 at 3s."""
    damping = HarmonicDamping(2.0)
    assert damping.outer_threshold == 6.0
    assert damping.sigma(1.0) == 1.0
    assert damping.sigma(2.0) == pytest.approx(1.0)
    assert damping.sigma(4.0) == pytest.approx(0.5)
    assert damping.sigma(6.0) == 0.0
    assert damping.sigma(10.0) == 0.0
    assert damping.sigma_derivative(2.0 + 1e-12) == pytest.approx(0.0, abs=1e-9)
    assert damping.sigma_derivative(6.0 - 1e-12) == pytest.approx(0.0, abs=1e-9)
    values = [damping.sigma(r) for r in np.linspace(2.0, 6.0, 50)]
    assert all(b <= a for a, b in zip(values, values[1:]))
    # The derivative is that of the polynomial.
    assert damping.sigma_derivative(3.0) == pytest.approx(
        (damping.sigma(3.0 + 1e-6) - damping.sigma(3.0 - 1e-6)) / 2e-6, rel=1e-6)
    assert len(damping.sigmoid_coefficients) == 4


def test_undamped_function():
    damping = HarmonicDamping()
    assert damping.sigma(1e30) == 1.0
    assert damping.sigma_derivative(1e30) == 0.0


def test_j2_matches_closed_form():
    """The degree 2 zonal term matches the classical J2 acceleration."""
    j2 = 1e-3
    body = make_body(MultipoleField.from_j2(j2, 1.0))
    geopotential = Geopotential(body, tolerance=0.0)
    for r in ([1.5, 0.3, 0.7], [0.0, 2.0, 0.0], [0.2, -0.1, -3.0]):
        r = np.array(r)
        expected = j2_acceleration(1.0, j2, 1.0, r, np.array([0.0, 0.0, 1.0]))
        assert np.allclose(geopotential.spherical_harmonics_acceleration(0.0, r), expected,
                           rtol=1e-10, atol=1e-16)


def test_j2_with_tilted_pole():
    """The surface frame follows the pole of the body."""
    j2 = 1e-3
    rotation = make_rotation(right_ascension=0.7, declination=0.4)
    body = make_body(MultipoleField.from_j2(j2, 1.0), rotation, mu=3.0)
    geopotential = Geopotential(body, tolerance=0.0)
    r = np.array([1.2, -0.8, 0.9])
    expected = j2_acceleration(3.0, j2, 1.0, r, rotation.polar_axis)
    assert np.allclose(geopotential.spherical_harmonics_acceleration(5.0, r), expected,
                       rtol=1e-10, atol=1e-16)


def test_acceleration_is_gradient_of_potential():
    """Tesseral terms, undamped: acceleration equals the gradient of the potential."""
    body = make_body(random_field(5), make_rotation(0.2, 0.9))
    geopotential = Geopotential(body, tolerance=0.0)
    t = 0.8
    for r in ([1.3, 0.4, 0.5], [-0.9, 1.1, -0.6], [0.1, 0.05, 2.0]):
        r = np.array(r)
        expected = numerical_gradient(lambda x: geopotential.potential(t, x), r)
        actual = geopotential.spherical_harmonics_acceleration(t, r)
        assert np.allclose(actual, expected, rtol=1e-6, atol=1e-8 * np.linalg.norm(expected))


def test_damped_acceleration_is_gradient_of_damped_potential():
    """In the damping shell the σ' term is included."""
    body = make_body(random_field(4), make_rotation(0.2, 0.9))
    geopotential = Geopotential(body, tolerance=1e-5)
    inner = geopotential.degree_damping[2].inner_threshold
    assert 0.0 < inner < math.inf
    direction = np.array([0.6, 0.48, 0.64])
    for radius in (1.5 * inner, 2.0 * inner, 2.7 * inner):
        r = radius * direction
        expected = numerical_gradient(lambda x: geopotential.potential(0.0, x), r, h=1e-6 * radius)
        actual = geopotential.spherical_harmonics_acceleration(0.0, r)
        assert np.allclose(actual, expected, rtol=1e-5, atol=1e-7 * np.linalg.norm(expected))


def test_thresholds_are_ordered():
    """Higher degrees are damped no later than lower ones."""
    geopotential = Geopotential(make_body(random_field(6)), tolerance=1e-8)
    thresholds = [d.inner_threshold for d in geopotential.degree_damping[2:]]
    assert all(b <= a for a, b in zip(thresholds, thresholds[1:]))
    sectoral = geopotential.sectoral_damping.inner_threshold
    assert thresholds[1] <= sectoral <= thresholds[0]


def test_zero_tolerance_disables_damping():
    geopotential = Geopotential(make_body(random_field(3)), tolerance=0.0)
    assert all(d.inner_threshold == math.inf for d in geopotential.degree_damping)
    assert geopotential.sectoral_damping.inner_threshold == math.inf


def test_far_field_is_zero():
    """Beyond the outer thresholds the harmonics do not contribute."""
    geopotential = Geopotential(make_body(MultipoleField.from_j2(1e-3, 1.0)), tolerance=2.0 ** -24)
    outer = geopotential.degree_damping[2].outer_threshold
    r = np.array([outer * 1.01, 0.0, 0.0])
    assert np.array_equal(geopotential.spherical_harmonics_acceleration(0.0, r), np.zeros(3))
    assert geopotential.potential(0.0, r) == 0.0


def test_acceleration_on_polar_axis_is_finite():
    geopotential = Geopotential(make_body(random_field(4)), tolerance=0.0)
    acceleration = geopotential.spherical_harmonics_acceleration(0.0, np.array([0.0, 0.0, 1.5]))
    assert np.all(np.isfinite(acceleration))


def test_gravity_model_conserves_momentum():
    """The reaction on the oblate body balances the harmonics' pull."""
    bodies = [make_body(random_field(3), mu=1.0), Body("Moon", 0.01), Body("Probe", 0.001)]
    model = GravityModel(bodies, geopotential_tolerance=0.0)
    positions = np.array([[0.0, 0.0, 0.0], [1.5, 0.2, 0.3], [-0.4, 1.8, -0.2]])
    accelerations = model(0.0, positions)
    total = model.mu @ accelerations
    assert np.allclose(total, 0.0, atol=1e-14)


def test_gravity_model_point_masses():
    bodies = [Body("A", 2.0), Body("B", 1.0)]
    model = GravityModel(bodies)
    accelerations = model(0.0, np.array([[0.0, 0.0, 0.0], [2.0, 0.0, 0.0]]))
    assert np.allclose(accelerations[0], [0.25, 0.0, 0.0])
    assert np.allclose(accelerations[1], [-0.5, 0.0, 0.0])
    massless = model.massless_acceleration(0.0, np.array([1.0, 0.0, 0.0]),
                                           np.array([[0.0, 0.0, 0.0], [2.0, 0.0, 0.0]]))
    assert np.allclose(massless, [-1.0, 0.0, 0.0])
    assert model.potential_energy(0.0, np.array([[0.0, 0.0, 0.0], [2.0, 0.0, 0.0]])) == pytest.approx(-1.0)
