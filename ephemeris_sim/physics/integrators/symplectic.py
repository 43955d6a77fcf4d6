"""Symplectic partitioned Runge-Kutta integrators (fixed step, bounded energy error)."""

from typing import Sequence, Tuple

from ephemeris_sim.physics.integrators.base import FixedStepIntegrator, MotionEquation, State


class SymplecticPartitionedRungeKutta(FixedStepIntegrator):
    """Fixed-step symplectic integrator for separable Hamiltonians.

    A step is a sequence of stages; stage i performs a drift followed by a kick:

        q = q + a_i * dt * v(p)
        p = p + b_i * dt * F(t_i, q)

    For a separable Hamiltonian the method preserves a modified Hamiltonian,
    so the energy error stays bounded over arbitrarily many steps instead of
    drifting.  Stages with a zero weight are skipped.
    """

    def __init__(
        self,
        name: str,
        order: int,
        position_weights: Sequence[float],
        momentum_weights: Sequence[float]
    ):
        """Initialize the method.

        Args:
            name: Method name
            order: Order of accuracy
            position_weights: Drift weights a_i
            momentum_weights: Kick weights b_i
        """
        if len(position_weights) != len(momentum_weights):
            raise ValueError("Position and momentum weights must have the same number of stages")
        self._name = name
        self._order = order
        self._a = tuple(float(a) for a in position_weights)
        self._b = tuple(float(b) for b in momentum_weights)

    @property
    def name(self) -> str:
        return self._name

    @property
    def order(self) -> int:
        return self._order

    @property
    def stages(self) -> int:
        return len(self._a)

    @property
    def position_weights(self) -> Tuple[float, ...]:
        return self._a

    @property
    def momentum_weights(self) -> Tuple[float, ...]:
        return self._b

    def step(self, equation: MotionEquation, state: State, dt: float) -> State:
        t, q, p = state
        stage_time = t
        for a, b in zip(self._a, self._b):
            if a != 0.0:
                q = q + (a * dt) * equation.compute_velocity(p)
                stage_time = stage_time + a * dt
            if b != 0.0:
                p = p + (b * dt) * equation.compute_acceleration(stage_time, q)
        return State(t + dt, q, p)


def triple_jump(
    method: SymplecticPartitionedRungeKutta,
    name: str
) -> SymplecticPartitionedRungeKutta:
    """Compose a symmetric method of even order p into one of order p + 2.

    Uses the composition Φ(γ₁h) Φ(γ₀h) Φ(γ₁h) with
    γ₁ = 1 / (2 - 2^(1/(p+1))) and γ₀ = 1 - 2γ₁.  A stage without drift is
    merged into the kick of the preceding stage.
    """
    p = method.order
    gamma1 = 1.0 / (2.0 - 2.0 ** (1.0 / (p + 1)))
    gamma0 = 1.0 - 2.0 * gamma1
    stages = []
    for gamma in (gamma1, gamma0, gamma1):
        for a, b in zip(method.position_weights, method.momentum_weights):
            if a == 0.0 and stages:
                previous_a, previous_b = stages[-1]
                stages[-1] = (previous_a, previous_b + gamma * b)
            else:
                stages.append((gamma * a, gamma * b))
    return SymplecticPartitionedRungeKutta(
        name,
        p + 2,
        [a for a, _ in stages],
        [b for _, b in stages]
    )


# Velocity Verlet in kick-drift-kick form.
LEAPFROG = SymplecticPartitionedRungeKutta(
    "leapfrog", 2,
    position_weights=[0.0, 1.0],
    momentum_weights=[0.5, 0.5]
)

# R. D. Ruth, A canonical integration technique (1983).
RUTH_1983 = SymplecticPartitionedRungeKutta(
    "ruth_1983", 3,
    position_weights=[1.0, -2.0 / 3.0, 2.0 / 3.0],
    momentum_weights=[-1.0 / 24.0, 3.0 / 4.0, 7.0 / 24.0]
)

# Forest & Ruth (1990), obtained as the triple jump of leapfrog.
FOREST_RUTH_1990 = triple_jump(LEAPFROG, "forest_ruth_1990")

# Yoshida (1990), sixth order by composition of Forest-Ruth.
YOSHIDA_1990_ORDER_6 = triple_jump(FOREST_RUTH_1990, "yoshida_1990_order_6")
