"""
Adaptive Runge-Kutta-Fehlberg 4(5) integration with event detection.

The integrator advances a system ``dy/dr = rhs(r, y)`` of ``StateVector``
states from ``r0`` towards ``r_end``. After every accepted step a list of
:class:`Event` objects is evaluated; events record the steps at which their
condition changes truth value and may stop the integration.
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, NamedTuple, Optional, Sequence

import numpy as np
from numpy.typing import NDArray
from scipy.integrate import cumulative_trapezoid

from .vector import StateVector

logger = logging.getLogger(__name__)

RHSFunction = Callable[[float, StateVector], StateVector]
EventCondition = Callable[[float, float, StateVector, StateVector], bool]

# Fehlberg coefficients
_C2, _C3, _C4, _C5, _C6 = 1 / 4, 3 / 8, 12 / 13, 1.0, 1 / 2
_A21 = 1 / 4
_A31, _A32 = 3 / 32, 9 / 32
_A41, _A42, _A43 = 1932 / 2197, -7200 / 2197, 7296 / 2197
_A51, _A52, _A53, _A54 = 439 / 216, -8.0, 3680 / 513, -845 / 4104
_A61, _A62, _A63, _A64, _A65 = -8 / 27, 2.0, -3544 / 2565, 1859 / 4104, -11 / 40
_B4 = (25 / 216, 0.0, 1408 / 2565, 2197 / 4104, -1 / 5, 0.0)
_B5 = (16 / 135, 0.0, 6656 / 12825, 28561 / 56430, -9 / 50, 2 / 55)

# step size control
_SAFETY = 0.84
_MIN_SCALE = 0.1
_MAX_SCALE = 4.0


class ReturnReason(IntEnum):
    """Why an integration stopped."""
    ENDPOINT_REACHED = 0
    STOPPED_BY_EVENT = 1
    MAX_STEPS_EXCEEDED = 2
    NUMERICAL_FAILURE = 3


class NaNStateError(FloatingPointError):
    """Raised by a right-hand side that receives a state containing NaN."""

    def __init__(self, r: float, y: StateVector):
        self.r = r
        self.y = y
        super().__init__(f"NaN in state at r={r:.6g}: {y!r}")


class Step(NamedTuple):
    """Snapshot of the solution at one radius."""
    r: float
    y: StateVector


@dataclass(frozen=True)
class IntegrationOptions:
    """
    Settings of one integration.

    Attributes
    ----------
    target_error : float
        Accepted local error per step, measured relative to ``1 + |y|``.
    min_stepsize, max_stepsize : float
        Bounds for the adaptive step size.
    initial_stepsize : float
        First trial step.
    max_steps : int
        Maximum number of accepted steps before giving up.
    save_intermediate : bool
        Keep every accepted step in the trajectory instead of only the first
        and the last one.
    """
    target_error: float = 1e-9
    min_stepsize: float = 1e-16
    max_stepsize: float = 1.0
    initial_stepsize: float = 1e-5
    max_steps: int = 1_000_000
    save_intermediate: bool = False

    def __post_init__(self):
        if self.target_error <= 0:
            raise ValueError("target_error must be positive")
        if self.min_stepsize <= 0:
            raise ValueError("min_stepsize must be positive")
        if self.max_stepsize < self.min_stepsize:
            raise ValueError("max_stepsize must not be smaller than min_stepsize")
        if self.initial_stepsize <= 0:
            raise ValueError("initial_stepsize must be positive")
        if self.max_steps < 1:
            raise ValueError("max_steps must be at least 1")


@dataclass
class Event:
    """
    Condition tracked during an integration.

    Parameters
    ----------
    condition : callable
        ``condition(r, dr, y, dy) -> bool`` evaluated after every accepted
        step with the step size ``dr`` that led there and the derivative
        ``dy`` at the new state.
    stopping : bool
        Stop the integration as soon as the condition is true.
    max_crossings : int, optional
        Stop the integration once more than this many crossings were recorded.
    name : str
        Label used in logs and results.

    Attributes
    ----------
    steps : list of Step
        Steps at which the truth value of the condition changed.
    active : bool
        Truth value at the last evaluation.
    """
    condition: EventCondition
    stopping: bool = False
    max_crossings: Optional[int] = None
    name: str = ""
    steps: list[Step] = field(default_factory=list, init=False, repr=False)
    active: bool = field(default=False, init=False)

    def reset(self) -> None:
        self.steps = []
        self.active = False

    def prime(self, r: float, y: StateVector, dy: StateVector) -> None:
        """Seed the truth value from the initial state without recording a crossing."""
        self.active = bool(self.condition(r, 0.0, y, dy))

    def update(self, r: float, dr: float, y: StateVector, dy: StateVector) -> bool:
        """Evaluate the condition on a new step. Returns True if the integration must stop."""
        value = bool(self.condition(r, dr, y, dy))
        if value != self.active:
            self.steps.append(Step(r, y))
            self.active = value
        if self.stopping and value:
            return True
        return self.max_crossings is not None and len(self.steps) > self.max_crossings

    @property
    def n_crossings(self) -> int:
        return len(self.steps)


class StepOutcome(NamedTuple):
    """Result of :func:`rkf45_step`."""
    r: float
    h: float
    y: StateVector
    h_next: float
    error: float
    n_rejected: int
    forced: bool


@dataclass
class IntegrationResult:
    """Trajectory and diagnostics of one integration."""
    reason: ReturnReason
    steps: list[Step]
    event_steps: tuple[tuple[Step, ...], ...]
    n_steps: int
    n_rejected: int
    n_forced: int
    stopped_by: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.reason in (ReturnReason.ENDPOINT_REACHED, ReturnReason.STOPPED_BY_EVENT)

    @property
    def last(self) -> Step:
        return self.steps[-1]

    def crossings(self, index: int = 0) -> int:
        """Number of crossings recorded by the event at ``index``."""
        return len(self.event_steps[index])


def _as_array(value, size: int) -> NDArray[np.float64]:
    arr = value.array if isinstance(value, StateVector) else np.asarray(value, dtype=np.float64)
    if arr.shape != (size,):
        raise ValueError(f"right-hand side returned shape {arr.shape}, expected ({size},)")
    return arr


def rkf45_step(
    rhs: RHSFunction,
    r: float,
    h: float,
    y: StateVector,
    options: IntegrationOptions,
) -> StepOutcome:
    """
    Take one adaptive Runge-Kutta-Fehlberg step.

    The step is retried with half the step size until the difference between
    the fourth and the fifth order solution is below ``options.target_error``.
    At ``options.min_stepsize`` the step is accepted regardless and flagged
    as ``forced``.

    Parameters
    ----------
    rhs : callable
        ``rhs(r, y)`` returning the derivative.
    r : float
        Current position.
    h : float
        Proposed step size.
    y : StateVector
        Current state.
    options : IntegrationOptions
        Tolerance and step size bounds.

    Returns
    -------
    outcome : StepOutcome
        New position and state, the step size used, the proposal for the next
        step, the error estimate and the number of rejected attempts.
    """
    n = len(y)
    y0 = y.array
    target = options.target_error
    h = min(max(h, options.min_stepsize), options.max_stepsize)
    n_rejected = 0

    def f(x: float, values: NDArray[np.float64]) -> NDArray[np.float64]:
        return _as_array(rhs(x, StateVector._wrap(values)), n)

    k1 = _as_array(rhs(r, y), n)
    while True:
        k2 = f(r + _C2 * h, y0 + h * (_A21 * k1))
        k3 = f(r + _C3 * h, y0 + h * (_A31 * k1 + _A32 * k2))
        k4 = f(r + _C4 * h, y0 + h * (_A41 * k1 + _A42 * k2 + _A43 * k3))
        k5 = f(r + _C5 * h, y0 + h * (_A51 * k1 + _A52 * k2 + _A53 * k3 + _A54 * k4))
        k6 = f(r + _C6 * h, y0 + h * (_A61 * k1 + _A62 * k2 + _A63 * k3 + _A64 * k4 + _A65 * k5))

        y4 = y0 + h * (_B4[0] * k1 + _B4[2] * k3 + _B4[3] * k4 + _B4[4] * k5)
        y5 = y0 + h * (_B5[0] * k1 + _B5[2] * k3 + _B5[3] * k4 + _B5[4] * k5 + _B5[5] * k6)

        scale = 1.0 + np.maximum(np.abs(y0), np.abs(y5))
        error = float(np.max(np.abs(y5 - y4) / scale))

        accepted = error <= target
        if accepted or h <= options.min_stepsize:
            if error == 0.0:
                factor = _MAX_SCALE
            elif np.isfinite(error):
                factor = min(max(_SAFETY * (target / error) ** 0.25, _MIN_SCALE), _MAX_SCALE)
            else:
                factor = _MIN_SCALE
            h_next = min(max(h * factor, options.min_stepsize), options.max_stepsize)
            return StepOutcome(
                r=r + h,
                h=h,
                y=StateVector._wrap(y5),
                h_next=h_next,
                error=error,
                n_rejected=n_rejected,
                forced=not accepted,
            )

        n_rejected += 1
        h = max(0.5 * h, options.min_stepsize)


def rkf45(
    rhs: RHSFunction,
    r0: float,
    y0,
    r_end: float,
    events: Optional[Sequence[Event]] = None,
    options: Optional[IntegrationOptions] = None,
) -> IntegrationResult:
    """
    Integrate ``dy/dr = rhs(r, y)`` from ``r0`` to ``r_end``.

    Parameters
    ----------
    rhs : callable
        ``rhs(r, y)`` returning the derivative as a StateVector (or array).
    r0 : float
        Initial position.
    y0 : StateVector or array_like
        Initial state.
    r_end : float
        Position at which the integration ends.
    events : sequence of Event, optional
        Events evaluated after every step, in order. They are reset at the
        start of the integration.
    options : IntegrationOptions, optional
        Step control settings. Defaults to ``IntegrationOptions()``.

    Returns
    -------
    result : IntegrationResult
        Trajectory, copies of the event crossings and the reason the
        integration stopped.
    """
    options = options or IntegrationOptions()
    events = list(events or [])
    y = y0 if isinstance(y0, StateVector) else StateVector(y0)
    r = float(r0)
    if not r_end > r:
        raise ValueError(f"r_end ({r_end}) must be larger than r0 ({r0})")

    steps = [Step(r, y)]
    if events:
        dy = StateVector(_as_array(rhs(r, y), len(y)))
        for event in events:
            event.reset()
            event.prime(r, y, dy)

    h = options.initial_stepsize
    n_steps = n_rejected = n_forced = 0
    reason = ReturnReason.ENDPOINT_REACHED
    stopped_by = None

    while r < r_end:
        if n_steps >= options.max_steps:
            reason = ReturnReason.MAX_STEPS_EXCEEDED
            logger.warning("Integration stopped after %d steps at r=%.6g < r_end=%.6g", n_steps, r, r_end)
            break

        outcome = rkf45_step(rhs, r, h, y, options)
        n_rejected += outcome.n_rejected
        if not outcome.y.is_finite() or not outcome.r > r:
            reason = ReturnReason.NUMERICAL_FAILURE
            logger.warning("Integration failed at r=%.6g (h=%.3g, error=%.3g)", r, outcome.h, outcome.error)
            break

        n_steps += 1
        if outcome.forced:
            n_forced += 1
            logger.debug("Forced step at r=%.6g with h=%.3g, error %.3g above target", r, outcome.h, outcome.error)

        r, y, h = outcome.r, outcome.y, outcome.h_next
        if options.save_intermediate:
            steps.append(Step(r, y))

        if events:
            dy = StateVector(_as_array(rhs(r, y), len(y)))
            stops = [event.update(r, outcome.h, y, dy) for event in events]
            if any(stops):
                reason = ReturnReason.STOPPED_BY_EVENT
                stopped_by = events[stops.index(True)].name
                break

    if steps[-1].r < r:
        steps.append(Step(r, y))

    if n_forced:
        logger.warning("%d step(s) accepted at min_stepsize=%.3g with error above target", n_forced, options.min_stepsize)

    return IntegrationResult(
        reason=reason,
        steps=steps,
        event_steps=tuple(tuple(event.steps) for event in events),
        n_steps=n_steps,
        n_rejected=n_rejected,
        n_forced=n_forced,
        stopped_by=stopped_by,
    )


def cumtrapz(x, y) -> NDArray[np.float64]:
    """
    Cumulative trapezoid integral of ``y(x)``.

    Returns an array of the same length as ``x`` starting at 0.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.shape != y.shape:
        raise ValueError("x and y must have the same shape")
    if x.size == 0:
        return np.zeros(0)
    return cumulative_trapezoid(y, x, initial=0.0)
