"""
Simulation Clock
================
Frame-driven playback of the drive cycle: maps wall-clock time onto cycle time,
runs the energy management policy and consumption integration once per frame,
and publishes the resulting state.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Callable, Deque, List, Tuple

from fcev_simulator import (
    INITIAL_H2_MASS,
    INITIAL_SOC,
    CycleProfile,
    ForceData,
    Mode,
    VehicleParams,
    calculate_forces,
    generate_cycle_profile,
    integrate_consumption,
    select_power_split,
)

logger = logging.getLogger(__name__)

# Integration step per frame, independent of the real frame interval
NOMINAL_TICK_DT = 0.1  # s
POWER_HISTORY_SIZE = 100

FrameCallback = Callable[[float], None]


class FrameScheduler(ABC):
    """Abstract interface for per-frame callback scheduling."""

    @abstractmethod
    def now(self) -> float:
        """Get current wall-clock time.

        Returns:
            float: Current time in seconds.
        """

    @abstractmethod
    def schedule_next(self, callback: FrameCallback) -> Any:
        """Schedule ``callback`` for the next frame.

        Args:
            callback: Called with the frame timestamp in seconds.

        Returns:
            Handle accepted by ``cancel``.
        """

    @abstractmethod
    def cancel(self, handle: Any) -> None:
        """Cancel a pending frame callback."""


@dataclass
class SimulationState:
    """Playback state of the vehicle."""
    time: float = 0.0  # s
    velocity: float = 0.0  # m/s
    acceleration: float = 0.0  # m/s²
    distance: float = 0.0  # m
    energy: float = 0.0  # kWh traction energy
    is_playing: bool = False
    progress: float = 0.0  # % of cycle

    # FCEV state
    state_of_charge: float = INITIAL_SOC  # %
    hydrogen_mass: float = INITIAL_H2_MASS  # kg
    fc_power: float = 0.0  # kW
    battery_power: float = 0.0  # kW
    mode: Mode = Mode.IDLE

    def snapshot(self) -> SimulationState:
        return replace(self)


@dataclass(frozen=True)
class PowerHistoryEntry:
    """Power split at one frame, for the real-time chart."""
    time: float
    demanded_power: float
    fc_power: float
    battery_power: float


class SimulationClock:
    """Owns the simulation state and advances it one frame at a time.

    All mutation goes through ``start``, ``pause``, ``reset``, ``set_vehicle``
    and ``tick``. A scheduled frame that belongs to an earlier play session
    (before a pause, reset or parameter change) is dropped.
    """

    def __init__(self, vehicle: VehicleParams, scheduler: FrameScheduler,
                 history_size: int = POWER_HISTORY_SIZE):
        self.scheduler = scheduler
        self.vehicle = vehicle
        self.profile: CycleProfile = generate_cycle_profile(vehicle)
        self.state = SimulationState()

        self._history: Deque[PowerHistoryEntry] = deque(maxlen=history_size)
        self._listeners: List[Callable[[SimulationState], None]] = []
        self._start_time = 0.0
        self._paused_elapsed = 0.0
        self._handle: Any = None
        self._generation = 0

    @property
    def power_history(self) -> Tuple[PowerHistoryEntry, ...]:
        return tuple(self._history)

    def subscribe(self, listener: Callable[[SimulationState], None]) -> None:
        """Register a listener called with a state snapshot after every update."""
        self._listeners.append(listener)

    def set_vehicle(self, vehicle: VehicleParams) -> None:
        """Switch to new vehicle parameters and regenerate the drive cycle.

        Raises:
            TypeError: If ``vehicle`` is not a VehicleParams.
        """
        self.profile = generate_cycle_profile(vehicle)
        self.vehicle = vehicle
        logger.info("Vehicle parameters updated")
        if self.state.is_playing:
            # Continue from the same elapsed time on the new profile
            self._cancel_pending()
            self._schedule()

    def start(self) -> None:
        if self.state.is_playing:
            return

        now = self.scheduler.now()
        if self.state.progress >= 100:
            self._start_time = now
        else:
            self._start_time = now - self._paused_elapsed
        self._paused_elapsed = 0.0

        self.state.is_playing = True
        logger.info("Playback started at t=%.1f s", now - self._start_time)
        self._schedule()
        self._publish()

    def pause(self) -> None:
        if not self.state.is_playing:
            return

        self._cancel_pending()
        self._paused_elapsed = self.scheduler.now() - self._start_time
        self.state.is_playing = False
        logger.info("Playback paused at t=%.1f s", self._paused_elapsed)
        self._publish()

    def toggle(self) -> None:
        """Start when paused, pause when playing."""
        if self.state.is_playing:
            self.pause()
        else:
            self.start()

    def reset(self) -> None:
        self._cancel_pending()
        self.state = SimulationState()
        self._history.clear()
        self._start_time = 0.0
        self._paused_elapsed = 0.0
        logger.info("Simulation reset")
        self._publish()

    def tick(self, timestamp: float) -> None:
        """Advance the simulation to the frame at ``timestamp`` (seconds).

        Looks up the first cycle sample at or after the elapsed time and
        integrates consumption over NOMINAL_TICK_DT, not the real frame interval.
        Stops with progress 100 once the elapsed time reaches the cycle end.
        """
        if not self.state.is_playing:
            return

        elapsed = timestamp - self._start_time
        sample = None
        if elapsed < self.profile.duration:
            sample = self.profile.sample_at(elapsed)

        if sample is None:
            self._handle = None
            self.state.is_playing = False
            self.state.progress = 100.0
            logger.info("Drive cycle complete: SOC %.2f%%, H2 %.4f kg",
                        self.state.state_of_charge, self.state.hydrogen_mass)
            self._publish()
            return

        split = select_power_split(sample.power_demand, self.vehicle.max_fc_power_kw)
        hydrogen_mass, state_of_charge = integrate_consumption(
            self.state.hydrogen_mass,
            self.state.state_of_charge,
            split.fc_power,
            split.battery_power,
            self.vehicle.battery_capacity,
            NOMINAL_TICK_DT
        )

        if split.mode != self.state.mode:
            logger.debug("Mode %s -> %s at t=%.1f s (demand %.2f kW)",
                         self.state.mode.value, split.mode.value, sample.time, sample.power_demand)

        state = self.state
        state.time = sample.time
        state.velocity = sample.target_velocity
        state.acceleration = sample.acceleration
        state.distance = sample.cumulative_distance
        state.energy = sample.cumulative_energy
        state.progress = sample.time / self.profile.duration * 100
        state.fc_power = split.fc_power
        state.battery_power = split.battery_power
        state.hydrogen_mass = hydrogen_mass
        state.state_of_charge = state_of_charge
        state.mode = split.mode

        self._history.append(PowerHistoryEntry(
            time=sample.time,
            demanded_power=sample.power_demand,
            fc_power=split.fc_power,
            battery_power=split.battery_power
        ))

        self._publish()
        # A listener may have paused or reset playback
        if self.state.is_playing:
            self._schedule()

    def current_forces(self) -> ForceData:
        """Instantaneous forces at the current velocity and acceleration."""
        return calculate_forces(self.state.velocity, self.state.acceleration, self.vehicle)

    def _schedule(self) -> None:
        if self._handle is not None:
            self.scheduler.cancel(self._handle)
        generation = self._generation
        self._handle = self.scheduler.schedule_next(
            lambda timestamp: self._on_frame(generation, timestamp))

    def _on_frame(self, generation: int, timestamp: float) -> None:
        if generation != self._generation:
            return
        self._handle = None
        self.tick(timestamp)

    def _cancel_pending(self) -> None:
        self._generation += 1
        if self._handle is not None:
            self.scheduler.cancel(self._handle)
            self._handle = None

    def _publish(self) -> None:
        snapshot = self.state.snapshot()
        for listener in self._listeners:
            listener(snapshot)
