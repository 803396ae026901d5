"""Shared fixtures for the simulator tests."""

import pytest

from fcev_simulator import VehicleParams
from simulation_clock import FrameScheduler, SimulationClock


class ManualFrameScheduler(FrameScheduler):
    """Deterministic scheduler: frames fire only when the test advances time."""

    def __init__(self, start_time: float = 1000.0):
        self.current_time = start_time
        self.pending = {}
        self.cancelled = []
        self._next_handle = 0

    def now(self) -> float:
        return self.current_time

    def schedule_next(self, callback):
        handle = self._next_handle
        self._next_handle += 1
        self.pending[handle] = callback
        return handle

    def cancel(self, handle) -> None:
        self.cancelled.append(handle)
        self.pending.pop(handle, None)

    def advance(self, seconds: float) -> None:
        """Move wall-clock time forward and fire the frames pending at that point."""
        self.current_time += seconds
        callbacks = list(self.pending.values())
        self.pending.clear()
        for callback in callbacks:
            callback(self.current_time)


@pytest.fixture
def vehicle() -> VehicleParams:
    return VehicleParams()


@pytest.fixture
def scheduler() -> ManualFrameScheduler:
    return ManualFrameScheduler()


@pytest.fixture
def clock(vehicle, scheduler) -> SimulationClock:
    return SimulationClock(vehicle, scheduler)
