"""Tests for frame-driven playback."""

import pytest

from fcev_simulator import (
    H2_KWH_PER_KG,
    INITIAL_H2_MASS,
    INITIAL_SOC,
    Mode,
    VehicleParams,
    calculate_forces,
)
from simulation_clock import NOMINAL_TICK_DT, SimulationClock, SimulationState

from conftest import ManualFrameScheduler


def run_until_stopped(clock, scheduler, frame=0.05, limit=10000):
    for _ in range(limit):
        if not scheduler.pending:
            return
        scheduler.advance(frame)
    raise AssertionError("playback did not stop")


class TestSimulationState:
    """Tests for SimulationState."""

    def test_initial_values(self) -> None:
        state = SimulationState()
        assert state.time == 0.0
        assert state.velocity == 0.0
        assert state.progress == 0.0
        assert not state.is_playing
        assert state.state_of_charge == INITIAL_SOC == 80.0
        assert state.hydrogen_mass == INITIAL_H2_MASS == 5.0
        assert state.mode == Mode.IDLE

    def test_snapshot_is_independent(self) -> None:
        state = SimulationState()
        snapshot = state.snapshot()
        state.velocity = 12.0
        assert snapshot.velocity == 0.0


class TestPlayback:
    """Tests for start, tick and cycle completion."""

    def test_start_schedules_frame(self, clock, scheduler) -> None:
        clock.start()
        assert clock.state.is_playing
        assert len(scheduler.pending) == 1

    def test_start_twice_is_noop(self, clock, scheduler) -> None:
        clock.start()
        clock.start()
        assert len(scheduler.pending) == 1

    def test_tick_snaps_to_next_sample(self, clock, scheduler) -> None:
        clock.start()
        scheduler.advance(0.9)

        assert clock.state.time == pytest.approx(1.0)
        assert clock.state.velocity == 0.0
        # Standstill demand is exactly zero, which the policy routes to REGEN
        assert clock.state.mode == Mode.REGEN
        assert clock.state.state_of_charge == INITIAL_SOC
        assert clock.state.progress == pytest.approx(1.0 / 120 * 100)
        assert len(scheduler.pending) == 1

    def test_tick_runs_power_split_and_integration(self, clock, scheduler) -> None:
        clock.start()
        scheduler.advance(25.1)

        sample = clock.profile.sample_at(25.1)
        state = clock.state
        assert state.time == sample.time
        assert state.velocity == sample.target_velocity
        assert state.acceleration == sample.acceleration
        assert state.distance == sample.cumulative_distance
        assert state.energy == sample.cumulative_energy

        assert sample.power_demand >= 20.0
        assert state.mode == Mode.HYBRID
        assert state.fc_power == pytest.approx(sample.power_demand)
        assert state.battery_power == pytest.approx(0.0)

        consumed = sample.power_demand / H2_KWH_PER_KG / 3600 * NOMINAL_TICK_DT
        assert state.hydrogen_mass == pytest.approx(INITIAL_H2_MASS - consumed)

    def test_integration_uses_nominal_step(self, clock, scheduler) -> None:
        """Frame spacing does not change the consumption per frame."""
        clock.start()
        scheduler.advance(15.05)
        soc_before = clock.state.state_of_charge
        scheduler.advance(3.0)

        sample = clock.profile.sample_at(18.05)
        expected = soc_before - sample.power_demand * NOMINAL_TICK_DT / 3600 / clock.vehicle.battery_capacity * 100
        assert clock.state.mode == Mode.EV
        assert clock.state.state_of_charge == pytest.approx(expected)

    def test_stops_at_end_of_cycle(self, clock, scheduler) -> None:
        clock.start()
        run_until_stopped(clock, scheduler)

        assert not clock.state.is_playing
        assert clock.state.progress == 100.0
        assert not scheduler.pending

    def test_progress_never_decreases(self, clock, scheduler) -> None:
        progress = []
        clock.subscribe(lambda state: progress.append(state.progress))
        clock.start()
        run_until_stopped(clock, scheduler)

        assert progress == sorted(progress)
        assert progress[-1] == 100.0

    def test_full_cycle_uses_both_sources(self, clock, scheduler) -> None:
        modes = set()
        clock.subscribe(lambda state: modes.add(state.mode))
        clock.start()
        run_until_stopped(clock, scheduler)

        assert {Mode.EV, Mode.HYBRID, Mode.REGEN} <= modes
        assert clock.state.hydrogen_mass < INITIAL_H2_MASS

    def test_restart_after_completion(self, clock, scheduler) -> None:
        clock.start()
        run_until_stopped(clock, scheduler)
        hydrogen_mass = clock.state.hydrogen_mass

        clock.start()
        scheduler.advance(2.1)
        assert clock.state.is_playing
        assert clock.state.time == pytest.approx(2.2)
        assert clock.state.progress < 100
        # Consumption carries over into the next run
        assert clock.state.hydrogen_mass == hydrogen_mass

    def test_bounds_hold_with_tiny_battery(self, scheduler) -> None:
        vehicle = VehicleParams(mass=3000, battery_capacity=0.01, max_fc_power_kw=5)
        clock = SimulationClock(vehicle, scheduler)
        states = []
        clock.subscribe(states.append)
        clock.start()
        run_until_stopped(clock, scheduler, frame=0.02)

        assert all(0.0 <= s.state_of_charge <= 100.0 for s in states)
        assert all(s.hydrogen_mass >= 0.0 for s in states)
        assert min(s.state_of_charge for s in states) == 0.0


class TestPauseAndReset:
    """Tests for pause, resume, reset and stale frames."""

    def test_pause_cancels_frame(self, clock, scheduler) -> None:
        clock.start()
        scheduler.advance(5.1)
        clock.pause()

        assert not clock.state.is_playing
        assert not scheduler.pending
        assert scheduler.cancelled

    def test_resume_continues_from_paused_time(self, clock, scheduler) -> None:
        clock.start()
        scheduler.advance(30.1)
        clock.pause()
        paused_time = clock.state.time

        scheduler.current_time += 500.0
        clock.start()
        scheduler.advance(0.05)

        assert clock.state.time >= paused_time
        assert clock.state.time == pytest.approx(30.2)

    def test_toggle(self, clock) -> None:
        clock.toggle()
        assert clock.state.is_playing
        clock.toggle()
        assert not clock.state.is_playing

    def test_reset_restores_initial_state(self, clock, scheduler) -> None:
        clock.start()
        for _ in range(300):
            scheduler.advance(0.1)
        clock.reset()

        assert clock.state == SimulationState()
        assert clock.power_history == ()
        assert not scheduler.pending

    def test_stale_frame_after_reset_is_ignored(self, clock, scheduler) -> None:
        clock.start()
        scheduler.advance(25.1)
        stale = list(scheduler.pending.values())
        clock.reset()

        for callback in stale:
            callback(scheduler.now() + 1.0)

        assert clock.state == SimulationState()
        assert clock.power_history == ()

    def test_stale_frame_after_resume_is_ignored(self, clock, scheduler) -> None:
        clock.start()
        scheduler.advance(12.1)
        stale = list(scheduler.pending.values())
        clock.pause()
        clock.start()
        history_length = len(clock.power_history)

        for callback in stale:
            callback(scheduler.now() + 0.5)

        assert len(clock.power_history) == history_length
        assert len(scheduler.pending) == 1

    def test_tick_while_paused_does_nothing(self, clock, scheduler) -> None:
        clock.tick(scheduler.now() + 50.0)
        assert clock.state == SimulationState()

    def test_reset_after_completion_allows_fresh_run(self, clock, scheduler) -> None:
        clock.start()
        run_until_stopped(clock, scheduler)
        clock.reset()
        clock.start()
        scheduler.advance(0.5)

        assert clock.state.progress < 100
        assert clock.state.time == pytest.approx(0.6)


class TestPowerHistory:
    """Tests for the trailing power split window."""

    def test_keeps_most_recent_entries(self, vehicle) -> None:
        scheduler = ManualFrameScheduler()
        clock = SimulationClock(vehicle, scheduler, history_size=5)
        clock.start()
        for _ in range(12):
            scheduler.advance(1.0)

        history = clock.power_history
        assert len(history) == 5
        assert history[-1].time == clock.state.time
        assert [entry.time for entry in history] == sorted(entry.time for entry in history)

    def test_entry_matches_state(self, clock, scheduler) -> None:
        clock.start()
        scheduler.advance(80.1)
        entry = clock.power_history[-1]

        assert entry.fc_power == clock.state.fc_power
        assert entry.battery_power == clock.state.battery_power
        assert entry.demanded_power == pytest.approx(entry.fc_power + entry.battery_power)

    def test_default_window(self, clock, scheduler) -> None:
        clock.start()
        for _ in range(150):
            scheduler.advance(0.2)
        assert len(clock.power_history) == 100


class TestVehicleUpdates:
    """Tests for parameter changes and live forces."""

    def test_set_vehicle_regenerates_profile(self, clock) -> None:
        original = clock.profile
        clock.set_vehicle(VehicleParams(mass=2500))
        assert clock.profile is not original
        assert clock.vehicle.mass == 2500

    def test_set_vehicle_rejects_other_types(self, clock) -> None:
        with pytest.raises(TypeError):
            clock.set_vehicle({'mass': 2500})
        assert clock.vehicle == VehicleParams()

    def test_set_vehicle_while_playing_keeps_one_frame(self, clock, scheduler) -> None:
        clock.start()
        scheduler.advance(5.1)
        clock.set_vehicle(VehicleParams(mass=2500))

        assert len(scheduler.pending) == 1
        scheduler.advance(0.2)
        assert clock.state.time == pytest.approx(5.4)

    def test_current_forces(self, clock, scheduler) -> None:
        clock.start()
        scheduler.advance(60.1)
        forces = clock.current_forces()
        expected = calculate_forces(clock.state.velocity, clock.state.acceleration, clock.vehicle)
        assert forces == expected

    def test_listeners_receive_snapshots(self, clock, scheduler) -> None:
        received = []
        clock.subscribe(received.append)
        clock.start()
        scheduler.advance(1.1)
        clock.pause()
        clock.reset()

        assert [s.is_playing for s in received] == [True, True, False, False]
        assert received[1] is not clock.state

    def test_listener_reset_stops_scheduling(self, clock, scheduler) -> None:
        def reset_on_hybrid(state):
            if state.mode == Mode.HYBRID:
                clock.reset()

        clock.subscribe(reset_on_hybrid)
        clock.start()
        scheduler.advance(25.1)

        assert clock.state == SimulationState()
        assert not scheduler.pending
