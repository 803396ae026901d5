"""
FCEV Dynamics Simulator
========================
Longitudinal vehicle dynamics and rule-based fuel cell / battery energy
management over a short WLTC-like drive cycle.

Calculates road load forces, power demand, the fuel cell / battery power split,
hydrogen and battery state-of-charge depletion.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from functools import lru_cache
from typing import Dict, Optional, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================
AIR_DENSITY = 1.225  # kg/m³ (at sea level, 15°C)
GRAVITY = 9.81  # m/s²
ROLLING_CUTOFF_SPEED = 0.1  # m/s, no rolling resistance at or below

# Drive cycle
CYCLE_TIME_STEP = 0.2  # s (5 Hz)
CYCLE_DURATION = 120.0  # s, inclusive

# Energy management
EV_POWER_THRESHOLD_KW = 20.0  # battery-only below this demand
H2_KWH_PER_KG = 16.5  # electrical kWh per kg H2 (~33 kWh LHV at ~50% stack efficiency)

# Initial vehicle state
INITIAL_SOC = 80.0  # %
INITIAL_H2_MASS = 5.0  # kg

# Component read-outs
H2_TANK_CAPACITY_KG = 5.0
H2_TANK_MAX_PRESSURE_BAR = 700.0
FC_MAX_CURRENT_A = 300.0
FC_OPEN_CIRCUIT_VOLTAGE = 400.0  # V
FC_VOLTAGE_DROOP = 0.5  # V/A
DC_BUS_VOLTAGE = 350.0  # V
TRANSMISSION_EFFICIENCY = 0.98

# Unit conversion factors
MPS_TO_KPH = 3.6
SECONDS_PER_HOUR = 3600.0


# =============================================================================
# Data Classes
# =============================================================================
class InvalidVehicleParamsError(ValueError):
    """Raised when a vehicle parameter is missing, non-finite or not positive."""


@dataclass(frozen=True)
class VehicleParams:
    """Vehicle parameters for road load and energy management calculations."""
    mass: float = 2000.0  # kg
    frontal_area: float = 2.0  # m²
    drag_coefficient: float = 0.3  # dimensionless
    rolling_resistance: float = 0.01  # dimensionless (typical: 0.01-0.02)
    wheel_diameter: float = 1.0  # m
    gear_ratio: float = 9.0  # single speed reduction

    # FCEV parameters
    max_fc_power_kw: float = 85.0  # fuel cell stack rating in kW
    battery_capacity: float = 15.0  # buffer battery capacity in kWh

    def __post_init__(self):
        for field in fields(self):
            value = getattr(self, field.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidVehicleParamsError(
                    f"{field.name} must be a number, got {value!r}")
            if not math.isfinite(value) or value <= 0:
                raise InvalidVehicleParamsError(
                    f"{field.name} must be finite and greater than zero, got {value!r}")

    def __str__(self) -> str:
        return (
            f"Vehicle Parameters:\n"
            f"  Mass: {self.mass:.1f} kg\n"
            f"  Frontal Area: {self.frontal_area:.2f} m²\n"
            f"  Drag Coefficient: {self.drag_coefficient:.3f}\n"
            f"  Rolling Resistance: {self.rolling_resistance:.4f}\n"
            f"  Wheel Diameter: {self.wheel_diameter:.2f} m\n"
            f"  Gear Ratio: {self.gear_ratio:.1f}:1\n"
            f"  Fuel Cell Power: {self.max_fc_power_kw:.1f} kW\n"
            f"  Battery Capacity: {self.battery_capacity:.1f} kWh"
        )


@dataclass(frozen=True)
class ForceData:
    """Instantaneous road load forces (N) and power demand (kW)."""
    faero: float
    froll: float
    finertia: float
    ftotal: float
    power: float


@dataclass(frozen=True)
class CycleSample:
    """Single point of the generated drive cycle."""
    time: float  # s
    target_velocity: float  # m/s
    acceleration: float  # m/s²
    drag_force: float  # N
    roll_force: float  # N
    inertia_force: float  # N
    net_force: float  # N
    power_demand: float  # kW (positive = traction, negative = regen)
    cumulative_distance: float  # m
    cumulative_energy: float  # kWh (traction only)


@dataclass(frozen=True, eq=False)
class CycleProfile:
    """Drive cycle with road loads for one set of vehicle parameters."""
    time: np.ndarray  # s
    velocity: np.ndarray  # m/s
    acceleration: np.ndarray  # m/s²
    force_aero: np.ndarray  # N
    force_rolling: np.ndarray  # N
    force_inertia: np.ndarray  # N
    force_total: np.ndarray  # N
    power: np.ndarray  # kW
    distance_cumulative: np.ndarray  # m
    energy_cumulative: np.ndarray  # kWh
    samples: Tuple[CycleSample, ...]

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def duration(self) -> float:
        """Time of the last sample in seconds."""
        return float(self.time[-1])

    def sample_at(self, elapsed: float) -> Optional[CycleSample]:
        """
        Return the first sample whose time is at or after ``elapsed``.

        No interpolation: playback snaps forward to the next sample so that the
        values shown always match the chart backing data.

        Returns:
            The sample, or None when ``elapsed`` is past the end of the cycle
        """
        idx = int(np.searchsorted(self.time, elapsed, side='left'))
        if idx >= len(self.samples):
            return None
        return self.samples[idx]

    @property
    def peak_power_traction(self) -> float:
        """Peak traction power in kW."""
        return float(np.max(self.power))

    @property
    def peak_power_regen(self) -> float:
        """Peak regenerative power in kW (returned as positive value)."""
        return float(-np.min(self.power))

    @property
    def average_power(self) -> float:
        """Average power in kW."""
        return float(np.mean(self.power))

    @property
    def total_energy(self) -> float:
        """Total traction energy in kWh."""
        return float(self.energy_cumulative[-1])

    @property
    def total_distance(self) -> float:
        """Total distance in meters."""
        return float(self.distance_cumulative[-1])

    @property
    def max_speed(self) -> float:
        return float(np.max(self.velocity))

    @property
    def average_speed(self) -> float:
        return float(np.mean(self.velocity))


# =============================================================================
# Physics Calculations
# =============================================================================
ArrayLike = Union[float, np.ndarray]


def road_load_forces(
    velocity: ArrayLike,
    acceleration: ArrayLike,
    vehicle: VehicleParams
) -> Tuple[ArrayLike, ArrayLike, ArrayLike, ArrayLike, ArrayLike]:
    """
    Calculate road load forces and power for scalar or array inputs.

    Road load equation:
        F_total = F_aero + F_rolling + F_inertia

    Where:
        F_aero = 0.5 * ρ * Cd * A * v²
        F_rolling = Crr * m * g      (only while v > 0.1 m/s)
        F_inertia = m * a

    The rolling term drops to zero below the cutoff speed, so a vehicle at
    standstill carries no rolling load.

    Returns:
        Tuple of (F_aero, F_rolling, F_inertia, F_total) in N and power in kW
    """
    force_aero = 0.5 * AIR_DENSITY * vehicle.drag_coefficient * vehicle.frontal_area * velocity**2
    rolling = np.where(np.asarray(velocity) > ROLLING_CUTOFF_SPEED, 1.0, 0.0)
    force_rolling = vehicle.rolling_resistance * vehicle.mass * GRAVITY * rolling
    force_inertia = vehicle.mass * acceleration
    force_total = force_aero + force_rolling + force_inertia
    power_kw = force_total * velocity / 1000
    return force_aero, force_rolling, force_inertia, force_total, power_kw


def calculate_forces(velocity: float, acceleration: float, vehicle: VehicleParams) -> ForceData:
    """Instantaneous forces for live display."""
    faero, froll, finertia, ftotal, power = road_load_forces(
        float(velocity), float(acceleration), vehicle)
    return ForceData(
        faero=float(faero),
        froll=float(froll),
        finertia=float(finertia),
        ftotal=float(ftotal),
        power=float(power)
    )


# =============================================================================
# Drive Cycle Generation
# =============================================================================
def target_speed(t: float) -> float:
    """
    Target speed (m/s) of the short WLTC-like cycle at time t (s).

    Phases: idle, acceleration, cruise with ripple, high speed acceleration,
    top speed ~94 km/h, deceleration, stop.
    """
    if t < 10:
        v = 0.0
    elif t < 30:
        v = (t - 10) * 0.8
    elif t < 50:
        v = 16 + math.sin(t * 0.5) * 2
    elif t < 70:
        v = 16 + (t - 50) * 0.5
    elif t < 90:
        v = 26.0
    elif t < 110:
        v = 26 - (t - 90) * 1.3
    else:
        v = 0.0
    return max(0.0, v)


@lru_cache(maxsize=32)
def _build_cycle_profile(vehicle: VehicleParams) -> CycleProfile:
    n = int(round(CYCLE_DURATION / CYCLE_TIME_STEP)) + 1
    time = np.linspace(0.0, CYCLE_DURATION, n)
    speed = np.array([target_speed(t) for t in time])

    # Backward difference, zero at start
    acceleration = np.zeros(n)
    acceleration[1:] = np.diff(speed) / CYCLE_TIME_STEP

    force_aero, force_rolling, force_inertia, force_total, power = road_load_forces(
        speed, acceleration, vehicle)

    # Accumulate from the second sample on; only traction counts toward energy
    dt = np.where(time > 0, CYCLE_TIME_STEP, 0.0)
    distance_cumulative = np.cumsum(speed * dt)
    energy_cumulative = np.cumsum(np.maximum(power, 0.0) * dt / SECONDS_PER_HOUR)

    columns = (time, speed, acceleration, force_aero, force_rolling, force_inertia,
               force_total, power, distance_cumulative, energy_cumulative)
    for column in columns:
        column.flags.writeable = False

    samples = tuple(
        CycleSample(
            time=float(time[i]),
            target_velocity=float(speed[i]),
            acceleration=float(acceleration[i]),
            drag_force=float(force_aero[i]),
            roll_force=float(force_rolling[i]),
            inertia_force=float(force_inertia[i]),
            net_force=float(force_total[i]),
            power_demand=float(power[i]),
            cumulative_distance=float(distance_cumulative[i]),
            cumulative_energy=float(energy_cumulative[i])
        )
        for i in range(n)
    )

    logger.info("Generated drive cycle: %d samples, %.0f s, %.3f kWh traction energy",
                n, CYCLE_DURATION, energy_cumulative[-1])

    return CycleProfile(*columns, samples=samples)


def generate_cycle_profile(vehicle: VehicleParams) -> CycleProfile:
    """
    Generate the drive cycle and its road loads for a vehicle.

    Samples are spaced CYCLE_TIME_STEP apart from 0 to CYCLE_DURATION inclusive.
    Acceleration is the finite difference of target speed. Identical
    parameters return the same cached profile.

    Args:
        vehicle: Validated vehicle parameters

    Returns:
        CycleProfile with read-only arrays and per-sample records
    """
    if not isinstance(vehicle, VehicleParams):
        raise TypeError(f"expected VehicleParams, got {type(vehicle).__name__}")
    return _build_cycle_profile(vehicle)


# =============================================================================
# Energy Management
# =============================================================================
class Mode(str, Enum):
    """Powertrain operating mode."""
    IDLE = 'IDLE'
    EV = 'EV'
    HYBRID = 'HYBRID'
    REGEN = 'REGEN'


@dataclass(frozen=True)
class PowerSplit:
    """Fuel cell / battery share of the power demand (kW)."""
    mode: Mode
    fc_power: float
    battery_power: float


def select_power_split(power_demand_kw: float, max_fc_power_kw: float) -> PowerSplit:
    """
    Rule-based power split between fuel cell and battery.

    Implements three operating modes:
        - REGEN: demand <= 0, all braking power goes into the battery
        - EV: demand below EV_POWER_THRESHOLD_KW, battery only
        - HYBRID: fuel cell follows the load up to its rating, battery covers the rest

    The decision has no memory of the previous mode. IDLE is never returned;
    a demand of exactly zero is treated as REGEN.

    Args:
        power_demand_kw: Power demand at the wheels (kW)
        max_fc_power_kw: Fuel cell rating (kW)

    Returns:
        PowerSplit with the selected mode and power per source
    """
    if power_demand_kw <= 0:
        return PowerSplit(Mode.REGEN, 0.0, power_demand_kw)
    if power_demand_kw < EV_POWER_THRESHOLD_KW:
        return PowerSplit(Mode.EV, 0.0, power_demand_kw)

    fc_power = min(max_fc_power_kw, power_demand_kw)
    return PowerSplit(Mode.HYBRID, fc_power, power_demand_kw - fc_power)


def integrate_consumption(
    hydrogen_mass: float,
    state_of_charge: float,
    fc_power: float,
    battery_power: float,
    battery_capacity: float,
    dt: float
) -> Tuple[float, float]:
    """
    Advance hydrogen mass and battery SOC by one step.

    Args:
        hydrogen_mass: Hydrogen remaining (kg)
        state_of_charge: Battery SOC (%)
        fc_power: Fuel cell output (kW)
        battery_power: Battery output (kW, negative = charging)
        battery_capacity: Battery capacity (kWh)
        dt: Step duration (s)

    Returns:
        Tuple of (hydrogen_mass, state_of_charge), clamped to [0, inf) and [0, 100]
    """
    h2_rate = (fc_power / H2_KWH_PER_KG) / SECONDS_PER_HOUR  # kg/s
    hydrogen_mass = max(0.0, hydrogen_mass - h2_rate * dt)

    battery_energy_step = battery_power * dt / SECONDS_PER_HOUR  # kWh
    state_of_charge = state_of_charge - battery_energy_step / battery_capacity * 100.0
    state_of_charge = min(max(state_of_charge, 0.0), 100.0)

    return hydrogen_mass, state_of_charge


# =============================================================================
# Component Read-outs
# =============================================================================
@dataclass(frozen=True)
class ComponentReadout:
    """Operating points of the powertrain components for detail displays."""
    wheel_rpm: float
    motor_rpm: float
    motor_torque: float  # N·m
    axle_torque: float  # N·m
    wheel_angle: float  # deg
    fc_load: float  # fraction of rated power
    fc_efficiency: float  # %
    fc_zone: str
    fc_current: float  # A
    fc_voltage: float  # V
    h2_pressure: float  # bar
    cell_voltage: float  # V, pack average
    dc_bus_current: float  # A
    fc_share: float  # % of delivered power from the fuel cell


def fuel_cell_zone(fc_power: float, max_fc_power_kw: float) -> str:
    """Operating zone label of the fuel cell stack."""
    if fc_power <= 0:
        return 'Idle'
    load = fc_power / max_fc_power_kw
    if load > 0.7:
        return 'High Load'
    if load > 0.4:
        return 'Optimal'
    return 'Low Load'


def calculate_component_readout(state, forces: ForceData, vehicle: VehicleParams) -> ComponentReadout:
    """
    Derive component operating points from a simulation state.

    Args:
        state: Any object with velocity, distance, fc_power, battery_power,
            hydrogen_mass and state_of_charge attributes
        forces: Instantaneous forces for the same state
        vehicle: Vehicle parameters

    Returns:
        ComponentReadout
    """
    circumference = math.pi * vehicle.wheel_diameter
    wheel_rpm = state.velocity / circumference * 60
    motor_rpm = wheel_rpm * vehicle.gear_ratio
    motor_torque = abs(forces.power) * 9550 / max(1.0, abs(motor_rpm))

    fc_load = state.fc_power / vehicle.max_fc_power_kw
    fc_current = fc_load * FC_MAX_CURRENT_A
    delivered = state.fc_power + abs(state.battery_power)

    return ComponentReadout(
        wheel_rpm=wheel_rpm,
        motor_rpm=motor_rpm,
        motor_torque=motor_torque,
        axle_torque=motor_torque * vehicle.gear_ratio * TRANSMISSION_EFFICIENCY,
        wheel_angle=(state.distance % circumference) / circumference * 360,
        fc_load=fc_load,
        fc_efficiency=45 + fc_load * 10 if state.fc_power > 0 else 0.0,
        fc_zone=fuel_cell_zone(state.fc_power, vehicle.max_fc_power_kw),
        fc_current=fc_current,
        fc_voltage=FC_OPEN_CIRCUIT_VOLTAGE - fc_current * FC_VOLTAGE_DROOP,
        h2_pressure=state.hydrogen_mass / H2_TANK_CAPACITY_KG * H2_TANK_MAX_PRESSURE_BAR,
        cell_voltage=3.0 + 1.2 * (state.state_of_charge / 100),
        dc_bus_current=abs(forces.power) * 1000 / DC_BUS_VOLTAGE,
        fc_share=state.fc_power / delivered * 100 if state.fc_power > 0 else 0.0
    )


# =============================================================================
# Configuration
# =============================================================================
def load_vehicle_presets(filepath: str) -> Dict[str, VehicleParams]:
    """
    Load named vehicle presets from a JSON file.

    Expected format:
        {"presets": {"Name": {"mass": 2000, "frontal_area": 2.0, ...}}}

    Fields left out of a preset take the VehicleParams defaults.

    Returns:
        Dictionary of preset name to VehicleParams
    """
    with open(filepath, 'r') as f:
        data = json.load(f)

    known = {field.name for field in fields(VehicleParams)}
    presets = {}
    for name, values in data.get('presets', {}).items():
        unknown = set(values) - known
        if unknown:
            raise InvalidVehicleParamsError(
                f"Preset '{name}' has unknown fields: {', '.join(sorted(unknown))}")
        presets[name] = VehicleParams(**values)

    logger.info("Loaded %d vehicle presets from %s", len(presets), filepath)
    return presets


# =============================================================================
# Output Functions
# =============================================================================
def generate_summary_text(vehicle: VehicleParams, profile: CycleProfile, state=None) -> str:
    """Generate summary text for the drive cycle and, optionally, the playback state."""
    summary = f"""
{'='*70}
FCEV DRIVE CYCLE RESULTS
{'='*70}

Simulation Date: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}

{'-'*70}
VEHICLE PARAMETERS
{'-'*70}
{vehicle}

{'-'*70}
DRIVE CYCLE STATISTICS
{'-'*70}
  Duration: {profile.duration:.1f} s
  Distance: {profile.total_distance / 1000:.3f} km
  Max Speed: {profile.max_speed:.2f} m/s ({profile.max_speed * MPS_TO_KPH:.1f} km/h)
  Avg Speed: {profile.average_speed:.2f} m/s ({profile.average_speed * MPS_TO_KPH:.1f} km/h)

{'-'*70}
POWER RESULTS
{'-'*70}
  Peak Traction Power: {profile.peak_power_traction:.2f} kW
  Peak Regen Power:    {profile.peak_power_regen:.2f} kW
  Average Power:       {profile.average_power:.2f} kW
  Traction Energy:     {profile.total_energy:.4f} kWh
"""
    if state is not None:
        summary += f"""
{'-'*70}
ENERGY MANAGEMENT
{'-'*70}
  Mode:              {Mode(state.mode).value}
  Progress:          {state.progress:.1f}%
  Fuel Cell Power:   {state.fc_power:.2f} kW
  Battery Power:     {state.battery_power:.2f} kW
  Battery SOC:       {state.state_of_charge:.2f}%
  Hydrogen:          {state.hydrogen_mass:.4f} kg
"""
    summary += f"\n{'='*70}\n"
    return summary
