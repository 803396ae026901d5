"""
FCEV Dashboard GUI
==================
Graphical user interface for the FCEV drive cycle simulator.
Provides interactive parameter input and real-time playback of the
energy management simulation.
"""

import logging
import os
import time
import tkinter as tk
from tkinter import ttk, messagebox

from matplotlib.backends.backend_tkagg import FigureCanvasTkAgg
from matplotlib.figure import Figure

from fcev_simulator import (
    MPS_TO_KPH,
    VehicleParams,
    calculate_component_readout,
    generate_summary_text,
    load_vehicle_presets,
)
from simulation_clock import FrameScheduler, SimulationClock

logger = logging.getLogger(__name__)

PRESETS_FILE = "vehicle_presets.json"
FRAME_INTERVAL_MS = 16  # ~60 fps

# (field, label) for the parameter entries, in display order
PARAMETER_FIELDS = [
    ('mass', "Mass (kg):"),
    ('frontal_area', "Frontal Area (m²):"),
    ('drag_coefficient', "Drag Coefficient:"),
    ('rolling_resistance', "Rolling Resistance:"),
    ('wheel_diameter', "Wheel Diameter (m):"),
    ('gear_ratio', "Gear Ratio:"),
    ('max_fc_power_kw', "Max Fuel Cell Power (kW):"),
    ('battery_capacity', "Battery Capacity (kWh):"),
]


class TkFrameScheduler(FrameScheduler):
    """Frame scheduling on the Tk event loop via ``after``."""

    def __init__(self, widget, interval_ms=FRAME_INTERVAL_MS):
        self.widget = widget
        self.interval_ms = interval_ms

    def now(self):
        return time.perf_counter()

    def schedule_next(self, callback):
        return self.widget.after(self.interval_ms, lambda: callback(self.now()))

    def cancel(self, handle):
        self.widget.after_cancel(handle)


class FcevDashboardGUI:
    """Main GUI application for the FCEV drive cycle simulation."""

    def __init__(self, root):
        self.root = root
        self.root.title("FCEV Drive Cycle Simulator")
        self.root.geometry("1400x800")
        self.root.minsize(1000, 600)

        self.vehicle = VehicleParams()
        self.clock = SimulationClock(self.vehicle, TkFrameScheduler(root))
        self.presets = self.load_presets()

        self.setup_ui()
        self.draw_profile()
        self.clock.subscribe(self.on_state)
        self.on_state(self.clock.state.snapshot())

    def load_presets(self):
        if not os.path.exists(PRESETS_FILE):
            return {}
        try:
            return load_vehicle_presets(PRESETS_FILE)
        except (OSError, ValueError) as e:
            messagebox.showerror("Error", f"Error loading presets: {str(e)}")
            return {}

    def setup_ui(self):
        """Create the main UI layout."""
        self.root.rowconfigure(0, weight=1)
        self.root.columnconfigure(0, weight=1)

        paned = ttk.PanedWindow(self.root, orient=tk.HORIZONTAL)
        paned.grid(row=0, column=0, sticky=(tk.W, tk.E, tk.N, tk.S))

        left_frame = ttk.Frame(paned, padding=10)
        paned.add(left_frame, weight=0)
        right_frame = ttk.Frame(paned, padding=10)
        paned.add(right_frame, weight=1)

        self.setup_input_panel(left_frame)
        self.setup_plot_panel(right_frame)

    def setup_input_panel(self, parent):
        """Create the control and parameter panel."""
        parent.columnconfigure(0, weight=1)

        title = ttk.Label(parent, text="Simulation Control", font=("Arial", 14, "bold"))
        title.grid(row=0, column=0, pady=(0, 20))

        # Playback
        control_frame = ttk.LabelFrame(parent, text="Playback", padding=10)
        control_frame.grid(row=1, column=0, sticky=(tk.W, tk.E), pady=(0, 10))
        control_frame.columnconfigure(0, weight=1)
        control_frame.columnconfigure(1, weight=1)

        self.play_button = ttk.Button(control_frame, text="Start", command=self.clock.toggle)
        self.play_button.grid(row=0, column=0, padx=5, pady=5, sticky=(tk.W, tk.E))
        ttk.Button(control_frame, text="Reset", command=self.clock.reset).grid(
            row=0, column=1, padx=5, pady=5, sticky=(tk.W, tk.E))

        self.progress_var = tk.DoubleVar(value=0.0)
        ttk.Progressbar(control_frame, variable=self.progress_var, maximum=100).grid(
            row=1, column=0, columnspan=2, padx=5, pady=5, sticky=(tk.W, tk.E))
        self.progress_label = ttk.Label(control_frame, text="")
        self.progress_label.grid(row=2, column=0, columnspan=2, sticky=tk.W, padx=5)

        # Vehicle Parameters
        vehicle_frame = ttk.LabelFrame(parent, text="Vehicle Parameters", padding=10)
        vehicle_frame.grid(row=2, column=0, sticky=(tk.W, tk.E), pady=(0, 10))
        vehicle_frame.columnconfigure(0, weight=0, minsize=180)
        vehicle_frame.columnconfigure(1, weight=1)

        row = 0
        if self.presets:
            ttk.Label(vehicle_frame, text="Preset:").grid(row=row, column=0, sticky=tk.W, pady=5)
            self.preset_var = tk.StringVar()
            preset_dropdown = ttk.Combobox(vehicle_frame, textvariable=self.preset_var,
                                           values=sorted(self.presets), state="readonly")
            preset_dropdown.grid(row=row, column=1, padx=5, pady=5, sticky=(tk.W, tk.E))
            preset_dropdown.bind('<<ComboboxSelected>>', self.on_preset_selected)
            row += 1
            ttk.Separator(vehicle_frame, orient='horizontal').grid(
                row=row, column=0, columnspan=2, sticky='ew', pady=10)
            row += 1

        self.param_vars = {}
        for name, label in PARAMETER_FIELDS:
            ttk.Label(vehicle_frame, text=label).grid(row=row, column=0, sticky=tk.W, pady=5)
            var = tk.StringVar(value=str(getattr(self.vehicle, name)))
            ttk.Entry(vehicle_frame, textvariable=var).grid(
                row=row, column=1, padx=5, pady=5, sticky=(tk.W, tk.E))
            self.param_vars[name] = var
            row += 1

        ttk.Button(vehicle_frame, text="Apply Parameters", command=self.apply_parameters).grid(
            row=row, column=0, columnspan=2, pady=10)

    def setup_plot_panel(self, parent):
        """Create the plot display panel with the live state table underneath."""
        paned_window = ttk.PanedWindow(parent, orient=tk.VERTICAL)
        paned_window.pack(fill=tk.BOTH, expand=True)

        plot_frame = ttk.Frame(paned_window)
        paned_window.add(plot_frame, weight=3)

        self.fig = Figure(figsize=(9, 6), dpi=100)
        self.ax1 = self.fig.add_subplot(2, 2, 1)  # Speed
        self.ax2 = self.fig.add_subplot(2, 2, 2)  # Power demand
        self.ax3 = self.fig.add_subplot(2, 2, 3)  # Energy
        self.ax4 = self.fig.add_subplot(2, 2, 4)  # Power split

        self.canvas = FigureCanvasTkAgg(self.fig, plot_frame)
        self.canvas.draw()
        self.canvas.get_tk_widget().pack(fill=tk.BOTH, expand=True)

        results_frame = ttk.LabelFrame(paned_window, text="Live State", padding="5")
        paned_window.add(results_frame, weight=1)

        columns = ('value1', 'value2')
        self.results_tree = ttk.Treeview(results_frame, columns=columns, show='headings', height=8)
        self.results_tree.heading('value1', text='')
        self.results_tree.heading('value2', text='')
        self.results_tree.column('value1', width=350, minwidth=250, anchor=tk.W)
        self.results_tree.column('value2', width=350, minwidth=250, anchor=tk.W)
        self.results_tree.tag_configure('evenrow', background='#f5f5f5')

        scrollbar = ttk.Scrollbar(results_frame, orient=tk.VERTICAL, command=self.results_tree.yview)
        self.results_tree.configure(yscrollcommand=scrollbar.set)
        self.results_tree.pack(side=tk.LEFT, fill=tk.BOTH, expand=True)
        scrollbar.pack(side=tk.RIGHT, fill=tk.Y)

    def on_preset_selected(self, event=None):
        preset = self.presets.get(self.preset_var.get())
        if preset is None:
            return
        for name, var in self.param_vars.items():
            var.set(str(getattr(preset, name)))
        self.apply_parameters()

    def get_vehicle_params(self):
        """Get vehicle parameters from input fields."""
        try:
            params = {name: float(var.get()) for name, var in self.param_vars.items()}
            return VehicleParams(**params)
        except ValueError as e:
            messagebox.showerror("Input Error",
                                 f"Invalid input values. Please check all fields.\n{str(e)}")
            return None

    def apply_parameters(self):
        vehicle = self.get_vehicle_params()
        if vehicle is None:
            return
        self.vehicle = vehicle
        self.clock.set_vehicle(vehicle)
        logger.info("\n%s", generate_summary_text(vehicle, self.clock.profile))
        self.draw_profile()
        self.on_state(self.clock.state.snapshot())

    def draw_profile(self):
        """Draw the static drive cycle charts and create the playhead artists."""
        profile = self.clock.profile
        for ax in (self.ax1, self.ax2, self.ax3, self.ax4):
            ax.clear()
            ax.grid(True, alpha=0.3)
            ax.set_xlabel("Time (s)")

        # Plot 1: Speed
        self.ax1.plot(profile.time, profile.velocity * MPS_TO_KPH, 'b-', linewidth=1.5)
        self.ax1.set_ylabel("Speed (km/h)")
        self.ax1.set_title("Target Speed")

        # Plot 2: Power
        self.ax2.plot(profile.time, profile.power, 'r-', linewidth=1.5)
        self.ax2.axhline(y=0, color='k', linestyle='-', linewidth=0.5)
        self.ax2.fill_between(profile.time, 0, profile.power, where=profile.power >= 0,
                              color='red', alpha=0.3, label='Traction')
        self.ax2.fill_between(profile.time, 0, profile.power, where=profile.power < 0,
                              color='green', alpha=0.3, label='Regen')
        self.ax2.set_ylabel("Power (kW)")
        self.ax2.set_title("Power Demand")
        self.ax2.legend(loc='upper right')

        # Plot 3: Energy
        self.ax3.plot(profile.time, profile.energy_cumulative, 'g-', linewidth=1.5)
        self.ax3.set_ylabel("Energy (kWh)")
        self.ax3.set_title("Cumulative Energy")

        # Plot 4: Power split history
        self.demand_line, = self.ax4.plot([], [], 'k-', linewidth=1.0, label='Demand')
        self.fc_line, = self.ax4.plot([], [], 'c-', linewidth=1.5, label='Fuel Cell')
        self.batt_line, = self.ax4.plot([], [], 'm-', linewidth=1.5, label='Battery')
        self.ax4.set_ylabel("Power (kW)")
        self.ax4.set_title("Power Split")
        self.ax4.legend(loc='upper left')

        self.playheads = [ax.axvline(x=0, color='orange', linewidth=1.0)
                          for ax in (self.ax1, self.ax2, self.ax3)]

        self.fig.tight_layout()
        self.canvas.draw()

    def on_state(self, state):
        """Refresh displays from a published state snapshot."""
        self.play_button.configure(text="Pause" if state.is_playing else "Start")
        self.progress_var.set(state.progress)
        self.progress_label.configure(
            text=f"{state.time:.1f} s / {self.clock.profile.duration:.0f} s   {state.mode.value}")

        for playhead in self.playheads:
            playhead.set_xdata([state.time, state.time])

        history = self.clock.power_history
        times = [entry.time for entry in history]
        self.demand_line.set_data(times, [entry.demanded_power for entry in history])
        self.fc_line.set_data(times, [entry.fc_power for entry in history])
        self.batt_line.set_data(times, [entry.battery_power for entry in history])
        self.ax4.relim()
        self.ax4.autoscale_view()
        self.canvas.draw_idle()

        self.update_results_text(state)

    def update_results_text(self, state):
        """Update the live state table."""
        for item in self.results_tree.get_children():
            self.results_tree.delete(item)

        forces = self.clock.current_forces()
        readout = calculate_component_readout(state, forces, self.vehicle)

        left = [
            f"Mode: {state.mode.value}",
            f"Speed: {state.velocity * MPS_TO_KPH:.1f} km/h ({state.velocity:.2f} m/s)",
            f"Acceleration: {state.acceleration:.2f} m/s²",
            f"Distance: {state.distance / 1000:.3f} km",
            f"Traction Energy: {state.energy:.4f} kWh",
            f"Power Demand: {forces.power:.2f} kW",
            f"Aero / Rolling / Inertia: {forces.faero:.0f} / {forces.froll:.0f} / {forces.finertia:.0f} N",
            f"Total Force: {forces.ftotal:.0f} N",
        ]
        right = [
            f"Fuel Cell: {state.fc_power:.2f} kW ({readout.fc_zone}, η {readout.fc_efficiency:.1f}%)",
            f"Stack: {readout.fc_current:.0f} A @ {readout.fc_voltage:.0f} V",
            f"Battery: {state.battery_power:.2f} kW, SOC {state.state_of_charge:.2f}%",
            f"Cell Voltage (avg): {readout.cell_voltage:.3f} V, Bus {readout.dc_bus_current:.0f} A",
            f"Hydrogen: {state.hydrogen_mass:.4f} kg ({readout.h2_pressure:.0f} bar)",
            f"Fuel Cell Share: {readout.fc_share:.0f}%",
            f"Motor: {readout.motor_rpm:.0f} rpm, {readout.motor_torque:.0f} N·m",
            f"Wheel: {readout.wheel_rpm:.0f} rpm, Axle {readout.axle_torque:.0f} N·m",
        ]

        for i, (value1, value2) in enumerate(zip(left, right)):
            tags = ('evenrow',) if i % 2 else ()
            self.results_tree.insert('', 'end', values=(value1, value2), tags=tags)


def main():
    """Launch the GUI application."""
    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    root = tk.Tk()
    app = FcevDashboardGUI(root)
    root.mainloop()


if __name__ == "__main__":
    main()
