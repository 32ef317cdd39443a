"""Statistics collectors sampled after every tick.

``CellTracker`` follows migrating cells through configured hour windows and
writes one row per fully tracked cell, split into cells that started close to
an organizer and cells that started away from one. ``PatchStatistics``
writes the positions of LTi cells, marking those that sit in a forming patch.
``PopulationRecorder`` keeps a per-tick population summary.
"""

from __future__ import annotations

import logging
import math
import pathlib
from typing import Dict, List, Optional, Sequence, Tuple

from PatchSimulation.io import save_records_xml, save_table_csv
from PatchSimulation.stromal import CHEMOKINE_STATES, StromalState

logger = logging.getLogger(__name__)

MICRONS_PER_UNIT = 4.0
CLOSE_TO_ORGANIZER_MICRONS = 50.0
# Raw displacement above this must have wrapped around the circumference.
DISPLACEMENT_WRAP_THRESHOLD = 200.0

TRACK_FIELDS = [
    "cell_type",
    "time_span",
    "cell_state",
    "cell_speed",
    "start_x",
    "start_y",
    "end_x",
    "end_y",
    "length",
    "velocity",
    "displacement",
    "displacement_rate",
    "meandering_index",
    "nearest_lto_microns",
]
PATCH_FIELDS = ["LTi_X", "LTi_Y"]


def results_dir(config) -> pathlib.Path:
    return pathlib.Path(config.out_dir) / str(config.run_replicate)


def _hour_label(hours: float) -> str:
    return str(int(hours)) if float(hours).is_integer() else str(hours)


# -----------------------------------------------------------------------------
# Track geometry
# -----------------------------------------------------------------------------

def distance_between(end: Tuple[float, float], start: Tuple[float, float], adjuster: float = 0.0) -> float:
    return math.sqrt((end[0] - start[0]) ** 2 + ((end[1] - start[1]) + adjuster) ** 2)


def corrected_displacement(start: Tuple[float, float], end: Tuple[float, float], circumference: float) -> float:
    """Straight-line displacement, undoing a wrap across the circumference."""
    displacement = distance_between(end, start)
    if displacement > DISPLACEMENT_WRAP_THRESHOLD:
        adjuster = circumference if end[1] < start[1] else -circumference
        displacement = distance_between(end, start, adjuster)
    return displacement


def nearest_organizer_distance(position: Tuple[float, float], stromal_cells: Sequence) -> float:
    """Distance in units to the nearest activated organizer, ``inf`` if none."""
    nearest = math.inf
    for cell in stromal_cells:
        if cell.cell_type != "LTo" or cell.state < StromalState.IMMATURE_ACTIVE:
            continue
        nearest = min(nearest, math.hypot(position[0] - cell.position[0], position[1] - cell.position[1]))
    return nearest


def track_row(cell, context, window_minutes: float) -> Dict[str, object]:
    track = cell.track
    end = track.end if track.end is not None else cell.position
    displacement = corrected_displacement(track.start, end, context.environment.height)
    length = track.length
    return {
        "cell_type": cell.cell_type,
        "time_span": track.time_tracked,
        "cell_state": cell.state,
        "cell_speed": cell.speed * MICRONS_PER_UNIT,
        "start_x": track.start[0] * MICRONS_PER_UNIT,
        "start_y": track.start[1] * MICRONS_PER_UNIT,
        "end_x": end[0] * MICRONS_PER_UNIT,
        "end_y": end[1] * MICRONS_PER_UNIT,
        "length": length * MICRONS_PER_UNIT,
        "velocity": length * MICRONS_PER_UNIT / window_minutes,
        "displacement": displacement * MICRONS_PER_UNIT,
        "displacement_rate": displacement * MICRONS_PER_UNIT / window_minutes,
        "meandering_index": displacement / length if length > 0 else 0.0,
        "nearest_lto_microns": nearest_organizer_distance(cell.position, context.stromal_cells) * MICRONS_PER_UNIT,
    }


# -----------------------------------------------------------------------------
# Collectors
# -----------------------------------------------------------------------------

class CellTracker:
    """Tracks migrating cells over hour windows given as ``(start, end)`` pairs."""

    def __init__(self, context, ranges: Sequence[Tuple[int, int]]) -> None:
        self.windows: List[Tuple[int, int, int]] = [
            (context.hours_to_steps(start), context.hours_to_steps(end), start) for start, end in sorted(ranges)
        ]
        self.close: list = []
        self.away: list = []
        self.active_window: Optional[Tuple[int, int, int]] = None
        self.written: List[pathlib.Path] = []

    def pending(self) -> Optional[Tuple[int, int, int]]:
        return self.windows[0] if self.windows else None

    def enrol(self, cell) -> None:
        """Follow a new cell if the next window has not started yet."""
        window = self.pending()
        if window is not None and self.active_window is None:
            self.away.append(cell)

    def begin(self, context) -> None:
        live = [cell for cell in self.close + self.away if not cell.stopped]
        self.close, self.away = [], []
        for cell in live:
            cell.track.reset(cell.position)
            cell.tracking = True
            distance = nearest_organizer_distance(cell.position, context.stromal_cells) * MICRONS_PER_UNIT
            if distance <= CLOSE_TO_ORGANIZER_MICRONS:
                self.close.append(cell)
            else:
                self.away.append(cell)
        self.active_window = self.windows[0]
        logger.info(
            "Tracking from hour %d: %d close, %d away", self.active_window[2], len(self.close), len(self.away)
        )

    def end(self, context) -> None:
        start_step, end_step, start_hour = self.active_window
        window_steps = end_step - start_step
        window_minutes = window_steps * context.seconds_per_step / 60.0
        for cell in self.close + self.away:
            cell.tracking = False
            if cell.track.end is None:
                cell.track.end = cell.position
        out = results_dir(context.config)
        for label, cells in (("Close", self.close), ("Away", self.away)):
            rows = [track_row(cell, context, window_minutes) for cell in cells if cell.track.time_tracked == window_steps]
            stem = f"trackedCells_{label}_{start_hour}"
            self.written.append(save_table_csv(rows, TRACK_FIELDS, out / f"{stem}.csv"))
            self.written.append(save_records_xml(rows, TRACK_FIELDS, out / f"{stem}.xml"))
            logger.info("Wrote %d %s tracks to %s", len(rows), label.lower(), out / f"{stem}.csv")
        self.windows.pop(0)
        self.active_window = None

    def step(self, context) -> None:
        if self.active_window is not None and context.step_count == self.active_window[1]:
            self.end(context)
        window = self.pending()
        # A window may open on the step the previous one closed.
        if window is not None and self.active_window is None and context.step_count == window[0]:
            self.begin(context)

    def start(self, context) -> None:
        self.step(context)

    def finish(self, context) -> None:
        if self.active_window is not None:
            logger.warning("Tracking window from hour %d did not close before run end", self.active_window[2])


class PatchStatistics:
    """Writes LTi positions at configured hours and at run end."""

    def __init__(self, context, hours: Optional[Sequence[int]]) -> None:
        self.pending_hours: List[int] = sorted(hours or [])
        self.written_hours: List[float] = []
        self.history: List[Dict[str, object]] = []

    def patch_rows(self, context) -> Tuple[List[Dict[str, float]], List[Dict[str, float]]]:
        """Rows for LTi cells in a patch, and rows for every LTi cell."""
        env = context.environment
        patch: List[Dict[str, float]] = []
        everyone: List[Dict[str, float]] = []
        responders = [cell for cell in context.migrating_cells if cell.responder and not cell.stopped]
        for cell in responders:
            x, y = cell.position
            row = {"LTi_X": x, "LTi_Y": y}
            everyone.append(row)
            near = env.neighbors_within_radius(x, y, cell.cell_diameter * 2)
            if not any(other is not cell and getattr(other, "responder", False) and not other.stopped for other in near):
                continue
            around = env.neighbors_within_radius(x, y, cell.cell_diameter * 4)
            if any(
                getattr(other, "cell_type", None) == "LTo" and other.state == StromalState.ACTIVE_EXPRESSING
                for other in around
            ):
                patch.append(row)
        return patch, everyone

    def write(self, context, hours: float) -> None:
        patch, everyone = self.patch_rows(context)
        out = results_dir(context.config)
        label = _hour_label(hours)
        save_table_csv(patch, PATCH_FIELDS, out / f"patchStats_{label}.csv")
        save_records_xml(patch, PATCH_FIELDS, out / f"patchStats_{label}.xml")
        save_table_csv(everyone, PATCH_FIELDS, out / f"patchStatsAll_{label}.csv")
        save_records_xml(everyone, PATCH_FIELDS, out / f"patchStatsAll_{label}.xml")
        self.written_hours.append(hours)
        self.history.append({"hour": hours, "patch_cells": len(patch), "lti_cells": len(everyone)})
        logger.info("Hour %s: %d of %d LTi cells in patches", label, len(patch), len(everyone))

    def start(self, context) -> None:
        self.step(context)

    def step(self, context) -> None:
        if self.pending_hours and context.step_count == context.hours_to_steps(self.pending_hours[0]):
            self.write(context, self.pending_hours.pop(0))

    def finish(self, context) -> None:
        hours = context.config.simulation_hours
        if hours not in self.written_hours:
            self.write(context, hours)


POPULATION_FIELDS = [
    "step",
    "hours",
    "width",
    "height",
    "LTo_inactive",
    "LTo_immature",
    "LTo_expressing",
    "Decoy",
    "LTin",
    "LTi",
]


def summary_row(context) -> Dict[str, object]:
    """Snapshot of live cell counts and tract size."""
    stromal = [cell for cell in context.stromal_cells if not cell.stopped]
    organizers = [cell for cell in stromal if cell.cell_type == "LTo"]
    return {
        "step": context.step_count,
        "hours": context.elapsed_hours(),
        "width": context.environment.width,
        "height": context.environment.height,
        "LTo_inactive": sum(1 for c in organizers if c.state == StromalState.INACTIVE),
        "LTo_immature": sum(
            1 for c in organizers if c.state in (StromalState.IMMATURE_ACTIVE, StromalState.ADHESION_EXPRESSING)
        ),
        "LTo_expressing": sum(
            1 for c in organizers if c.state in CHEMOKINE_STATES
        ),
        "Decoy": sum(1 for c in stromal if c.cell_type == "Decoy" and c.state == StromalState.DECOY),
        "LTin": len(context.live_migrating_cells("LTin")),
        "LTi": len(context.live_migrating_cells("LTi")),
    }


class PopulationRecorder:
    """Keeps ``summary_row`` history every ``interval_steps`` ticks."""

    def __init__(self, context, interval_steps: int = 1) -> None:
        self.interval_steps = max(int(interval_steps), 1)
        self.history: List[Dict[str, object]] = []

    def start(self, context) -> None:
        self.history.append(summary_row(context))

    def step(self, context) -> None:
        if context.step_count % self.interval_steps == 0:
            self.history.append(summary_row(context))

    def finish(self, context) -> pathlib.Path:
        if not self.history or self.history[-1]["step"] != context.step_count:
            self.history.append(summary_row(context))
        return save_table_csv(self.history, POPULATION_FIELDS, results_dir(context.config) / "population.csv")
