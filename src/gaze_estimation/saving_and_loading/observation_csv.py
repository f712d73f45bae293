"""
Observation records as CSV, one frame per row:

    cam0_pupil_x, cam0_pupil_y, cam0_glint0_x, cam0_glint0_y, ..., [cam1_...], true_x, true_y

The true point is the fixation target in screen pixels. A glint the detector did not
find is written as two empty fields.
"""

from __future__ import annotations
import csv
from pathlib import Path
from typing import Iterable, Sequence

import numpy as np

from gaze_estimation.my_dataclasses.gaze_dataclasses import CalibrationSample, PupilCenterGlintInputs
from gaze_estimation.point_of_interest.poi import ScreenGeometry, estimate_screen_point, screen_point_to_world

ObservationRecord = tuple[PupilCenterGlintInputs, np.ndarray]


def observation_header(n_cameras: int, n_lights: int) -> list[str]:
    header = []
    for j in range(n_cameras):
        header += [f"cam{j}_pupil_x", f"cam{j}_pupil_y"]
        for i in range(n_lights):
            header += [f"cam{j}_glint{i}_x", f"cam{j}_glint{i}_y"]
    return header + ["true_x", "true_y"]


def _parse_header(header: Sequence[str]) -> tuple[int, int]:
    n_fields = len(header) - 2
    n_cameras = len([h for h in header if h.endswith("_pupil_x")])
    if n_cameras == 0 or n_fields % n_cameras or list(header[-2:]) != ["true_x", "true_y"]:
        raise ValueError(f"Not an observation CSV header: {list(header)}")
    n_lights = (n_fields // n_cameras - 2) // 2
    if list(header) != observation_header(n_cameras, n_lights):
        raise ValueError(f"Unexpected column layout: {list(header)}")
    return n_cameras, n_lights


def _pixel_fields(px) -> list[str]:
    if px is None:
        return ["", ""]
    return [repr(float(px[0])), repr(float(px[1]))]


def _pixel_from(fields: Sequence[str]) -> np.ndarray | None:
    if fields[0].strip() == "" or fields[1].strip() == "":
        return None
    return np.array([float(fields[0]), float(fields[1])])


def write_observations(path: Path, records: Iterable[ObservationRecord]):
    """Write (observation, true screen pixel) records; the layout follows the first record."""
    records = list(records)
    if not records:
        raise ValueError("No records to write")
    first = records[0][0]
    n_cameras, n_lights = first.n_cameras, len(first.glints[0])

    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(observation_header(n_cameras, n_lights))
        for obs, true_px in records:
            if obs.n_cameras != n_cameras or any(len(g) != n_lights for g in obs.glints):
                raise ValueError("All records must have the same number of cameras and glints")
            row = []
            for pupil, glints in zip(obs.pupil_centers, obs.glints):
                row += _pixel_fields(pupil)
                for g in glints:
                    row += _pixel_fields(g)
            row += _pixel_fields(true_px)
            writer.writerow(row)


def read_observations(path: Path) -> list[ObservationRecord]:
    with open(path, "r", newline="") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        if header is None:
            raise ValueError(f"{path} is empty")
        n_cameras, n_lights = _parse_header(header)

        records = []
        for line_no, row in enumerate(reader, start=2):
            if not row:
                continue
            if len(row) != len(header):
                raise ValueError(f"{path}:{line_no}: expected {len(header)} fields, got {len(row)}")
            pupils = []
            glints = []
            k = 0
            for _ in range(n_cameras):
                pupils.append(_pixel_from(row[k:k + 2]))
                k += 2
                cam = []
                for _ in range(n_lights):
                    cam.append(_pixel_from(row[k:k + 2]))
                    k += 2
                glints.append(tuple(cam))
            true_px = _pixel_from(row[k:k + 2])
            if true_px is None:
                raise ValueError(f"{path}:{line_no}: missing true point")
            records.append((PupilCenterGlintInputs(pupil_centers=tuple(pupils), glints=tuple(glints)), true_px))
    return records


def records_to_samples(records: Iterable[ObservationRecord],
                       screen: ScreenGeometry) -> list[CalibrationSample[PupilCenterGlintInputs]]:
    """True pixels → 3D points on the display (screen frame), the frame PointOfInterestReducer reports in."""
    return [CalibrationSample(observation=obs, true_value=screen_point_to_world(px, screen)) for obs, px in records]


def samples_to_records(samples: Iterable[CalibrationSample[PupilCenterGlintInputs]],
                       screen: ScreenGeometry) -> list[ObservationRecord]:
    return [(s.observation, estimate_screen_point(s.true_value, screen)) for s in samples]
