"""Writers for a planet run: elevation array, preview PNGs and metadata.

A run lands in ``<out>/<label>/<width>x<height>/`` where the label is the
scenario name, or ``seed<N>`` for unnamed runs.
"""

from __future__ import annotations

import json
from pathlib import Path
import shutil
from typing import Any

import numpy as np
from PIL import Image

from planetsim.config import WorldParams


def run_label(params: WorldParams) -> str:
    """Filesystem-safe directory name for a run."""

    label = params.scenario_name.strip() or f"seed{params.seed}"
    return "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in label)


def resolve_output_dir(
    out_root: str | Path,
    label: str,
    width: int,
    height: int,
    *,
    overwrite: bool,
) -> Path:
    """Return the planet's output directory, refusing to clobber an earlier run."""

    target = Path(out_root) / label / f"{width}x{height}"
    if target.exists() and any(target.iterdir()) and not overwrite:
        raise FileExistsError(f"planet output already exists at {target}; pass --overwrite to replace it")
    target.mkdir(parents=True, exist_ok=True)
    return target


def safe_clean_output_dir(target: Path, *, out_root: Path, project_root: Path) -> None:
    """Empty a previous run's directory before the staged files move in.

    ``target`` must sit under ``out_root``, which must sit under
    ``project_root``; ``Path.relative_to`` raises otherwise.
    """

    target_r = target.resolve()
    out_root_r = out_root.resolve()
    target_r.relative_to(out_root_r)
    out_root_r.relative_to(project_root.resolve())

    if not target_r.exists():
        target_r.mkdir(parents=True)
        return
    for child in target_r.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def move_tree_contents(src_dir: Path, dst_dir: Path) -> None:
    for child in src_dir.iterdir():
        shutil.move(str(child), str(dst_dir / child.name))


def write_height_npy(path: str | Path, height_m: np.ndarray) -> None:
    """Elevation in whole meters, shaped ``(height, width)``."""

    np.save(Path(path), np.asarray(height_m, dtype=np.int32), allow_pickle=False)


def _save_png(path: str | Path, raster: np.ndarray, dtype) -> None:
    Image.fromarray(np.ascontiguousarray(raster, dtype=dtype)).save(Path(path))


def write_png_u16(path: str | Path, raster_u16: np.ndarray) -> None:
    _save_png(path, raster_u16, np.uint16)


def write_png_u8(path: str | Path, raster_u8: np.ndarray) -> None:
    _save_png(path, raster_u8, np.uint8)


def write_png_rgb(path: str | Path, raster_rgb: np.ndarray) -> None:
    if raster_rgb.ndim != 3 or raster_rgb.shape[2] != 3:
        raise ValueError(f"expected an (h, w, 3) raster, got shape {raster_rgb.shape}")
    _save_png(path, raster_rgb, np.uint8)


def write_json(path: str | Path, payload: dict[str, Any]) -> None:
    """Sorted, indented JSON so metadata diffs cleanly between runs."""

    Path(path).write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")
