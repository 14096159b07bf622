"""Preview rasters derived from a generated planet."""

from __future__ import annotations

from matplotlib.colors import ListedColormap
import numpy as np

from planetsim.tiles import LAKE, RIVER_BIG, RIVER_SMALL, SEA


def height_preview_u16(height_m: np.ndarray, *, robust_percentiles: tuple[float, float] = (1.0, 99.0)) -> np.ndarray:
    """Map height values to 16-bit preview grayscale."""

    lo, hi = np.percentile(height_m, robust_percentiles)
    scale = max(hi - lo, 1e-6)
    norm = np.clip((height_m - lo) / scale, 0.0, 1.0)
    return np.round(norm * 65535.0).astype(np.uint16)


def float_preview_u8(values: np.ndarray, *, robust_percentiles: tuple[float, float] = (1.0, 99.0)) -> np.ndarray:
    """Map values to 8-bit preview grayscale."""

    lo, hi = np.percentile(values.astype(np.float64), robust_percentiles)
    scale = max(hi - lo, 1e-6)
    norm = np.clip((values - lo) / scale, 0.0, 1.0)
    return np.round(norm * 255.0).astype(np.uint8)


def plate_ids_u8(plate_ids: np.ndarray, plate_count: int) -> np.ndarray:
    """Encode integer plate IDs into 8-bit grayscale for debugging."""

    if plate_count <= 1:
        return np.zeros_like(plate_ids, dtype=np.uint8)
    scaled = plate_ids.astype(np.float32) / float(plate_count)
    return np.round(np.clip(scaled, 0.0, 1.0) * 255.0).astype(np.uint8)


def waterflow_preview_u8(waterflow: np.ndarray, terrain: np.ndarray) -> np.ndarray:
    """Log-scaled flow on land and lakes; sea stays black."""

    out = np.zeros(waterflow.shape, dtype=np.uint8)
    wet = terrain != SEA
    if not np.any(wet):
        return out
    logflow = np.log1p(np.maximum(waterflow, 0).astype(np.float64))
    peak = max(float(logflow[wet].max()), 1e-6)
    out[wet] = np.round(logflow[wet] / peak * 255.0).astype(np.uint8)
    return out


def terrain_preview_rgb(
    elevation: np.ndarray,
    terrain: np.ndarray,
    river: np.ndarray,
    sea_height: int,
) -> np.ndarray:
    """Palette preview: deep and shallow sea, lake, lowland to highland, rivers."""

    palette = [
        "#13315c",  # 0 deep sea
        "#1e5a96",  # 1 shallow sea
        "#3f8fd2",  # 2 lake
        "#6a9a4a",  # 3 lowland
        "#a39a5c",  # 4 hills
        "#8c7b6b",  # 5 mountains
        "#f2f2f2",  # 6 peaks
        "#2f6fb0",  # 7 small river
        "#1f4f8f",  # 8 big river
    ]
    cmap = ListedColormap(palette, name="planet_terrain")
    above = elevation.astype(np.int64) - sea_height
    idx = np.select(
        [
            (terrain == SEA) & (above < -500),
            terrain == SEA,
            terrain == LAKE,
            river == RIVER_BIG,
            river == RIVER_SMALL,
            above < 800,
            above < 2000,
            above < 4000,
        ],
        [0, 1, 2, 8, 7, 3, 4, 5],
        default=6,
    )
    rgba = cmap(idx.astype(np.int32))
    return np.round(rgba[..., :3] * 255.0).astype(np.uint8)
