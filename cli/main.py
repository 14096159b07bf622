"""CLI entry point for planet generation."""

from __future__ import annotations

import argparse
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
import platform
import shutil
import tempfile
import time

import numpy as np
import structlog

from planetsim.config import DEFAULT_HEIGHT, DEFAULT_WIDTH, GeneratorConfig, WorldParams
from planetsim.derive import (
    float_preview_u8,
    height_preview_u16,
    plate_ids_u8,
    terrain_preview_rgb,
    waterflow_preview_u8,
)
from planetsim.errors import ParameterError, SimulationError
from planetsim.generator import SimulationPhase, generate_planet
from planetsim.io import (
    move_tree_contents,
    resolve_output_dir,
    run_label,
    safe_clean_output_dir,
    write_height_npy,
    write_json,
    write_png_rgb,
    write_png_u16,
    write_png_u8,
)
from planetsim.logs import configure_logging
from planetsim.rng import RngStream


logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Deterministic procedural planet generator")
    parser.add_argument("--seed", type=int, default=1, help="Integer generator seed")
    parser.add_argument("--out", default="out", help="Output root directory")
    parser.add_argument("--w", type=int, default=DEFAULT_WIDTH, help="Map width in tiles")
    parser.add_argument("--h", type=int, default=DEFAULT_HEIGHT, help="Map height in tiles")
    parser.add_argument(
        "--topology",
        type=int,
        default=0,
        help="Tile layout: 0=square, 1=isometric square, 2=hex, 3=isometric hex",
    )
    parser.add_argument("--wrap", type=int, default=1, help="Wraparound: 0=none, 1=x, 2=x and y")
    parser.add_argument("--land", type=int, default=30, help="Percentage of tiles that end up as land")
    parser.add_argument("--hillmountain", type=int, default=30, help="Hill and mountain share, passed through")
    parser.add_argument("--tempered", type=int, default=50, help="0=ice planet, 100=hot planet")
    parser.add_argument("--wateronland", type=int, default=50, help="River density")
    parser.add_argument("--name", default="", help="Scenario name; also names the output directory")
    parser.add_argument("--extended", action="store_true", help="Request the extended tileset, passed through")
    parser.add_argument("--overwrite", action="store_true", help="Overwrite files in existing output directory")
    parser.add_argument(
        "--json",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Write metadata JSON files",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    params = WorldParams(
        width=args.w,
        height=args.h,
        topology=args.topology,
        wrap=args.wrap,
        land=args.land,
        hillmountain=args.hillmountain,
        tempered=args.tempered,
        wateronland=args.wateronland,
        seed=args.seed,
        scenario_name=args.name,
        extended_tileset=args.extended,
    )
    try:
        params.validate()
    except ParameterError as exc:
        parser.error(str(exc))

    config = GeneratorConfig()
    rng = RngStream(args.seed)

    generation_start = time.perf_counter()
    try:
        result = generate_planet(params, config=config, rng=rng, progress=_log_progress)
    except SimulationError as exc:
        logger.error("Simulation failed", error=str(exc))
        return 1
    generation_seconds = time.perf_counter() - generation_start

    height_16 = height_preview_u16(result.elevation, robust_percentiles=config.render.height_percentiles)
    png_u8_outputs: dict[str, np.ndarray] = {
        "debug_waterflow.png": waterflow_preview_u8(result.waterflow, result.terrain),
        "debug_temperature.png": float_preview_u8(result.temperature, robust_percentiles=(0.0, 100.0)),
        "debug_plates.png": plate_ids_u8(result.plate_ids, result.plate_count),
    }
    terrain_rgb = terrain_preview_rgb(result.elevation, result.terrain, result.river, result.sea_height)

    out_dir = resolve_output_dir(
        args.out,
        run_label(params),
        args.w,
        args.h,
        overwrite=args.overwrite,
    )
    stage_dir = Path(tempfile.mkdtemp(prefix=".staging-", dir=str(out_dir.parent)))
    try:
        write_height_npy(stage_dir / "height.npy", result.elevation)
        write_png_u16(stage_dir / "height_16.png", height_16)
        for name, raster in png_u8_outputs.items():
            write_png_u8(stage_dir / name, raster)
        write_png_rgb(stage_dir / "terrain.png", terrain_rgb)
        if args.json:
            timestamp = datetime.now(timezone.utc).isoformat()
            deterministic_meta = {
                "params": asdict(params),
                "rounds": result.rounds,
                "config": config.to_dict(),
                "metrics": result.metrics.to_dict(),
                "plates": {"count": result.plate_count},
                "hydrology": asdict(result.hydrology),
                "lakes": [asdict(lake) for lake in result.lakes],
            }
            meta = {
                **deterministic_meta,
                "generated_at_utc": timestamp,
                "generation_seconds": generation_seconds,
                "python_version": platform.python_version(),
                "numpy_version": np.__version__,
            }
            write_json(stage_dir / "deterministic_meta.json", deterministic_meta)
            write_json(stage_dir / "meta.json", meta)

        safe_clean_output_dir(
            out_dir,
            out_root=Path(args.out),
            project_root=Path.cwd(),
        )
        move_tree_contents(stage_dir, out_dir)
    finally:
        shutil.rmtree(stage_dir, ignore_errors=True)

    metrics = result.metrics
    print(f"Generated planet: {out_dir}")
    print(
        f"Sea height {result.sea_height} m; land fraction {metrics.land.fraction:.3f}; "
        f"landmasses {metrics.land.num_components}, largest {metrics.land.largest_ratio:.3f}"
    )
    print(
        "Hydrology: "
        f"lakes={metrics.lake_count} ({metrics.lake_tiles} tiles), "
        f"rivers small={metrics.small_river_tiles} big={metrics.big_river_tiles}, "
        f"max flow={metrics.max_waterflow}"
    )
    print(f"Mass balance: borrowed={result.mass_borrowed} repaid={result.mass_repaid}")
    print(f"Generation time: {generation_seconds:.3f} s ({args.w}x{args.h}, {result.rounds} rounds)")
    file_count = sum(1 for child in out_dir.iterdir() if child.is_file())
    print(f"Output files: {file_count}")
    return 0


def _log_progress(phase: SimulationPhase, step: int, total: int) -> None:
    if phase is SimulationPhase.TECTONIC_ROUND:
        logger.debug("Round started", round=step, rounds=total)
    else:
        logger.info("Phase", phase=phase.value)


if __name__ == "__main__":
    raise SystemExit(main())
