"""Configuration models for planet generation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from planetsim.errors import ParameterError
from planetsim.topology import Topology, WrapMode


MIN_DIMENSION = 16
DEFAULT_WIDTH = 64
DEFAULT_HEIGHT = 64


@dataclass(frozen=True)
class WorldParams:
    """User-facing generation inputs."""

    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    topology: int = int(Topology.SQUARE)
    wrap: int = int(WrapMode.X)
    land: int = 30
    hillmountain: int = 30
    tempered: int = 50
    wateronland: int = 50
    seed: int = 1
    scenario_name: str = ""
    extended_tileset: bool = False

    def validate(self) -> None:
        for name in ("land", "hillmountain", "tempered", "wateronland"):
            value = getattr(self, name)
            if value < 0 or value > 100:
                raise ParameterError(f"{name} must be in the 0-100 range, got {value}")
        if self.width < MIN_DIMENSION or self.height < MIN_DIMENSION:
            raise ParameterError(
                f"map dimensions must be at least {MIN_DIMENSION}x{MIN_DIMENSION}, got {self.width}x{self.height}"
            )
        try:
            Topology(self.topology)
        except ValueError as exc:
            raise ParameterError(f"unknown topology {self.topology}") from exc
        try:
            WrapMode(self.wrap)
        except ValueError as exc:
            raise ParameterError(f"unknown wrap mode {self.wrap}") from exc

    @property
    def tile_count(self) -> int:
        return self.width * self.height

    @property
    def rounds(self) -> int:
        """Simulated rounds; clouds need about one round per tile to cross the map."""

        return max(self.width, self.height)


@dataclass(frozen=True)
class HeightConfig:
    """Initial elevation synthesis in meters."""

    base_height_m: int = 2000
    continent_amplitude_m: float = 500.0
    irregular_amplitude_m: float = 700.0
    detail_amplitude_m: float = 500.0
    jitter: float = 0.5
    smoothing_passes: int = 2


@dataclass(frozen=True)
class PlateConfig:
    """Tectonic plate placement and collision behaviour."""

    max_plates: int = 255
    min_plates: int = 3
    min_separation_sq: float = 64.0
    placement_retries: int = 5
    placement_rounds: int = 64
    max_travel_tiles: float = 5.0
    rift_retention: tuple[float, float] = (0.50, 0.75)
    height_ceiling_m: int = 10000
    spill_floor_m: int = 9000
    spill_jitter_m: int = 1024
    claim_unclaimed_odds: int = 16
    claim_owned_odds: int = 8
    keep_trailing_odds: int = 8


@dataclass(frozen=True)
class ClimateConfig:
    """Surface temperature model."""

    meters_per_degree: int = 111
    smoothing_passes: int = 2


@dataclass(frozen=True)
class CloudConfig:
    """Atmosphere layers, humidity capacity and cloud movement fractions."""

    layer_heights_m: tuple[int, ...] = (50, 100, 200, 500, 1000, 2000, 5000, 10000, 20000)
    capacity_at_reference: float = 3000.0
    capacity_growth: float = 1.08
    reference_temp_c: int = 50
    lapse_rate_c_per_km: float = 6.5
    tropopause_m: int = 11000
    rise_divisor: int = 10
    breeze_divisor: int = 16
    prevailing_divisor: int = 3
    rain_divisor: int = 25
    excess_rain_divisor: int = 3
    land_evaporation_divisor: int = 2


@dataclass(frozen=True)
class SeaLevelConfig:
    """Rank-cut sea level and the best-effort coastline corrections."""

    min_sea_size: int = 13
    fix_islands: bool = True
    fill_small_seas: bool = True


@dataclass(frozen=True)
class HydrologyConfig:
    """Runoff, river visibility and lake capacities."""

    runoff_numerator: int = 3
    runoff_base: int = 7
    river_share_divisor: int = 200
    big_river_fraction: float = 0.25
    max_lakes: int = 0
    lake_queue_capacity: int = 0
    hop_limit_factor: int = 4


@dataclass(frozen=True)
class ErosionConfig:
    """Deferred erosion, rock transport, deposition and mass balance."""

    river_factor: float = 0.5
    rock_divisor: int = 64
    coastal_factor: int = 8
    coastal_fetch: int = 3
    coastal_wind_bonus: int = 2
    max_erosion_m: int = 200
    sediment_softness: int = 3
    carry_factor: int = 4
    flat_steepness: int = 1
    flood_divisor: int = 4
    permanent_fraction: float = 0.5
    undersea_divisor: int = 16
    landslide_attempts: int = 64
    landslide_max_m: int = 200


@dataclass(frozen=True)
class ImpactConfig:
    """Occasional asteroid strikes reshaping the surface."""

    chance: float = 0.05
    max_radius: int = 3
    depth_m: int = 400


@dataclass(frozen=True)
class RenderConfig:
    """Preview raster rendering configuration."""

    height_percentiles: tuple[float, float] = (1.0, 99.0)


@dataclass(frozen=True)
class GeneratorConfig:
    """Primary simulation configuration."""

    debug_tier: int = 0
    height: HeightConfig = field(default_factory=HeightConfig)
    plates: PlateConfig = field(default_factory=PlateConfig)
    climate: ClimateConfig = field(default_factory=ClimateConfig)
    clouds: CloudConfig = field(default_factory=CloudConfig)
    sealevel: SeaLevelConfig = field(default_factory=SeaLevelConfig)
    hydrology: HydrologyConfig = field(default_factory=HydrologyConfig)
    erosion: ErosionConfig = field(default_factory=ErosionConfig)
    impacts: ImpactConfig = field(default_factory=ImpactConfig)
    render: RenderConfig = field(default_factory=RenderConfig)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
