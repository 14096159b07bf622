from __future__ import annotations

import numpy as np

from planetsim.climate import (
    apply_temperatures,
    build_weather,
    latitude_fields,
    nearest_directions,
    temperature_range,
    wind_angle,
)
from planetsim.tiles import LAND, SEA, TileField
from planetsim.topology import Grid, Topology, WrapMode


def test_temperature_range_follows_tempered() -> None:
    mild = temperature_range(50)
    assert (mild.sea_min, mild.sea_max, mild.land_min, mild.land_max) == (-5, 30, -12, 60)
    ice = temperature_range(0)
    assert (ice.sea_min, ice.sea_max, ice.land_min, ice.land_max) == (-12, 20, -40, 50)
    hot = temperature_range(100)
    assert (hot.sea_min, hot.sea_max, hot.land_min, hot.land_max) == (2, 40, 15, 70)


def test_latitude_runs_pole_to_pole_without_xy_wrap() -> None:
    grid = Grid(16, 16, Topology.SQUARE, WrapMode.X)
    latitude, east = latitude_fields(grid)
    rows = latitude.reshape(16, 16)

    assert rows[0, 0] == -90.0
    assert rows[-1, 5] == 90.0
    assert np.all(np.diff(rows[:, 0]) > 0)
    assert np.all(east == 0.0)


def test_xy_latitude_is_point_symmetric() -> None:
    grid = Grid(16, 16, Topology.ISO_HEX, WrapMode.XY)
    latitude, _ = latitude_fields(grid)
    lat = latitude.reshape(16, 16)

    assert np.allclose(lat, lat[::-1, ::-1])
    assert lat.min() >= -90.0
    assert lat.max() <= 90.0


def test_wind_bands() -> None:
    assert wind_angle(0.0) == (180.0, 1)
    assert wind_angle(-62.0)[1] == 0
    assert wind_angle(20.0)[1] == 3
    assert wind_angle(45.0)[1] == 2
    assert wind_angle(80.0)[1] == 2


def test_nearest_directions_bracket_angle() -> None:
    grid = Grid(16, 16, Topology.SQUARE, WrapMode.NONE)
    # Direction 1 points at 0 degrees, direction 7 at 45.
    assert nearest_directions(grid, 0.0) == (1, 1)
    assert nearest_directions(grid, 20.0) == (1, 7)
    assert nearest_directions(grid, 359.0) == (1, 6)


def test_weather_is_windless_only_in_calm_bands() -> None:
    grid = Grid(16, 32, Topology.HEX, WrapMode.X)
    weather = build_weather(grid, 50)
    calm = weather.strength == 0
    lat = np.abs(weather.latitude)
    assert np.all((lat[calm] >= 30.0) & (lat[calm] <= 35.0) | (lat[calm] >= 60.0) & (lat[calm] <= 65.0))
    assert np.all(weather.wind1[~calm] < grid.direction_count)
    assert np.all(weather.sea_temp <= 30)


def test_temperatures_drop_with_altitude() -> None:
    grid = Grid(16, 16, Topology.SQUARE, WrapMode.X)
    weather = build_weather(grid, 50)
    tiles = TileField.empty(grid.size)
    tiles.terrain[:] = LAND
    tiles.elevation[:] = 100
    apply_temperatures(grid, tiles, weather, sea_height=0)
    low = tiles.temperature.copy()

    tiles.elevation[:] = 3000
    apply_temperatures(grid, tiles, weather, sea_height=0)
    assert np.all(tiles.temperature < low)


def test_sea_temperatures_stay_in_sea_range() -> None:
    grid = Grid(16, 16, Topology.ISO_SQUARE, WrapMode.NONE)
    weather = build_weather(grid, 50)
    tiles = TileField.empty(grid.size)
    tiles.terrain[:] = SEA
    apply_temperatures(grid, tiles, weather, sea_height=0)
    band = temperature_range(50)
    assert int(tiles.temperature.min()) >= band.sea_min
    assert int(tiles.temperature.max()) <= band.sea_max
