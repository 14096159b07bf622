"""Command-line runner for planetsim."""
