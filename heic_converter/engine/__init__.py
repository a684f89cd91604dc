"""Image conversion engine: codec, conversion unit, batch orchestration, archives."""
