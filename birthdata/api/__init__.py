"""HTTP API for birth data."""
