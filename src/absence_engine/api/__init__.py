"""HTTP API for the absence engine."""
