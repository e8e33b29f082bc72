"""Fetch state, orchestration, scheduling, reordering and validation."""
