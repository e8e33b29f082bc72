"""Service layer wiring the monitor components together."""
