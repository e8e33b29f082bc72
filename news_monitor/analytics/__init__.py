"""Per-source statistics reconciled from stored history."""
