"""Monitored sources: model, storage and the in-memory registry."""
