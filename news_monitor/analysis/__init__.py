"""Automatic analysis of newly fetched articles."""
