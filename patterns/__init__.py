"""Reusable patterns for building tracker verticals.

Each module is a self-contained pattern a vertical adapts to its domain:
rules engine, workflow state machine, record store, and domain
configuration.
"""
