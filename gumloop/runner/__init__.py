"""Iteration supervision and the run loop."""
