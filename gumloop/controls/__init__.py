"""Operator controls for a running loop."""
