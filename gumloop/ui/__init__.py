"""Terminal rendering helpers for gumloop."""
