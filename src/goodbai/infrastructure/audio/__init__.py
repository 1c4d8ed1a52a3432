"""Audio decode and classifier runtime adapters."""
