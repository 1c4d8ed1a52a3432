"""Application layer: scan orchestration and detection services."""
