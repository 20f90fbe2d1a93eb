"""HTTP API for the export job engine."""
