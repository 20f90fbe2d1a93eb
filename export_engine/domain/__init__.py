"""Domain layer: export jobs, targets, package storage contracts, errors and events."""
