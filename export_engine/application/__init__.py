"""Application services orchestrating the export domain."""
