"""I/O layer: database connections, source collaborators and the loader."""
