"""Infrastructure layer: SQL building blocks shared by the import engine."""
