"""Core SQL utilities."""
