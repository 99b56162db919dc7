"""SQL statement builders."""

from .merge import MergeBuilder

__all__ = ["MergeBuilder"]
