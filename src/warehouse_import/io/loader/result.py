"""Telemetry accumulator threaded through the phases of one import."""

import time
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Sequence

from warehouse_import.utils.logging import get_logger

from .models import ImportResult, PhaseTimer

logger = get_logger(__name__)


class ResultBuilder:
    """
    Collects timers, warnings and loaded row counts for a single import.

    A new builder is created per import call and passed to each phase, so
    an engine instance carries no state between imports.
    """

    def __init__(self) -> None:
        self._timers: List[PhaseTimer] = []
        self._warnings: Dict[str, List[Mapping[str, Any]]] = {}
        self._rows = 0

    @property
    def imported_rows_count(self) -> int:
        return self._rows

    @property
    def timers(self) -> List[PhaseTimer]:
        return list(self._timers)

    def add_timer(self, name: str, duration_seconds: float) -> None:
        self._timers.append(PhaseTimer(name, duration_seconds))

    @contextmanager
    def timer(self, name: str) -> Iterator[None]:
        """Record the duration of the enclosed block, only when it completes."""
        started = time.perf_counter()
        yield
        duration = time.perf_counter() - started
        self.add_timer(name, duration)
        logger.debug("import.phase.completed", phase=name, duration_seconds=round(duration, 3))

    def add_rows(self, count: int) -> None:
        if count > 0:
            self._rows += count

    def add_warnings(self, basename: str, rows: Sequence[Mapping[str, Any]]) -> None:
        if rows:
            self._warnings.setdefault(basename, []).extend(rows)

    def build(self, imported_columns: Sequence[str]) -> ImportResult:
        return ImportResult(
            warnings=MappingProxyType(
                {k: tuple(MappingProxyType(dict(r)) for r in v) for k, v in self._warnings.items()}
            ),
            timers=tuple(self._timers),
            imported_rows_count=self._rows,
            imported_columns=tuple(imported_columns),
        )
