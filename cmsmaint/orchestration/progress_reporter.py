"""Progress reporting for reindex runs"""
import time
from typing import Callable, Dict, Optional


class ReindexProgressReporter:
    """Prints reindex progress per committed batch

    Used as the progress_callback of SearchService.reindex_all. Prints
    when the type changes and at least every `interval` seconds.
    """

    def __init__(self, estimate: Optional[Dict[str, Dict[str, int]]] = None,
                 output: Callable[[str], None] = print, interval: float = 2.0,
                 time_source: Callable[[], float] = None):
        self.total = sum(item['count'] for item in (estimate or {}).values())
        self.output = output
        self.interval = interval
        self.time_source = time_source or time.time
        self.current_type = None
        self.last_print = 0.0
        self.indexed = 0

    def __call__(self, type_name: str, indexed_so_far: int):
        self.indexed = indexed_so_far
        now = self.time_source()
        finished = bool(self.total) and indexed_so_far >= self.total
        if (type_name != self.current_type or finished
                or now - self.last_print >= self.interval):
            self.current_type = type_name
            self.last_print = now
            self.output(self._format(type_name, indexed_so_far))

    def _format(self, type_name: str, indexed: int) -> str:
        if self.total:
            percent = min(100.0, indexed / self.total * 100)
            return f"  Indexing {type_name}: {indexed}/{self.total} ({percent:.0f}%)"
        return f"  Indexing {type_name}: {indexed}"
