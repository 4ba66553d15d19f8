# reporeader/scheduler.py

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Generic, List, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BatchStats:
    total: int = 0
    processed: int = 0
    skipped: int = 0


class BatchScheduler(Generic[T]):
    """
    Runs `process_file` over a list of files in fixed-size batches.

    Batches run one after another; the files of a batch run concurrently, so
    at most `batch_size` files are in flight. `process_file` returns True when
    the file was processed and False when it was skipped. An exception from
    one file is logged and counted as a skip; it never stops the batch or the
    run.
    """

    def __init__(self, process_file: Callable[[T], bool], batch_size: int = 5):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.process_file = process_file
        self.batch_size = batch_size

    def batches(self, files: Sequence[T]) -> List[Sequence[T]]:
        return [files[i:i + self.batch_size] for i in range(0, len(files), self.batch_size)]

    def _safe_process(self, file: T) -> bool:
        try:
            return bool(self.process_file(file))
        except Exception:
            logger.warning("[INGEST] Error processing %s", getattr(file, "path", file), exc_info=True)
            return False

    def run(self, files: Sequence[T]) -> BatchStats:
        stats = BatchStats(total=len(files))

        for number, batch in enumerate(self.batches(files), start=1):
            logger.info("[INGEST] Processing batch %d (%d files)...", number, len(batch))

            with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="ingest-file") as pool:
                results = list(pool.map(self._safe_process, batch))

            stats.processed += sum(1 for ok in results if ok)
            stats.skipped += sum(1 for ok in results if not ok)

        return stats
