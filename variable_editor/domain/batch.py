# variable_editor/domain/batch.py
import asyncio
import logging
import os
import time
from typing import Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Protocol

import psutil
from pydantic import BaseModel, Field

from variable_editor.config.settings import settings
from variable_editor.domain.exceptions import RenderError, RowProcessingError, UploadError
from variable_editor.domain.url_builder import build_row_url

# --- LOGGER ---
logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

_END = object()


class Rasterizer(Protocol):
    async def render(self, target_url: str, ready_selector: str, timeout_ms: int) -> bytes: ...


class ResultStore(Protocol):
    async def put(self, name: str, data: bytes) -> str: ...


class ResultReference(BaseModel):
    row_index: int
    row_id: str
    url: str


class RowFailure(BaseModel):
    row_index: int
    row_id: str
    stage: str
    error: str


class BatchReport(BaseModel):
    results: List[ResultReference] = Field(default_factory=list)
    failures: List[RowFailure] = Field(default_factory=list)

    @property
    def urls(self) -> List[str]:
        return [r.url for r in self.results]


def _memory_mb() -> float:
    return psutil.Process(os.getpid()).memory_info().rss / 1024 / 1024


class BatchRenderer:
    """
    Renders one image per input row through a bounded pool of workers.

    Each row is independent: its URL, render and upload never touch another
    row's state, and a failing row is logged and left out of the results
    instead of aborting the batch. With ``concurrency=1`` rows are processed
    strictly one after another.
    """

    def __init__(
        self,
        rasterizer: Rasterizer,
        store: ResultStore,
        concurrency: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        ready_selector: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        id_column: Optional[str] = None,
    ):
        self.rasterizer = rasterizer
        self.store = store
        self.concurrency = max(1, concurrency if concurrency is not None else settings.BATCH_CONCURRENCY)
        self.max_retries = max(0, max_retries if max_retries is not None else settings.BATCH_MAX_RETRIES)
        self.retry_backoff = retry_backoff if retry_backoff is not None else settings.BATCH_RETRY_BACKOFF_SECONDS
        self.ready_selector = ready_selector or settings.READY_SELECTOR
        self.timeout_ms = timeout_ms or settings.RENDER_TIMEOUT_MS
        self.id_column = id_column or settings.BATCH_ID_COLUMN

    def _row_id(self, index: int, row: Mapping[str, Optional[str]]) -> str:
        value = row.get(self.id_column)
        if value is None or not str(value).strip():
            return f"row{index}"
        return str(value).strip()

    def _safe_row_id(self, index: int, row) -> str:
        try:
            return self._row_id(index, row)
        except (AttributeError, TypeError):
            return f"row{index}"

    async def _attempt(self, stage: str, index: int, row_id: str, call: Callable[[], Awaitable]):
        attempt = 0
        while True:
            try:
                return await call()
            except (RenderError, UploadError) as e:
                if attempt < self.max_retries:
                    attempt += 1
                    logger.warning(f"Row {index} ({row_id}): {stage} failed ({e}), retry {attempt}/{self.max_retries}")
                    await asyncio.sleep(self.retry_backoff * attempt)
                    continue
                raise RowProcessingError(index, row_id, stage, e) from e
            except Exception as e:
                raise RowProcessingError(index, row_id, stage, e) from e

    async def process_row(self, index: int, row: Mapping[str, Optional[str]], url_template: str) -> ResultReference:
        row_id = self._row_id(index, row)
        try:
            target_url = build_row_url(url_template, row)
        except ValueError as e:
            raise RowProcessingError(index, row_id, "url", e) from e
        logger.info(f"Row {index} ({row_id}): rendering {target_url}")

        start_time = time.perf_counter()
        image = await self._attempt(
            "render", index, row_id,
            lambda: self.rasterizer.render(target_url, self.ready_selector, self.timeout_ms),
        )
        name = f"{row_id}_image_{int(time.time() * 1000)}_{index}"
        url = await self._attempt("upload", index, row_id, lambda: self.store.put(name, image))

        logger.info(f"Row {index} ({row_id}): done in {time.perf_counter() - start_time:.2f}s -> {url}")
        return ResultReference(row_index=index, row_id=row_id, url=url)

    async def run_batch(self, rows: Iterable[Mapping[str, Optional[str]]], url_template: str) -> BatchReport:
        logger.info(f"=== START BATCH (workers={self.concurrency}, retries={self.max_retries}) ===")
        try:
            logger.info(f"Memory usage at start: {_memory_mb():.1f}MB")
        except psutil.Error as mem_error:
            logger.warning(f"Could not get memory info: {mem_error}")
        overall_start_time = time.perf_counter()

        queue: asyncio.Queue = asyncio.Queue(maxsize=self.concurrency * 2)
        results: Dict[int, ResultReference] = {}
        failures: List[RowFailure] = []

        async def work():
            while True:
                item = await queue.get()
                if item is _END:
                    return
                index, row = item
                try:
                    results[index] = await self.process_row(index, row, url_template)
                except RowProcessingError as e:
                    logger.error(f"{e}")
                    failures.append(RowFailure(
                        row_index=e.row_index,
                        row_id=e.row_id,
                        stage=e.stage,
                        error=f"{type(e.cause).__name__}: {e.cause}",
                    ))
                except Exception as e:
                    logger.error(f"Row {index}: unexpected {type(e).__name__}: {e}")
                    failures.append(RowFailure(
                        row_index=index,
                        row_id=self._safe_row_id(index, row),
                        stage="row",
                        error=f"{type(e).__name__}: {e}",
                    ))

        workers = [asyncio.create_task(work()) for _ in range(self.concurrency)]
        try:
            for item in enumerate(rows):
                await queue.put(item)
            for _ in workers:
                await queue.put(_END)
            await asyncio.gather(*workers)
        finally:
            # a failing row source or an outer cancellation must not leave workers behind
            for worker in workers:
                worker.cancel()

        report = BatchReport(
            results=[results[i] for i in sorted(results)],
            failures=sorted(failures, key=lambda f: f.row_index),
        )
        overall_duration = time.perf_counter() - overall_start_time
        logger.info(
            f"=== COMPLETED BATCH: {len(report.results)} rendered, {len(report.failures)} failed "
            f"in {overall_duration:.2f}s ==="
        )
        try:
            logger.info(f"Memory usage at end: {_memory_mb():.1f}MB")
        except psutil.Error as mem_error:
            logger.warning(f"Could not get memory info: {mem_error}")
        return report

    async def render_batch(self, rows: Iterable[Mapping[str, Optional[str]]], url_template: str) -> List[ResultReference]:
        report = await self.run_batch(rows, url_template)
        return report.results
