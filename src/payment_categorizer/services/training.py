import asyncio
import json
from collections import deque
from collections.abc import AsyncGenerator
from time import perf_counter
from typing import Any, Protocol

from payment_categorizer.errors import ConcurrentMutationConflict
from payment_categorizer.logger import get_logger
from payment_categorizer.manager import CategorizationEngine
from payment_categorizer.models import TrainingSample

logger = get_logger(__name__)


class TrainingSampleSource(Protocol):
    def yield_samples(
        self, limit_per_page: int = 50
    ) -> AsyncGenerator[tuple[list[TrainingSample], dict[str, Any]], None]: ...


class ModelSink(Protocol):
    def save_model(self, model: Any) -> None: ...


def format_duration(seconds: float) -> str:
    if seconds <= 0:
        return "0 ms"
    if seconds < 1:
        return f"{seconds * 1000:.1f} ms"
    if seconds < 60:
        return f"{seconds:.2f} s"
    return f"{seconds / 60:.2f} min"


def _sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


class TrainingManager:
    """Bootstraps the classifier from the host's categorized history.

    Samples arrive in pages; each page is trained off the event loop so the
    host stays responsive, and a pause request is honoured between pages.
    """

    def __init__(
        self,
        engine: CategorizationEngine,
        source: TrainingSampleSource,
        page_size: int,
        model_sink: ModelSink | None = None,
    ) -> None:
        self.engine = engine
        self.source = source
        self.page_size = page_size
        self.model_sink = model_sink
        self.pause_event = asyncio.Event()
        self.active = False
        self.seen_ids: set[str] = set()
        self.status: dict[str, Any] = {"stage": "idle", "active": False}

    def ensure_idle(self, operation: str) -> None:
        if self.active:
            raise ConcurrentMutationConflict(operation)

    def reset_state(self) -> int:
        cleared = len(self.seen_ids)
        self.seen_ids.clear()
        self.pause_event.clear()
        self._set_status({"stage": "idle"}, active=False)
        self.active = False
        return cleared

    def clear_seen_ids(self) -> int:
        cleared = len(self.seen_ids)
        self.seen_ids.clear()
        return cleared

    def request_pause(self) -> bool:
        if self.active:
            self.pause_event.set()
            return True
        return False

    def get_status(self) -> dict[str, Any]:
        status = dict(self.status)
        status["active"] = self.active
        return status

    def _set_status(self, payload: dict[str, Any], *, active: bool) -> None:
        self.status.clear()
        self.status.update({**payload, "active": active})

    def _process_training_page(
        self,
        page: list[TrainingSample],
        offset: int,
    ) -> tuple[int, int, float]:
        fresh: list[TrainingSample] = []
        fresh_ids: list[str] = []
        skipped_duplicate = 0
        for position, sample in enumerate(page):
            sample_id = str(offset + position)
            if sample_id in self.seen_ids:
                skipped_duplicate += 1
                continue
            fresh.append(sample)
            fresh_ids.append(sample_id)

        start = perf_counter()
        trained = self.engine.initialize_from_transactions(fresh) if fresh else 0
        elapsed = perf_counter() - start
        self.seen_ids.update(fresh_ids)
        return trained, skipped_duplicate, elapsed

    def _save_model(self) -> None:
        if self.model_sink is not None:
            self.model_sink.save_model(self.engine.classifier.model)

    async def _pages(self) -> AsyncGenerator[tuple[list[TrainingSample], dict[str, Any]], None]:
        offset = 0
        async for page, meta in self.source.yield_samples(limit_per_page=self.page_size):
            meta = {**meta, "offset": meta.get("offset", offset)}
            offset = meta["offset"] + len(page)
            yield page, meta

    async def train_bulk(self) -> dict[str, Any]:
        self.ensure_idle("bootstrap")
        logger.info("[TRAIN] Starting bootstrap from categorized history...")

        trained_count = 0
        skipped_duplicate = 0
        total_fetched = 0

        self.active = True
        try:
            async for page, meta in self._pages():
                total_fetched += len(page)
                page_trained, page_duplicate, _ = await asyncio.to_thread(
                    self._process_training_page, page, meta["offset"]
                )
                trained_count += page_trained
                skipped_duplicate += page_duplicate
                logger.info(
                    "[TRAIN] Page processed. Skipped (already trained): %s, Total trained so far: %s",
                    page_duplicate,
                    trained_count,
                )
            await asyncio.to_thread(self._save_model)
        finally:
            self.active = False

        logger.info(
            "[TRAIN] Complete! Trained: %s, Skipped (already trained): %s",
            trained_count,
            skipped_duplicate,
        )
        return {
            "status": "success",
            "trained": trained_count,
            "skipped": skipped_duplicate,
            "fetched": total_fetched,
        }

    async def stream(self) -> AsyncGenerator[str, None]:
        if self.active:
            yield _sse({"stage": "error", "message": "Training already in progress"})
            return

        trained_count = 0
        skipped_duplicate = 0
        total_fetched = 0
        total_estimate = 0
        last_durations: deque[float] = deque(maxlen=10)
        pause_requested = False

        self.active = True
        self.pause_event.clear()
        self._set_status({"stage": "start", "trained": 0, "skipped": 0, "fetched": 0, "total": 0, "percent": 0}, active=True)
        yield _sse({"stage": "start"})

        def progress(stage: str) -> dict[str, Any]:
            percent = round(total_fetched / total_estimate * 100, 1) if total_estimate > 0 else 0
            avg = sum(last_durations) / len(last_durations) if last_durations else 0.0
            return {
                "stage": stage,
                "trained": trained_count,
                "skipped": skipped_duplicate,
                "fetched": total_fetched,
                "total": total_estimate,
                "percent": percent,
                "avg_page_seconds": avg,
                "avg_page_display": format_duration(avg) if last_durations else None,
            }

        try:
            async for page, meta in self._pages():
                if self.pause_event.is_set():
                    pause_requested = True
                    break

                if total_estimate == 0:
                    total_estimate = meta.get("total", 0)
                total_fetched += len(page)

                page_trained, page_duplicate, elapsed = await asyncio.to_thread(
                    self._process_training_page, page, meta["offset"]
                )
                trained_count += page_trained
                skipped_duplicate += page_duplicate
                last_durations.append(elapsed)

                payload = progress("processing")
                self._set_status(payload, active=True)
                yield _sse(payload)

                if self.pause_event.is_set():
                    pause_requested = True
                    break

            await asyncio.to_thread(self._save_model)

            if pause_requested:
                logger.info("[TRAIN] Bootstrap paused. Trained: %s", trained_count)
                payload = progress("paused")
            else:
                logger.info("[TRAIN] Bootstrap complete. Trained: %s", trained_count)
                payload = progress("complete")
            self._set_status(payload, active=False)
            yield _sse(payload)
        except ConcurrentMutationConflict as exc:
            logger.warning("[TRAIN] %s", exc)
            payload = {"stage": "error", "message": str(exc), "retryable": True}
            self._set_status(payload, active=False)
            yield _sse(payload)
        finally:
            self.active = False
            self.pause_event.clear()
            self.status["active"] = False
