import threading
from collections.abc import Sequence

from payment_categorizer.logger import get_logger
from payment_categorizer.manager import CategorizationEngine
from payment_categorizer.models import CategorizationResult, LearnedPayeeEntry, TransactionInput

logger = get_logger(__name__)


class CachedCategorizer:
    """Session memo in front of the engine, keyed by transaction id.

    Any correction (``learn``/``forget``) can change earlier answers, so both
    drop the whole memo. Call ``clear_cache`` after editing rules.
    """

    def __init__(self, engine: CategorizationEngine):
        self.engine = engine
        self._cache: dict[str, CategorizationResult] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._cache)

    def categorize(self, transaction: TransactionInput) -> CategorizationResult:
        with self._lock:
            cached = self._cache.get(transaction.id)
            if cached is not None:
                self.hits += 1
                return cached
            self.misses += 1

        result = self.engine.categorize(transaction)
        with self._lock:
            self._cache[transaction.id] = result
        return result

    def categorize_batch(self, transactions: Sequence[TransactionInput]) -> list[CategorizationResult]:
        results: list[CategorizationResult | None] = []
        missing: list[TransactionInput] = []
        with self._lock:
            for transaction in transactions:
                cached = self._cache.get(transaction.id)
                results.append(cached)
                if cached is None:
                    missing.append(transaction)
            self.hits += len(transactions) - len(missing)
            self.misses += len(missing)

        if missing:
            fresh = iter(self.engine.categorize_batch(missing))
            with self._lock:
                for index, transaction in enumerate(transactions):
                    if results[index] is None:
                        result = next(fresh)
                        self._cache[transaction.id] = result
                        results[index] = result

        logger.debug("[CACHE] Batch of %d: %d served from cache", len(transactions), len(transactions) - len(missing))
        return [result for result in results if result is not None]

    def learn(self, payee: str | None, iban: str | None, category_id: str) -> list[LearnedPayeeEntry]:
        written = self.engine.learn(payee, iban, category_id)
        self.clear_cache()
        return written

    def forget(self, payee: str | None, iban: str | None = None) -> bool:
        forgotten = self.engine.forget(payee, iban)
        self.clear_cache()
        return forgotten

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
