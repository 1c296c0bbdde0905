import math
import threading
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from payment_categorizer.domain.text import tokenize
from payment_categorizer.errors import ConcurrentMutationConflict
from payment_categorizer.logger import get_logger
from payment_categorizer.models import TrainingSample

logger = get_logger(__name__)

SampleLike = TrainingSample | tuple[str, str]


@dataclass
class ClassifierModel:
    """Counts behind the classifier. Treated as immutable once published."""

    vocabulary: dict[str, int] = field(default_factory=dict)
    token_counts: dict[str, dict[int, int]] = field(default_factory=dict)
    token_totals: dict[str, int] = field(default_factory=dict)
    doc_counts: dict[str, int] = field(default_factory=dict)
    total_docs: int = 0

    def copy(self) -> "ClassifierModel":
        return ClassifierModel(
            vocabulary=dict(self.vocabulary),
            token_counts={category: dict(counts) for category, counts in self.token_counts.items()},
            token_totals=dict(self.token_totals),
            doc_counts=dict(self.doc_counts),
            total_docs=self.total_docs,
        )

    @property
    def num_classes(self) -> int:
        return len(self.doc_counts)

    @property
    def vocabulary_size(self) -> int:
        return len(self.vocabulary)

    def add_document(self, tokens: list[str], category_id: str) -> None:
        counts = self.token_counts.setdefault(category_id, {})
        for token, count in Counter(tokens).items():
            token_id = self.vocabulary.setdefault(token, len(self.vocabulary))
            counts[token_id] = counts.get(token_id, 0) + count
        self.token_totals[category_id] = self.token_totals.get(category_id, 0) + len(tokens)
        self.doc_counts[category_id] = self.doc_counts.get(category_id, 0) + 1
        self.total_docs += 1


@dataclass(frozen=True)
class ClassifierPrediction:
    category_id: str
    confidence: float


def _as_pair(sample: SampleLike) -> tuple[str, str]:
    if isinstance(sample, TrainingSample):
        return sample.text, sample.category_id
    text, category_id = sample
    return text, category_id


class TextClassifier:
    """Incremental multinomial naive Bayes over short payment strings.

    Training never edits the published model in place: a copy is updated and
    then swapped in, so ``classify`` always reads one consistent model without
    taking a lock. Concurrent training calls are rejected rather than queued.
    """

    def __init__(self, alpha: float = 1.0, model: ClassifierModel | None = None):
        if alpha <= 0:
            raise ValueError("alpha must be positive")
        self.alpha = alpha
        self._model = model or ClassifierModel()
        self._write_lock = threading.Lock()

    @property
    def model(self) -> ClassifierModel:
        return self._model

    @property
    def is_trained(self) -> bool:
        return self._model.total_docs > 0

    @property
    def num_classes(self) -> int:
        return self._model.num_classes

    @property
    def vocabulary_size(self) -> int:
        return self._model.vocabulary_size

    @property
    def document_count(self) -> int:
        return self._model.total_docs

    def categories(self) -> list[str]:
        return sorted(self._model.doc_counts)

    def train(self, samples: Iterable[SampleLike]) -> int:
        """Add ``samples`` on top of the current counts. Returns documents added."""
        return self._update(samples, base=None, operation="train")

    def retrain(self, samples: Iterable[SampleLike]) -> int:
        """Rebuild the model from ``samples`` alone."""
        return self._update(samples, base=ClassifierModel(), operation="retrain")

    def _update(self, samples: Iterable[SampleLike], base: ClassifierModel | None, operation: str) -> int:
        if not self._write_lock.acquire(blocking=False):
            raise ConcurrentMutationConflict(operation)
        try:
            pairs = [_as_pair(sample) for sample in samples]
            if not pairs:
                logger.info("[ML] %s called with no samples; model unchanged.", operation)
                return 0

            model = base if base is not None else self._model.copy()
            added = 0
            skipped = 0
            for text, category_id in pairs:
                tokens = tokenize(text)
                if not tokens or not category_id:
                    skipped += 1
                    continue
                model.add_document(tokens, category_id)
                added += 1

            if added == 0 and base is not None:
                logger.warning("[ML] %s: no usable samples (%d skipped); model unchanged.", operation, skipped)
                return 0

            self._model = model
            logger.info(
                "[ML] %s: +%d documents (%d skipped). classes=%d vocabulary=%d documents=%d",
                operation,
                added,
                skipped,
                model.num_classes,
                model.vocabulary_size,
                model.total_docs,
            )
            return added
        finally:
            self._write_lock.release()

    def load(self, model: ClassifierModel) -> None:
        if not self._write_lock.acquire(blocking=False):
            raise ConcurrentMutationConflict("load")
        try:
            self._model = model
        finally:
            self._write_lock.release()

    def clear(self) -> None:
        self.load(ClassifierModel())

    def probabilities(self, text: str | None) -> dict[str, float]:
        """Posterior over known categories, empty when nothing is recognised."""
        model = self._model
        if model.total_docs == 0:
            return {}

        recognised = Counter(
            model.vocabulary[token] for token in tokenize(text) if token in model.vocabulary
        )
        if not recognised:
            return {}

        vocabulary_size = model.vocabulary_size
        log_scores: dict[str, float] = {}
        for category_id in sorted(model.doc_counts):
            counts = model.token_counts.get(category_id, {})
            denominator = model.token_totals.get(category_id, 0) + self.alpha * vocabulary_size
            score = math.log(model.doc_counts[category_id] / model.total_docs)
            for token_id, occurrences in recognised.items():
                score += occurrences * math.log((counts.get(token_id, 0) + self.alpha) / denominator)
            log_scores[category_id] = score

        # Softmax with the max subtracted to keep exp() in range.
        peak = max(log_scores.values())
        weights = {category_id: math.exp(score - peak) for category_id, score in log_scores.items()}
        mass = sum(weights.values())
        if mass <= 0:
            return {category_id: 0.0 for category_id in weights}
        return {category_id: weight / mass for category_id, weight in weights.items()}

    def classify(self, text: str | None) -> ClassifierPrediction | None:
        probabilities = self.probabilities(text)
        if not probabilities:
            return None
        best_category, best = max(probabilities.items(), key=lambda item: item[1])
        confidence = min(max(best, 0.0), 1.0)
        if confidence <= 0.0:
            return None
        return ClassifierPrediction(category_id=best_category, confidence=confidence)
