import threading
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

from payment_categorizer.classifiers.default_rules import default_rules
from payment_categorizer.classifiers.default_samples import default_samples
from payment_categorizer.classifiers.memory import LearnedPayeeStore
from payment_categorizer.classifiers.naive_bayes import ClassifierModel, SampleLike, TextClassifier
from payment_categorizer.classifiers.rules import RuleMatcher
from payment_categorizer.core import settings
from payment_categorizer.logger import get_logger
from payment_categorizer.models import (
    CategorizationResult,
    CategorizationRule,
    EngineStats,
    ExactMatchSource,
    LearnedPayeeEntry,
    MachineLearningSource,
    MatchResult,
    NoMatchResult,
    RuleSource,
    SuggestionResult,
    TrainingSample,
    TransactionInput,
)

logger = get_logger(__name__)


class LearnedPayeeSource(Protocol):
    def load_entries(self) -> list[LearnedPayeeEntry]: ...


class CategorizationEngine:
    """Waterfall categorizer: rules, then learned payees, then the text classifier.

    Each call is independent; the only shared state is the rule cache, the
    learned payee store and the classifier model, all of which are replaced or
    updated atomically so batch evaluation can run on several threads.
    """

    def __init__(
        self,
        rules: Iterable[CategorizationRule] = (),
        *,
        accept_threshold: float = settings.DEFAULT_ML_ACCEPT_THRESHOLD,
        suggestion_threshold: float = 0.0,
        alpha: float = 1.0,
        fuzzy_threshold: float = 0.0,
        batch_workers: int = 1,
    ):
        self.accept_threshold = min(max(accept_threshold, 0.0), 1.0)
        self.suggestion_threshold = min(max(suggestion_threshold, 0.0), 1.0)
        self.batch_workers = max(batch_workers, 1)

        self._rule_matcher = RuleMatcher(rules)
        self.payees = LearnedPayeeStore(fuzzy_threshold=fuzzy_threshold)
        self.classifier = TextClassifier(alpha=alpha)

        self._pending_lock = threading.Lock()
        self._pending_samples: list[TrainingSample] = []

    @classmethod
    def with_defaults(cls, *, seed_classifier: bool = False, **kwargs) -> "CategorizationEngine":
        engine = cls(default_rules(), **kwargs)
        if seed_classifier:
            engine.train_default_samples()
        return engine

    @classmethod
    def from_settings(cls, rules: Iterable[CategorizationRule] | None = None) -> "CategorizationEngine":
        if rules is None:
            rules = default_rules() if settings.use_default_rules() else []
        return cls(
            rules,
            accept_threshold=settings.ml_accept_threshold(),
            suggestion_threshold=settings.ml_suggestion_threshold(),
            alpha=settings.ml_smoothing_alpha(),
            fuzzy_threshold=settings.payee_fuzzy_threshold(),
            batch_workers=settings.batch_workers(),
        )

    # -- categorization -------------------------------------------------

    def categorize(self, transaction: TransactionInput) -> CategorizationResult:
        return self._categorize(transaction, self._rule_matcher)

    def categorize_batch(self, transactions: Sequence[TransactionInput]) -> list[CategorizationResult]:
        # One rule snapshot for the whole batch, even if rules are swapped meanwhile.
        matcher = self._rule_matcher
        if self.batch_workers <= 1 or len(transactions) <= 1:
            results = [self._categorize(transaction, matcher) for transaction in transactions]
        else:
            with ThreadPoolExecutor(max_workers=self.batch_workers) as pool:
                results = list(pool.map(lambda tx: self._categorize(tx, matcher), transactions))

        logger.debug(
            "[ENGINE] Batch of %d: %d match, %d suggestion, %d none",
            len(results),
            sum(isinstance(result, MatchResult) for result in results),
            sum(isinstance(result, SuggestionResult) for result in results),
            sum(isinstance(result, NoMatchResult) for result in results),
        )
        return results

    def _categorize(self, transaction: TransactionInput, matcher: RuleMatcher) -> CategorizationResult:
        rule_match = matcher.match(transaction)
        if rule_match:
            return MatchResult(
                category_id=rule_match.rule.category_id,
                source=RuleSource(rule_id=rule_match.rule.id, rule_name=rule_match.rule.name),
            )

        learned = self.payees.lookup(transaction.counterparty, transaction.counterparty_iban)
        if learned:
            logger.debug(
                "[ENGINE] %s: learned payee hit via %s -> %s",
                transaction.id,
                learned.tier.value,
                learned.category_id,
            )
            return MatchResult(
                category_id=learned.category_id,
                source=ExactMatchSource(
                    payee=transaction.counterparty or transaction.counterparty_iban or "",
                    tier=learned.tier,
                ),
            )

        prediction = self.classifier.classify(transaction.combined_text())
        if prediction is None:
            logger.debug("[ENGINE] %s: no signal", transaction.id)
            return NoMatchResult()

        if prediction.confidence >= self.accept_threshold:
            return MatchResult(
                category_id=prediction.category_id,
                source=MachineLearningSource(confidence=prediction.confidence),
            )
        if prediction.confidence > self.suggestion_threshold and prediction.confidence < 1.0:
            logger.debug(
                "[ENGINE] %s: suggesting %s (confidence %.2f < %.2f)",
                transaction.id,
                prediction.category_id,
                prediction.confidence,
                self.accept_threshold,
            )
            return SuggestionResult(category_id=prediction.category_id, confidence=prediction.confidence)
        return NoMatchResult()

    # -- learning -------------------------------------------------------

    def learn(
        self,
        payee: str | None,
        iban: str | None,
        category_id: str,
        *,
        text: str | None = None,
    ) -> list[LearnedPayeeEntry]:
        """Record a user correction.

        ``text`` (when given) is queued for the classifier; it is only trained
        on when the caller runs ``train_pending``.
        """
        written = self.payees.learn(payee, iban, category_id)
        if text and text.strip():
            with self._pending_lock:
                self._pending_samples.append(TrainingSample(text=text, category_id=category_id))
        return written

    def forget(self, payee: str | None, iban: str | None = None) -> bool:
        return self.payees.forget(payee, iban)

    def pending_samples(self) -> list[TrainingSample]:
        with self._pending_lock:
            return list(self._pending_samples)

    def train_pending(self) -> int:
        with self._pending_lock:
            samples, self._pending_samples = self._pending_samples, []
        if not samples:
            return 0
        try:
            return self.classifier.train(samples)
        except Exception:
            with self._pending_lock:
                self._pending_samples[:0] = samples
            raise

    # -- rules ----------------------------------------------------------

    @property
    def rules(self) -> list[CategorizationRule]:
        return self._rule_matcher.rules

    def update_rules(self, rules: Iterable[CategorizationRule]) -> None:
        matcher = RuleMatcher(rules)
        self._rule_matcher = matcher
        logger.info(
            "[RULES] Rule cache updated: %d active, %d invalid",
            len(matcher),
            len(matcher.invalid_patterns),
        )

    # -- classifier -----------------------------------------------------

    def retrain_model(self, samples: Iterable[SampleLike]) -> int:
        return self.classifier.retrain(samples)

    def initialize_from_transactions(self, samples: Iterable[SampleLike]) -> int:
        return self.classifier.train(samples)

    def train_default_samples(self) -> int:
        """Add the built-in merchant corpus on top of the current model."""
        trained = self.classifier.train(default_samples())
        logger.info("[ML] Seeded classifier with %d built-in samples.", trained)
        return trained

    def load_model(self, model: ClassifierModel) -> None:
        self.classifier.load(model)
        logger.info(
            "[ML] Model loaded: classes=%d vocabulary=%d",
            model.num_classes,
            model.vocabulary_size,
        )

    # -- learned payee persistence --------------------------------------

    def export_learned_payees(self) -> dict[str, str]:
        return self.payees.export()

    def import_learned_payees(self, payees: Mapping[str, str]) -> int:
        return self.payees.import_map(payees)

    def list_learned_payees(self) -> list[LearnedPayeeEntry]:
        return sorted(self.payees.entries(), key=lambda entry: entry.updated_at, reverse=True)

    def load_learned_payees(self, source: LearnedPayeeSource) -> int:
        count = self.payees.replace(source.load_entries())
        logger.info("[PAYEES] Loaded %d learned payee entries from storage", count)
        return count

    # -- housekeeping ---------------------------------------------------

    def clear_models(self) -> None:
        self.payees.clear()
        self.classifier.clear()
        with self._pending_lock:
            self._pending_samples.clear()
        logger.info("[ENGINE] Learned payees and classifier cleared.")

    def get_stats(self) -> EngineStats:
        matcher = self._rule_matcher
        return EngineStats(
            active_rules=matcher.active_rule_count(),
            learned_payees=len(self.payees),
            ml_classes=self.classifier.num_classes,
            ml_vocabulary_size=self.classifier.vocabulary_size,
            invalid_rules=len(matcher.invalid_patterns),
            ml_documents=self.classifier.document_count,
        )
