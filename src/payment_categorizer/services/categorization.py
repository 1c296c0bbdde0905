import asyncio
import threading
from collections.abc import Iterable, Mapping, Sequence
from typing import Protocol

from payment_categorizer.classifiers.naive_bayes import ClassifierModel
from payment_categorizer.logger import get_logger
from payment_categorizer.manager import CategorizationEngine
from payment_categorizer.models import (
    CategorizationResult,
    CategorizationRule,
    LearnedPayeeEntry,
    TrainingSample,
    TransactionInput,
)
from payment_categorizer.services.training import TrainingManager

logger = get_logger(__name__)


class LearnedPayeeRepository(Protocol):
    def load_entries(self) -> list[LearnedPayeeEntry]: ...

    def save_entries(self, entries: Iterable[LearnedPayeeEntry]) -> None: ...


class ModelRepository(Protocol):
    def load_model(self) -> ClassifierModel | None: ...

    def save_model(self, model: ClassifierModel) -> None: ...


class RuleRepository(Protocol):
    def load_rules(self) -> list[CategorizationRule]: ...

    def save_rules(self, rules: Iterable[CategorizationRule]) -> None: ...


class CategorizationPipeline:
    """Host-side glue: runs engine calls in worker threads and persists changes."""

    def __init__(
        self,
        engine: CategorizationEngine,
        training: TrainingManager,
        payee_repository: LearnedPayeeRepository | None = None,
        model_repository: ModelRepository | None = None,
        rule_repository: RuleRepository | None = None,
    ) -> None:
        self.engine = engine
        self.training = training
        self.payee_repository = payee_repository
        self.model_repository = model_repository
        self.rule_repository = rule_repository
        # One lock per repository: the snapshot is taken and written under it,
        # so a later snapshot is never overwritten by an earlier one.
        self._payee_write_lock = threading.Lock()
        self._model_write_lock = threading.Lock()
        self._rule_write_lock = threading.Lock()
        self._rules_snapshot: list[CategorizationRule] | None = None

    async def predict(self, transaction: TransactionInput) -> CategorizationResult:
        return await asyncio.to_thread(self.engine.categorize, transaction)

    async def predict_batch(self, transactions: Sequence[TransactionInput]) -> list[CategorizationResult]:
        return await asyncio.to_thread(self.engine.categorize_batch, transactions)

    def _persist_payees(self) -> None:
        if self.payee_repository is None:
            return
        with self._payee_write_lock:
            self.payee_repository.save_entries(self.engine.payees.entries())

    def _persist_model(self) -> None:
        if self.model_repository is None:
            return
        with self._model_write_lock:
            self.model_repository.save_model(self.engine.classifier.model)

    def _persist_rules(self) -> None:
        if self.rule_repository is None:
            return
        with self._rule_write_lock:
            if self._rules_snapshot is not None:
                self.rule_repository.save_rules(self._rules_snapshot)

    async def learn(
        self,
        payee: str | None,
        iban: str | None,
        category_id: str,
        *,
        text: str | None = None,
    ) -> list[LearnedPayeeEntry]:
        written = self.engine.learn(payee, iban, category_id, text=text)
        await asyncio.to_thread(self._persist_payees)
        return written

    async def forget(self, payee: str | None, iban: str | None = None) -> bool:
        forgotten = self.engine.forget(payee, iban)
        if forgotten:
            await asyncio.to_thread(self._persist_payees)
        return forgotten

    async def import_payees(self, payees: Mapping[str, str]) -> int:
        count = self.engine.import_learned_payees(payees)
        await asyncio.to_thread(self._persist_payees)
        return count

    async def load_payees(self) -> int:
        """Rehydrate the learned payee store from the repository."""
        if self.payee_repository is None:
            return 0
        return await asyncio.to_thread(self.engine.load_learned_payees, self.payee_repository)

    def load_model(self) -> bool:
        if self.model_repository is None:
            return False
        model = self.model_repository.load_model()
        if model is None:
            return False
        self.engine.load_model(model)
        return True

    def seed_model(self) -> int:
        """Train the built-in corpus into an empty classifier and save it."""
        self.training.ensure_idle("seed")
        trained = self.engine.train_default_samples()
        if trained:
            self._persist_model()
        return trained

    async def update_rules(self, rules: list[CategorizationRule]) -> None:
        self.engine.update_rules(rules)
        self._rules_snapshot = list(rules)
        await asyncio.to_thread(self._persist_rules)

    async def retrain(self, samples: list[TrainingSample]) -> int:
        self.training.ensure_idle("retrain")
        trained = await asyncio.to_thread(self.engine.retrain_model, samples)
        if trained:
            await asyncio.to_thread(self._persist_model)
        return trained

    async def initialize(self, samples: list[TrainingSample]) -> int:
        self.training.ensure_idle("initialize")
        trained = await asyncio.to_thread(self.engine.initialize_from_transactions, samples)
        if trained:
            await asyncio.to_thread(self._persist_model)
        return trained

    async def train_pending(self) -> int:
        self.training.ensure_idle("train_pending")
        trained = await asyncio.to_thread(self.engine.train_pending)
        if trained:
            await asyncio.to_thread(self._persist_model)
        return trained

    async def clear_models(self) -> None:
        self.training.ensure_idle("clear")
        self.engine.clear_models()
        self.training.reset_state()
        await asyncio.to_thread(self._persist_payees)
        await asyncio.to_thread(self._persist_model)
