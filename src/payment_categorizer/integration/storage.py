"""File-backed stand-ins for the host application's persistent store.

The engine never opens files itself; the HTTP host wires these repositories
around it. Each write goes to a uniquely named temp file in the target
directory and is then moved into place with ``os.replace``, so a crash never
leaves a truncated file behind.
"""

import json
import os
import pickle
import tempfile
from collections.abc import AsyncGenerator, Iterable
from typing import Any

from pydantic import ValidationError

from payment_categorizer.classifiers.naive_bayes import ClassifierModel
from payment_categorizer.domain.transactions import build_training_sample
from payment_categorizer.logger import get_logger
from payment_categorizer.models import CategorizationRule, LearnedPayeeEntry, TrainingSample

logger = get_logger(__name__)


def _atomic_write(path: str, data: bytes) -> None:
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    # Unique temp name per write so concurrent writers never share a file.
    with tempfile.NamedTemporaryFile(
        dir=directory,
        prefix=f".{os.path.basename(path)}.",
        suffix=".tmp",
        delete=False,
    ) as handle:
        handle.write(data)
        tmp_path = handle.name
    try:
        os.replace(tmp_path, path)
    except OSError:
        os.unlink(tmp_path)
        raise


def _read_json(path: str, default: Any) -> Any:
    if not os.path.exists(path):
        return default
    try:
        with open(path, encoding="utf-8") as handle:
            return json.load(handle)
    except json.JSONDecodeError as exc:
        logger.error("[STORE] %s is not valid JSON (%s); ignoring its contents.", path, exc)
        return default


def _write_json(path: str, payload: Any) -> None:
    _atomic_write(path, json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8"))


class JsonLearnedPayeeRepository:
    def __init__(self, data_path: str = "learned_payees.json"):
        self.data_path = data_path

    def load_entries(self) -> list[LearnedPayeeEntry]:
        raw = _read_json(self.data_path, [])
        entries: list[LearnedPayeeEntry] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                entries.append(LearnedPayeeEntry.model_validate(item))
            except ValidationError as exc:
                logger.warning("[STORE] Skipping malformed learned payee %r: %s", item, exc)
        return entries

    def save_entries(self, entries: Iterable[LearnedPayeeEntry]) -> None:
        _write_json(self.data_path, [entry.model_dump(mode="json") for entry in entries])


class JsonRuleRepository:
    def __init__(self, data_path: str = "rules.json"):
        self.data_path = data_path

    def exists(self) -> bool:
        return os.path.exists(self.data_path)

    def load_rules(self) -> list[CategorizationRule]:
        raw = _read_json(self.data_path, [])
        rules: list[CategorizationRule] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                rules.append(CategorizationRule.model_validate(item))
            except ValidationError as exc:
                logger.warning("[STORE] Skipping malformed rule %r: %s", item, exc)
        return rules

    def save_rules(self, rules: Iterable[CategorizationRule]) -> None:
        _write_json(self.data_path, [rule.model_dump(mode="json") for rule in rules])


class PickleModelRepository:
    def __init__(self, data_path: str = "classifier.pkl"):
        self.data_path = data_path

    def load_model(self) -> ClassifierModel | None:
        if not os.path.exists(self.data_path):
            return None
        try:
            with open(self.data_path, "rb") as handle:
                data = pickle.load(handle)
        except (pickle.UnpicklingError, EOFError) as exc:
            logger.warning("[STORE] Could not read classifier model %s: %s", self.data_path, exc)
            return None
        return ClassifierModel(
            vocabulary=data.get("vocabulary", {}),
            token_counts=data.get("token_counts", {}),
            token_totals=data.get("token_totals", {}),
            doc_counts=data.get("doc_counts", {}),
            total_docs=data.get("total_docs", 0),
        )

    def save_model(self, model: ClassifierModel) -> None:
        # Plain containers only, so the file does not pin the class layout.
        _atomic_write(self.data_path, pickle.dumps({
            "vocabulary": model.vocabulary,
            "token_counts": model.token_counts,
            "token_totals": model.token_totals,
            "doc_counts": model.doc_counts,
            "total_docs": model.total_docs,
        }))


class JsonTrainingSampleSource:
    """Already-categorized transactions exported by the host, read page by page."""

    def __init__(self, data_path: str = "training_samples.json"):
        self.data_path = data_path

    def _load(self) -> list[TrainingSample]:
        raw = _read_json(self.data_path, [])
        samples: list[TrainingSample] = []
        for item in raw if isinstance(raw, list) else []:
            if not isinstance(item, dict):
                continue
            # Either ready-made {"text", "category_id"} pairs or raw bank records.
            if "categoryId" in item:
                sample = build_training_sample(item)
                if sample is not None:
                    samples.append(sample)
                continue
            try:
                samples.append(TrainingSample.model_validate(item))
            except ValidationError:
                continue
        return samples

    async def yield_samples(
        self, limit_per_page: int = 50
    ) -> AsyncGenerator[tuple[list[TrainingSample], dict[str, Any]], None]:
        samples = self._load()
        total = len(samples)
        for start in range(0, total, limit_per_page):
            yield samples[start:start + limit_per_page], {"total": total, "offset": start}
