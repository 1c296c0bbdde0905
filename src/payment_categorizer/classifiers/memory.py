import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from rapidfuzz import fuzz, process

from payment_categorizer.domain.text import normalize_iban, normalize_payee
from payment_categorizer.errors import InvalidLearnInput
from payment_categorizer.logger import get_logger
from payment_categorizer.models import LearnedPayeeEntry, PayeeTier

logger = get_logger(__name__)

KEY_SEPARATOR = "|"


def composite_key(payee: str | None, iban: str | None) -> str:
    return f"{payee or ''}{KEY_SEPARATOR}{iban or ''}"


def split_composite_key(key: str) -> tuple[str | None, str | None]:
    """Inverse of ``composite_key``. A key without separator is a bare payee."""
    if KEY_SEPARATOR not in key:
        return normalize_payee(key), None
    payee, iban = key.split(KEY_SEPARATOR, 1)
    return normalize_payee(payee), normalize_iban(iban)


def _tier_for(payee: str | None, iban: str | None) -> PayeeTier:
    if payee and iban:
        return PayeeTier.PAYEE_IBAN
    if iban:
        return PayeeTier.IBAN_ONLY
    return PayeeTier.PAYEE_ONLY


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PayeeLookup:
    category_id: str
    tier: PayeeTier
    payee: str | None
    iban: str | None
    score: float = 100.0


class LearnedPayeeStore:
    """Category memory keyed by normalized payee and/or counterparty IBAN.

    Three flat mappings stand in for a shallow trie:

    * ``(payee, iban)`` -> entry  (tier ``iban_default``)
    * ``iban``          -> entry  (tier ``iban_only_default``)
    * ``payee``         -> entry  (tier ``payee_default``)

    Lookups try them in that order. Every public method holds the store lock,
    so a lookup never sees a half-applied ``learn`` that touches several tiers.
    """

    def __init__(
        self,
        fuzzy_threshold: float = 0.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.fuzzy_threshold = fuzzy_threshold
        self._clock = clock
        self._lock = threading.RLock()
        self._by_payee_iban: dict[tuple[str, str], LearnedPayeeEntry] = {}
        self._by_iban: dict[str, LearnedPayeeEntry] = {}
        self._by_payee: dict[str, LearnedPayeeEntry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_payee_iban) + len(self._by_iban) + len(self._by_payee)

    def _put(self, entry: LearnedPayeeEntry) -> None:
        payee, iban = entry.normalized_payee, entry.counterparty_iban
        if entry.tier == PayeeTier.PAYEE_IBAN and payee and iban:
            self._by_payee_iban[(payee, iban)] = entry
        elif entry.tier == PayeeTier.IBAN_ONLY and iban:
            self._by_iban[iban] = entry
        elif entry.tier == PayeeTier.PAYEE_ONLY and payee:
            self._by_payee[payee] = entry
        else:
            raise ValueError(f"Entry does not fit its tier: {entry!r}")

    def learn(self, payee: str | None, iban: str | None, category_id: str) -> list[LearnedPayeeEntry]:
        """Remember ``category_id`` for every tier the supplied keys allow."""
        normalized_payee = normalize_payee(payee)
        normalized_iban = normalize_iban(iban)
        if normalized_payee is None and normalized_iban is None:
            raise InvalidLearnInput()
        if not category_id:
            raise InvalidLearnInput("A category id is required")

        now = self._clock()
        written: list[LearnedPayeeEntry] = []
        if normalized_payee and normalized_iban:
            written.append(LearnedPayeeEntry(
                normalized_payee=normalized_payee,
                counterparty_iban=normalized_iban,
                category_id=category_id,
                tier=PayeeTier.PAYEE_IBAN,
                updated_at=now,
            ))
        if normalized_iban:
            written.append(LearnedPayeeEntry(
                counterparty_iban=normalized_iban,
                category_id=category_id,
                tier=PayeeTier.IBAN_ONLY,
                updated_at=now,
            ))
        if normalized_payee:
            written.append(LearnedPayeeEntry(
                normalized_payee=normalized_payee,
                category_id=category_id,
                tier=PayeeTier.PAYEE_ONLY,
                updated_at=now,
            ))

        with self._lock:
            for entry in written:
                self._put(entry)

        logger.info(
            "[PAYEES] Learned payee=%r iban=%r -> %s (%d tier(s))",
            normalized_payee,
            normalized_iban,
            category_id,
            len(written),
        )
        return written

    def lookup(self, payee: str | None, iban: str | None) -> PayeeLookup | None:
        normalized_payee = normalize_payee(payee)
        normalized_iban = normalize_iban(iban)
        if normalized_payee is None and normalized_iban is None:
            return None

        with self._lock:
            entry = None
            if normalized_payee and normalized_iban:
                entry = self._by_payee_iban.get((normalized_payee, normalized_iban))
            if entry is None and normalized_iban:
                entry = self._by_iban.get(normalized_iban)
            if entry is None and normalized_payee:
                entry = self._by_payee.get(normalized_payee)
            if entry is not None:
                return PayeeLookup(
                    category_id=entry.category_id,
                    tier=entry.tier,
                    payee=entry.normalized_payee,
                    iban=entry.counterparty_iban,
                )
            if normalized_payee and self.fuzzy_threshold > 0 and self._by_payee:
                return self._fuzzy_lookup(normalized_payee)
        return None

    def _fuzzy_lookup(self, normalized_payee: str) -> PayeeLookup | None:
        result = process.extractOne(
            normalized_payee,
            self._by_payee.keys(),
            scorer=fuzz.token_sort_ratio,
            score_cutoff=self.fuzzy_threshold,
        )
        if not result:
            return None
        matched_payee, score, _ = result
        entry = self._by_payee[matched_payee]
        logger.debug("[PAYEES] Fuzzy payee match %r ~ %r (score %.1f)", normalized_payee, matched_payee, score)
        return PayeeLookup(
            category_id=entry.category_id,
            tier=entry.tier,
            payee=matched_payee,
            iban=None,
            score=float(score),
        )

    def forget(self, payee: str | None, iban: str | None = None) -> bool:
        """Drop every tier keyed by the payee (and by the IBAN, when given)."""
        normalized_payee = normalize_payee(payee)
        normalized_iban = normalize_iban(iban)
        if normalized_payee is None and normalized_iban is None:
            raise InvalidLearnInput()

        removed = 0
        with self._lock:
            if normalized_payee:
                removed += self._by_payee.pop(normalized_payee, None) is not None
            if normalized_iban:
                removed += self._by_iban.pop(normalized_iban, None) is not None
            for key in list(self._by_payee_iban):
                if key[0] == normalized_payee or key[1] == normalized_iban:
                    del self._by_payee_iban[key]
                    removed += 1

        if removed:
            logger.info(
                "[PAYEES] Forgot payee=%r iban=%r (%d entr%s)",
                normalized_payee,
                normalized_iban,
                removed,
                "y" if removed == 1 else "ies",
            )
        return removed > 0

    def entries(self) -> list[LearnedPayeeEntry]:
        with self._lock:
            return [
                *self._by_payee_iban.values(),
                *self._by_iban.values(),
                *self._by_payee.values(),
            ]

    def export(self) -> dict[str, str]:
        return {
            composite_key(entry.normalized_payee, entry.counterparty_iban): entry.category_id
            for entry in self.entries()
        }

    def import_map(self, payees: Mapping[str, str]) -> int:
        """Restore entries produced by ``export``; each key lands in exactly one tier."""
        now = self._clock()
        staged: list[LearnedPayeeEntry] = []
        for key, category_id in payees.items():
            payee, iban = split_composite_key(key)
            if (payee is None and iban is None) or not category_id:
                logger.warning("[PAYEES] Skipping unusable import key %r", key)
                continue
            staged.append(LearnedPayeeEntry(
                normalized_payee=payee,
                counterparty_iban=iban,
                category_id=category_id,
                tier=_tier_for(payee, iban),
                updated_at=now,
            ))

        with self._lock:
            for entry in staged:
                self._put(entry)
        logger.info("[PAYEES] Imported %d learned payee entries", len(staged))
        return len(staged)

    def replace(self, entries: Iterable[LearnedPayeeEntry]) -> int:
        """Swap the whole store for ``entries`` (used when rehydrating from storage)."""
        fresh = LearnedPayeeStore(self.fuzzy_threshold, self._clock)
        for entry in sorted(entries, key=lambda item: item.updated_at):
            try:
                fresh._put(entry)
            except ValueError as exc:
                logger.warning("[PAYEES] Dropping stored entry: %s", exc)
        with self._lock:
            self._by_payee_iban = fresh._by_payee_iban
            self._by_iban = fresh._by_iban
            self._by_payee = fresh._by_payee
        return len(self)

    def clear(self) -> None:
        with self._lock:
            self._by_payee_iban.clear()
            self._by_iban.clear()
            self._by_payee.clear()
