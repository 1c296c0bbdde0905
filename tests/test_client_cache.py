from unittest.mock import patch

import pytest

from payment_categorizer.manager import CategorizationEngine
from payment_categorizer.models import MatchResult, NoMatchResult, TransactionInput
from payment_categorizer.services.client_cache import CachedCategorizer


def tx(tx_id: str, counterparty: str | None = None) -> TransactionInput:
    return TransactionInput(id=tx_id, counterparty=counterparty, amount=-10.0)


@pytest.fixture
def cache() -> CachedCategorizer:
    return CachedCategorizer(CategorizationEngine())


def test_repeated_categorize_is_served_from_cache(cache: CachedCategorizer) -> None:
    with patch.object(cache.engine, "categorize", wraps=cache.engine.categorize) as spy:
        first = cache.categorize(tx("1", "ACME"))
        second = cache.categorize(tx("1", "ACME"))

    assert first is second
    assert spy.call_count == 1
    assert (cache.hits, cache.misses) == (1, 1)


def test_batch_only_sends_misses_and_keeps_order(cache: CachedCategorizer) -> None:
    cache.engine.learn("ACME", None, "cat_services")
    cache.categorize(tx("2", "ACME"))

    batch = [tx("1", "Unknown"), tx("2", "ACME"), tx("3", "ACME")]
    with patch.object(cache.engine, "categorize_batch", wraps=cache.engine.categorize_batch) as spy:
        results = cache.categorize_batch(batch)

    sent = spy.call_args.args[0]
    assert [transaction.id for transaction in sent] == ["1", "3"]
    assert isinstance(results[0], NoMatchResult)
    assert isinstance(results[1], MatchResult)
    assert isinstance(results[2], MatchResult)
    assert len(cache) == 3


def test_fully_cached_batch_skips_engine(cache: CachedCategorizer) -> None:
    cache.categorize_batch([tx("1"), tx("2")])

    with patch.object(cache.engine, "categorize_batch") as spy:
        results = cache.categorize_batch([tx("2"), tx("1")])

    spy.assert_not_called()
    assert len(results) == 2


def test_learn_invalidates_cache(cache: CachedCategorizer) -> None:
    assert isinstance(cache.categorize(tx("1", "ACME")), NoMatchResult)

    cache.learn("ACME", None, "cat_services")

    assert len(cache) == 0
    assert cache.categorize(tx("1", "ACME")).category_id == "cat_services"


def test_forget_invalidates_cache(cache: CachedCategorizer) -> None:
    cache.learn("ACME", None, "cat_services")
    assert isinstance(cache.categorize(tx("1", "ACME")), MatchResult)

    assert cache.forget("ACME") is True

    assert isinstance(cache.categorize(tx("1", "ACME")), NoMatchResult)
