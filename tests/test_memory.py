from datetime import datetime, timezone

import pytest

from payment_categorizer.classifiers.memory import LearnedPayeeStore, composite_key, split_composite_key
from payment_categorizer.errors import InvalidLearnInput
from payment_categorizer.models import LearnedPayeeEntry, PayeeTier


@pytest.fixture
def store() -> LearnedPayeeStore:
    return LearnedPayeeStore(clock=lambda: datetime(2024, 1, 1, tzinfo=timezone.utc))


def test_learn_with_both_keys_writes_three_tiers(store: LearnedPayeeStore) -> None:
    written = store.learn("ACME s.r.o.", "CZ12 3400 0000 0000", "cat_services")

    assert [entry.tier for entry in written] == [
        PayeeTier.PAYEE_IBAN,
        PayeeTier.IBAN_ONLY,
        PayeeTier.PAYEE_ONLY,
    ]
    assert len(store) == 3
    assert written[0].normalized_payee == "acme sro"
    assert written[0].counterparty_iban == "CZ1234000000000000"


def test_lookup_prefers_combined_tier(store: LearnedPayeeStore) -> None:
    store.learn("ACME", "CZ1234", "cat_services")

    hit = store.lookup("acme", "cz1234")

    assert hit.category_id == "cat_services"
    assert hit.tier == PayeeTier.PAYEE_IBAN


def test_partial_key_fallback(store: LearnedPayeeStore) -> None:
    store.learn("ACME", "CZ1234", "cat_services")

    by_payee = store.lookup("ACME", "CZ9999")
    by_iban = store.lookup(None, "CZ1234")

    assert by_payee.category_id == "cat_services"
    assert by_payee.tier == PayeeTier.PAYEE_ONLY
    assert by_iban.category_id == "cat_services"
    assert by_iban.tier == PayeeTier.IBAN_ONLY


def test_iban_only_beats_payee_only(store: LearnedPayeeStore) -> None:
    store.learn("Shop", None, "cat_shopping")
    store.learn(None, "CZ5555", "cat_groceries")

    hit = store.lookup("Shop", "CZ5555")

    assert hit.category_id == "cat_groceries"
    assert hit.tier == PayeeTier.IBAN_ONLY


def test_payee_normalization_ignores_case_accents_and_punctuation(store: LearnedPayeeStore) -> None:
    store.learn("Café  Praha s.r.o.", None, "cat_dining")

    assert store.lookup("CAFE PRAHA S.R.O.", None).category_id == "cat_dining"
    assert store.lookup("cafe praha sro", None).category_id == "cat_dining"


def test_learn_requires_a_key(store: LearnedPayeeStore) -> None:
    with pytest.raises(InvalidLearnInput):
        store.learn(None, None, "cat_x")
    with pytest.raises(InvalidLearnInput):
        store.learn("  ...  ", "   ", "cat_x")
    assert len(store) == 0


def test_learn_requires_a_category(store: LearnedPayeeStore) -> None:
    with pytest.raises(InvalidLearnInput):
        store.learn("ACME", None, "")


def test_learn_is_idempotent(store: LearnedPayeeStore) -> None:
    store.learn("ACME", "CZ1234", "cat_services")
    snapshot = store.export()

    store.learn("ACME", "CZ1234", "cat_services")

    assert store.export() == snapshot
    assert len(store) == 3


def test_relearn_overwrites_category(store: LearnedPayeeStore) -> None:
    store.learn("ACME", None, "cat_a")
    store.learn("ACME", None, "cat_b")

    assert store.lookup("ACME", None).category_id == "cat_b"
    assert len(store) == 1


def test_forget_removes_payee_tiers_but_keeps_iban_only(store: LearnedPayeeStore) -> None:
    store.learn("ACME", "CZ1234", "cat_services")

    assert store.forget("acme") is True

    assert store.lookup("ACME", None) is None
    hit = store.lookup("ACME", "CZ1234")
    assert hit.tier == PayeeTier.IBAN_ONLY
    assert store.forget("acme") is False


def test_forget_with_iban_removes_everything(store: LearnedPayeeStore) -> None:
    store.learn("ACME", "CZ1234", "cat_services")

    assert store.forget("ACME", "CZ1234") is True

    assert len(store) == 0
    assert store.lookup("ACME", "CZ1234") is None


def test_forget_requires_a_key(store: LearnedPayeeStore) -> None:
    with pytest.raises(InvalidLearnInput):
        store.forget(None)


def test_export_import_round_trip(store: LearnedPayeeStore) -> None:
    store.learn("ACME", "CZ1234", "cat_services")
    store.learn("Netflix", None, "cat_entertainment")
    store.learn(None, "CZ6508000000192000145399", "cat_groceries")
    exported = store.export()

    restored = LearnedPayeeStore()
    imported = restored.import_map(exported)

    assert imported == len(exported)
    assert restored.export() == exported
    assert restored.lookup("ACME", "CZ1234").tier == PayeeTier.PAYEE_IBAN
    assert restored.lookup(None, "CZ6508000000192000145399").category_id == "cat_groceries"


def test_import_skips_unusable_keys(store: LearnedPayeeStore) -> None:
    imported = store.import_map({"|": "cat_x", "acme|": "", "shop": "cat_shopping"})

    assert imported == 1
    assert store.lookup("Shop", None).category_id == "cat_shopping"


def test_composite_key_helpers() -> None:
    assert composite_key("acme", "CZ1234") == "acme|CZ1234"
    assert composite_key(None, "CZ1234") == "|CZ1234"
    assert split_composite_key("acme|") == ("acme", None)
    assert split_composite_key("|CZ1234") == (None, "CZ1234")
    assert split_composite_key("acme") == ("acme", None)


def test_replace_swaps_contents_and_drops_malformed(store: LearnedPayeeStore) -> None:
    store.learn("Old", None, "cat_old")
    now = datetime(2024, 2, 1, tzinfo=timezone.utc)
    entries = [
        LearnedPayeeEntry(normalized_payee="acme", category_id="cat_a", tier=PayeeTier.PAYEE_ONLY, updated_at=now),
        LearnedPayeeEntry(counterparty_iban="CZ1", category_id="cat_b", tier=PayeeTier.PAYEE_IBAN, updated_at=now),
    ]

    count = store.replace(entries)

    assert count == 1
    assert store.lookup("Old", None) is None
    assert store.lookup("ACME", None).category_id == "cat_a"


def test_fuzzy_fallback_is_opt_in() -> None:
    exact_only = LearnedPayeeStore()
    fuzzy = LearnedPayeeStore(fuzzy_threshold=90)
    for store in (exact_only, fuzzy):
        store.learn("Uber Eats Praha", None, "cat_dining")

    assert exact_only.lookup("UBER EATS PRAHA 2", None) is None
    hit = fuzzy.lookup("UBER EATS PRAHA 2", None)
    assert hit.category_id == "cat_dining"
    assert hit.tier == PayeeTier.PAYEE_ONLY
    assert hit.score < 100
    assert fuzzy.lookup("Completely different", None) is None
