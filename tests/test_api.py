import json
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from payment_categorizer.app import app, build_pipeline
from payment_categorizer.services.categorization import CategorizationPipeline

client = TestClient(app)

_STATE_KEYS = ("engine", "training_manager", "pipeline")

NETFLIX_RULE = {
    "id": "r1",
    "name": "Netflix",
    "rule_type": "Contains",
    "pattern": "netflix",
    "category_id": "cat_entertainment",
    "priority": 10,
}


@pytest.fixture
def pipeline(tmp_path) -> Generator[CategorizationPipeline, None, None]:
    originals = {key: getattr(app.state, key, None) for key in _STATE_KEYS}
    pipeline = build_pipeline(str(tmp_path))
    app.state.engine = pipeline.engine
    app.state.training_manager = pipeline.training
    app.state.pipeline = pipeline
    yield pipeline
    for key, value in originals.items():
        if value is None:
            if hasattr(app.state, key):
                delattr(app.state, key)
        else:
            setattr(app.state, key, value)


def test_categorize_with_rule(pipeline: CategorizationPipeline) -> None:
    response = client.put("/rules", json=[NETFLIX_RULE])
    assert response.status_code == 200
    assert response.json() == {"active_rules": 1, "invalid_rules": 0}

    response = client.post("/categorize", json={"id": "1", "description": "NETFLIX.COM", "amount": -199})

    assert response.status_code == 200
    assert response.json() == {
        "type": "Match",
        "category_id": "cat_entertainment",
        "source": {"type": "Rule", "rule_id": "r1", "rule_name": "Netflix"},
    }


def test_rules_are_persisted(pipeline: CategorizationPipeline, tmp_path) -> None:
    client.put("/rules", json=[NETFLIX_RULE, {**NETFLIX_RULE, "id": "r2", "rule_type": "Regex", "pattern": "("}])

    stored = json.loads((tmp_path / "rules.json").read_text(encoding="utf-8"))
    assert [rule["id"] for rule in stored] == ["r1", "r2"]
    assert client.get("/stats").json()["invalid_rules"] == 1
    assert [rule["id"] for rule in client.get("/rules").json()] == ["r1"]


def test_default_rules_endpoint(pipeline: CategorizationPipeline) -> None:
    response = client.get("/rules/defaults")

    assert response.status_code == 200
    assert all(rule["id"].startswith("default_") for rule in response.json())


def test_learn_then_categorize_by_iban(pipeline: CategorizationPipeline, tmp_path) -> None:
    iban = "CZ6508000000192000145399"
    response = client.post("/learn", json={"counterparty_iban": iban, "category_id": "cat_groceries"})
    assert response.status_code == 200
    assert response.json() == {"status": "success", "entries": 1}

    response = client.post(
        "/categorize",
        json={"id": "2", "description": "Transfer", "counterparty_iban": iban},
    )

    body = response.json()
    assert body["category_id"] == "cat_groceries"
    assert body["source"] == {"type": "ExactMatch", "payee": iban, "tier": "iban_only_default"}
    assert (tmp_path / "learned_payees.json").exists()


def test_learn_without_keys_is_422(pipeline: CategorizationPipeline) -> None:
    response = client.post("/learn", json={"category_id": "cat_x"})

    assert response.status_code == 422
    assert "payee" in response.json()["detail"]


def test_forget_and_list(pipeline: CategorizationPipeline) -> None:
    client.post("/learn", json={"payee": "ACME", "counterparty_iban": "CZ1234", "category_id": "cat_services"})
    assert len(client.get("/learned-payees").json()) == 3

    response = client.post("/forget", json={"payee": "acme", "counterparty_iban": "CZ1234"})

    assert response.json() == {"forgotten": True}
    assert client.get("/learned-payees").json() == []


def test_export_import_and_reload(pipeline: CategorizationPipeline) -> None:
    client.post("/learn", json={"payee": "ACME", "category_id": "cat_services"})
    exported = client.get("/learned-payees/export").json()
    assert exported == {"acme|": "cat_services"}

    pipeline.engine.payees.clear()
    assert client.post("/learned-payees/load").json() == {"loaded": 1}

    response = client.post("/learned-payees/import", json={"|CZ9999": "cat_rent"})
    assert response.json() == {"imported": 1}
    assert client.get("/stats").json()["learned_payees"] == 2


def test_batch_preserves_order(pipeline: CategorizationPipeline) -> None:
    client.put("/rules", json=[NETFLIX_RULE])
    payload = {
        "transactions": [
            {"id": "a", "description": "unknown"},
            {"id": "b", "description": "Netflix"},
        ]
    }

    response = client.post("/categorize/batch", json=payload)

    results = response.json()["results"]
    assert [result["type"] for result in results] == ["None", "Match"]


def test_retrain_and_stats(pipeline: CategorizationPipeline, tmp_path) -> None:
    samples = [
        {"text": "lidl supermarket", "category_id": "groceries"},
        {"text": "uber ride", "category_id": "transport"},
    ]

    response = client.post("/retrain", json={"samples": samples})

    assert response.json() == {"status": "success", "trained": 2}
    stats = client.get("/stats").json()
    assert stats["ml_classes"] == 2
    assert stats["ml_documents"] == 2
    assert (tmp_path / "classifier.pkl").exists()


def test_retrain_during_bootstrap_is_409(pipeline: CategorizationPipeline) -> None:
    pipeline.training.active = True

    response = client.post("/retrain", json={"samples": [{"text": "netflix", "category_id": "fun"}]})

    assert response.status_code == 409
    assert response.headers["Retry-After"] == "5"
    assert response.json()["retryable"] is True
    assert client.post("/train-reset").status_code == 409


def test_bootstrap_from_sample_file(pipeline: CategorizationPipeline, tmp_path) -> None:
    samples = [{"text": f"shop {index}", "category_id": "shopping"} for index in range(3)]
    (tmp_path / "training_samples.json").write_text(json.dumps(samples), encoding="utf-8")

    response = client.post("/train")

    assert response.json() == {"status": "success", "trained": 3, "skipped": 0, "fetched": 3}
    assert client.get("/train-status").json()["active"] is False
    assert client.post("/train-pause").json() == {"status": "idle"}
    assert client.post("/train-reset").json() == {"status": "cleared", "cleared": 3}


def test_clear_models(pipeline: CategorizationPipeline) -> None:
    client.post("/learn", json={"payee": "ACME", "category_id": "cat_services"})

    response = client.post("/clear-models")

    assert response.status_code == 200
    assert client.get("/stats").json()["learned_payees"] == 0


def test_missing_state_is_500() -> None:
    originals = {key: getattr(app.state, key, None) for key in _STATE_KEYS}
    for key in _STATE_KEYS:
        if hasattr(app.state, key):
            delattr(app.state, key)
    try:
        response = client.get("/stats")
    finally:
        for key, value in originals.items():
            if value is not None:
                setattr(app.state, key, value)

    assert response.status_code == 500
