from datetime import date

from doubles import AUTH, intent_args, streaming_model, structured_model

BALANCE = {"messages": [{"role": "user", "content": "¿Cómo voy este mes?"}]}


def _client(chat_api):
    return chat_api(structured_model(intent_args("BALANCE")), streaming_model(["ok"]))


def test_create_transaction(chat_api, store):
    client = _client(chat_api)

    response = client.post(
        "/v1/transactions",
        json={"date": date.today().isoformat(), "description": "Café", "kind": "expense", "amount": 3500},
        headers=AUTH,
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["description"] == "Café"
    assert data["reconciliationMonth"] == date.today().strftime("%Y-%m")
    assert any(t.description == "Café" for t in store.transactions)


def test_write_invalidates_cached_balance(chat_api, store):
    client = _client(chat_api)

    client.post("/api/chat", json=BALANCE, headers=AUTH)
    client.post("/api/chat", json=BALANCE, headers=AUTH)
    assert store.dashboard_reads == 1

    client.post(
        "/v1/transactions",
        json={"date": date.today().isoformat(), "kind": "income", "amount": 10000},
        headers=AUTH,
    )
    client.post("/api/chat", json=BALANCE, headers=AUTH)

    assert store.dashboard_reads == 2


def test_delete_transaction(chat_api, store):
    client = _client(chat_api)

    response = client.delete("/v1/transactions/t1", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["data"] == {"id": "t1", "deleted": True}
    assert all(t.id != "t1" for t in store.transactions)


def test_delete_unknown_transaction_is_404(chat_api):
    response = _client(chat_api).delete("/v1/transactions/nope", headers=AUTH)

    assert response.status_code == 404
    assert response.json()["error"]["type"] == "not_found"


def test_invalid_payload_is_400(chat_api):
    response = _client(chat_api).post(
        "/v1/transactions",
        json={"date": "ayer", "kind": "expense", "amount": -5},
        headers=AUTH,
    )

    assert response.status_code == 400
    assert response.json()["error"]["type"] == "malformed_input"


def test_writes_require_identity(chat_api):
    response = _client(chat_api).delete("/v1/transactions/t1")
    assert response.status_code == 401
