from decimal import Decimal

import pytest
from fastapi import Depends
from sqlalchemy.orm import Session

from database import get_db
from routers.banking import get_gateway
from routers.tokens import get_reconciler
from services import currency
from services.banking import BankingGateway, MockBalanceProvider
from services.reconciler import TokenReconciler
from tests.fakes import make_event, OWNER, OTHER, TOKEN_A, TOKEN_B


class RatesResponse:

    def __init__(self, rates, status_code=200):
        self.status_code = status_code
        self._rates = rates

    def raise_for_status(self):
        if self.status_code >= 400:
            raise currency.requests.exceptions.HTTPError(str(self.status_code))

    def json(self):
        return {"base": "USD", "rates": self._rates}


@pytest.fixture
def api(client, reader):
    """Client whose chain reads and development banking go to in-process fakes"""
    from main import app

    def override_reconciler(db: Session = Depends(get_db)):
        return TokenReconciler(db, reader=reader)

    def override_gateway(db: Session = Depends(get_db)):
        return BankingGateway(db, providers={"development": MockBalanceProvider(latency=0)})

    app.dependency_overrides[get_reconciler] = override_reconciler
    app.dependency_overrides[get_gateway] = override_gateway
    return client


def test_root_health_and_ready(api):
    assert api.get("/").status_code == 200
    assert api.get("/health").json()["status"] == "healthy"
    assert api.get("/ready").json() == {"status": "ready", "database": "connected"}


def test_tokens_live(api):
    response = api.get(f"/tokens/{OWNER}", params={"network": "development"})
    assert response.status_code == 200
    body = response.json()
    assert body["live"] is True and body["stale"] is False
    assert [t["address"] for t in body["tokens"]] == [TOKEN_A]
    assert body["tokens"][0]["formatted_balance"] == "5"


def test_tokens_served_stale_when_chain_is_down(api, chain):
    api.get(f"/tokens/{OWNER}")
    chain.available = False

    body = api.get(f"/tokens/{OWNER}").json()
    assert body["stale"] is True and body["live"] is False
    assert [t["address"] for t in body["tokens"]] == [TOKEN_A]


def test_tokens_reject_bad_address_and_network(api):
    assert api.get("/tokens/not-an-address").status_code == 400
    assert api.get(f"/tokens/{OWNER}", params={"network": "solana"}).status_code == 422


def test_custom_token_lookup_keeps_zero_balance(api):
    response = api.get(f"/tokens/{OWNER}/custom/{TOKEN_B}")
    assert response.status_code == 200
    body = response.json()
    assert body["live"] is True and body["persisted"] is True
    assert [(t["symbol"], t["balance"]) for t in body["tokens"]] == [("BET", "0")]


def test_custom_token_lookup_rejects_non_token_contract(api):
    response = api.get(f"/tokens/{OWNER}/custom/{OTHER}")
    assert response.status_code == 400
    assert "not a readable ERC20 contract" in response.json()["detail"]


def test_native_balance_unavailable_is_503(api, chain):
    chain.available = False
    response = api.get(f"/tokens/{OWNER}/native")
    assert response.status_code == 503
    assert "unavailable" in response.json()["detail"]


def test_transfers_reconciled_then_listed_and_counted(api, chain):
    chain.events = [make_event(1, 4900), make_event(2, 4800, sender=TOKEN_A, receiver=OWNER)]
    body = api.get(f"/transfers/{OWNER}/{TOKEN_A}").json()
    assert len(body["transfers"]) == 2
    assert body["transfers"][0]["formatted_amount"] == "0.000000000000001"

    page = api.get("/transfers", params={"address": OWNER, "limit": 1}).json()
    assert page["pagination"] == {"total": 2, "page_size": 1, "current_page": 1, "total_pages": 2}
    assert page["transfers"][0]["block_number"] == 4900

    stats = api.get("/transfers/stats", params={"address": OWNER}).json()
    assert stats == {"sent": 1, "received": 1, "total": 2, "unique_tokens_count": 1}


def test_transfers_listing_requires_a_filter(api):
    response = api.get("/transfers")
    assert response.status_code == 400
    assert response.json() == {"detail": "Address or token address is required"}


def test_fetch_balance_and_activity_log(api):
    headers = {"X-Session-Id": "session-123", "X-User-Address": OWNER}
    response = api.post("/banking/balance", json={"method": "upi", "identifier": "user@bank"}, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "John Doe"
    assert body["masked_identifier"] == "u****@bank"
    assert Decimal(str(body["balance"])) == Decimal("25000.75")
    assert "identifier" not in body

    listed = api.get("/banking", params={"user": OWNER}).json()
    assert [r["masked_identifier"] for r in listed["records"]] == ["u****@bank"]

    activities = api.get("/activities", params={"sessionId": "session-123"}).json()
    assert activities["pagination"]["total"] == 1
    assert activities["activities"][0]["status"] == "success"

    stats = api.get("/activities/stats").json()
    assert stats["total"] == 1
    assert stats["by_method"] == [{"value": "upi", "count": 1}]


def test_fetch_balance_invalid_identifier_is_400(api):
    response = api.post("/banking/balance", json={"method": "card", "identifier": "4111111111111112"})
    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid banking information format"}

    stats = api.get("/activities/stats").json()
    assert stats["by_status"]["failure"] == 1


def test_fetch_balance_unknown_method_is_422(api):
    response = api.post("/banking/balance", json={"method": "wire", "identifier": "12345678901"})
    assert response.status_code == 422
    assert response.json()["detail"] == "Validation error"


def test_delete_activities(api):
    api.post("/banking/balance", json={"method": "account", "identifier": "12345678901"},
             headers={"X-Session-Id": "to-forget"})
    assert api.delete("/activities").status_code == 400

    response = api.delete("/activities", params={"sessionId": "to-forget"})
    assert response.status_code == 200
    assert response.json()["deleted_count"] == 1


def test_session_and_currencies(api):
    session_id = api.post("/banking/session").json()["session_id"]
    assert len(session_id) == 64
    codes = [c["code"] for c in api.get("/banking/currencies").json()]
    assert "USD" in codes and "INR" in codes


def test_convert_currency(api, monkeypatch):
    calls = []

    def fake_get(url, timeout=None):
        calls.append(url)
        return RatesResponse({"EUR": 0.9, "INR": 83.1})

    monkeypatch.setattr(currency.requests, "get", fake_get)
    response = api.post("/banking/convert", json={"amount": 100, "from_currency": "usd", "to_currency": "EUR"})
    assert response.status_code == 200
    body = response.json()
    assert Decimal(str(body["amount"])) == Decimal("90")
    assert body["from_currency"] == "USD"
    assert calls[0].endswith("/USD")


def test_convert_currency_without_rate_is_400(api, monkeypatch):
    monkeypatch.setattr(currency.requests, "get", lambda url, timeout=None: RatesResponse({"EUR": 0.9}))
    response = api.post("/banking/convert", json={"amount": 5, "from_currency": "USD", "to_currency": "JPY"})
    assert response.status_code == 400
