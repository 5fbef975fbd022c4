import pytest

from schemas.tokens import TokenRecord
from services.cache import ReconciliationCache
from services.errors import ValidationError
from services.reconciler import TokenReconciler
from tests.fakes import make_event, OWNER, OTHER, TOKEN_A, TOKEN_B, TOKEN_C


def cached_token(address, balance="1"):
    return TokenRecord(address=address, name="Old", symbol="OLD", decimals=18, balance=balance,
                       owner=OWNER, network="development", chain_id="1337")


def test_live_tokens_override_cache_and_cache_supplements(db_session, reader):
    cache = ReconciliationCache(db_session)
    cache.upsert_token(cached_token(TOKEN_A, balance="1"))
    cache.upsert_token(cached_token(TOKEN_C, balance="3"))
    db_session.commit()

    result = TokenReconciler(db_session, reader=reader).tokens_for(OWNER, "development")

    assert result.live and not result.stale and result.persisted
    assert [r.address for r in result.records] == [TOKEN_A, TOKEN_C]
    assert result.records[0].balance == str(5 * 10 ** 18)
    assert result.records[1].balance == "3"
    assert all(r.last_updated is not None for r in result.records)


def test_live_tokens_are_persisted(db_session, reader):
    TokenReconciler(db_session, reader=reader).tokens_for(OWNER, "development")
    stored = ReconciliationCache(db_session).query_tokens(OWNER, "development")
    assert [t.address for t in stored] == [TOKEN_A]


def test_unreachable_chain_returns_exactly_the_cached_set(db_session, chain, reader):
    cache = ReconciliationCache(db_session)
    cache.upsert_token(cached_token(TOKEN_B, balance="9"))
    cache.upsert_token(cached_token(TOKEN_C, balance="3"))
    db_session.commit()
    chain.available = False

    result = TokenReconciler(db_session, reader=reader).tokens_for(OWNER, "development")

    assert not result.live and result.stale
    assert sorted(r.address for r in result.records) == [TOKEN_B, TOKEN_C]
    assert {r.balance for r in result.records} == {"9", "3"}


def test_persistence_failure_still_returns_live_data(db_session, reader):
    class BrokenCache(ReconciliationCache):
        def upsert_token(self, record):
            raise RuntimeError("disk full")

    result = TokenReconciler(db_session, reader=reader, cache=BrokenCache(db_session)).tokens_for(OWNER, "development")

    assert result.live
    assert result.persisted is False
    assert [r.address for r in result.records] == [TOKEN_A]


def test_transfers_live_first_then_cached_by_hash(db_session, chain, reader):
    chain.events = [make_event(1, 4900), make_event(2, 4800, sender=OTHER, receiver=OWNER)]
    reconciler = TokenReconciler(db_session, reader=reader)
    reconciler.transfers_for(OWNER, TOKEN_A, "development")

    chain.events = [make_event(3, 4950)]
    result = reconciler.transfers_for(OWNER, TOKEN_A, "development")

    assert [r.transaction_hash for r in result.records] == [
        make_event(3, 0)["transactionHash"],
        make_event(1, 0)["transactionHash"],
        make_event(2, 0)["transactionHash"],
    ]


def test_transfers_fall_back_to_cache(db_session, chain, reader):
    chain.events = [make_event(1, 4900)]
    reconciler = TokenReconciler(db_session, reader=reader)
    reconciler.transfers_for(OWNER, TOKEN_A, "development")
    chain.available = False

    result = reconciler.transfers_for(OWNER, TOKEN_A, "development")
    assert result.stale
    assert [r.block_number for r in result.records] == [4900]


def test_native_balance_formats_wei(db_session, chain, reader):
    chain.native[OWNER] = 1500000000000000000
    balance = TokenReconciler(db_session, reader=reader).native_balance(OWNER, "development")
    assert balance["balance"] == "1.5"
    assert balance["balance_raw"] == "1500000000000000000"
    assert balance["symbol"] == "ETH"
    assert balance["usd_value"] is None


def test_live_records_carry_stored_timestamp(db_session, reader):
    result = TokenReconciler(db_session, reader=reader).tokens_for(OWNER, "development")
    stored = ReconciliationCache(db_session).query_tokens(OWNER, "development")
    assert result.records[0].last_updated == stored[0].last_updated


def test_custom_token_keeps_zero_balance(db_session, reader):
    result = TokenReconciler(db_session, reader=reader).custom_token(OWNER, TOKEN_B, "development")

    assert result.live and result.persisted
    [record] = result.records
    assert (record.address, record.symbol, record.decimals, record.balance) == (TOKEN_B, "BET", 6, "0")
    assert record.last_updated is not None
    assert [t.address for t in ReconciliationCache(db_session).query_tokens(OWNER)] == [TOKEN_B]


def test_custom_token_metadata_fallbacks(db_session, chain, reader):
    chain.contracts[TOKEN_C] = {"balances": {OWNER: 42}}
    [record] = TokenReconciler(db_session, reader=reader).custom_token(OWNER, TOKEN_C, "development").records
    assert (record.name, record.symbol, record.decimals, record.balance) == ("Unknown Token", "???", 18, "42")


def test_custom_token_rejects_non_token_contract(db_session, reader):
    with pytest.raises(ValidationError):
        TokenReconciler(db_session, reader=reader).custom_token(OWNER, OTHER, "development")


def test_custom_token_falls_back_to_stored_row(db_session, chain, reader):
    reconciler = TokenReconciler(db_session, reader=reader)
    reconciler.custom_token(OWNER, TOKEN_B, "development")
    chain.available = False

    result = reconciler.custom_token(OWNER, TOKEN_B, "development")
    assert result.stale and not result.live
    assert [r.address for r in result.records] == [TOKEN_B]
