"""
Reconciliation of live chain reads with the persisted record set.

Policy: live data overrides, cached data only supplements keys the live read did not
return. When the chain is unreachable the cached view is served alone and flagged stale.
"""
from sqlalchemy.orm import Session
from decimal import Decimal
from typing import List, NamedTuple, Optional
import logging

from schemas.tokens import TokenRecord, TransferRecord
from services.cache import ReconciliationCache
from services.common import normalize_address, format_units
from services.config.config import NETWORK_CONFIGS, TRANSFER_HISTORY_LIMIT
from services.currency import fetch_usd_price
from services.errors import ChainUnavailableError
from services.logger import log_info
from services.networks.evm import ChainReader
from services.persistence import best_effort_write, all_ok

logger = logging.getLogger(__name__)


class Reconciliation(NamedTuple):
    records: list
    live: bool
    stale: bool
    persisted: bool


class TokenReconciler:

    def __init__(self, db: Session, reader: Optional[ChainReader] = None, cache: Optional[ReconciliationCache] = None):
        self.db = db
        self.reader = reader or ChainReader()
        self.cache = cache or ReconciliationCache(db)

    def tokens_for(self, owner: str, network: str) -> Reconciliation:
        owner = normalize_address(owner)
        try:
            live = self.reader.list_token_balances(owner, network)
        except ChainUnavailableError as e:
            logger.warning(f"Serving cached tokens for {owner} on {network}: {e.message}")
            return Reconciliation(self.cache.query_tokens(owner, network), live=False, stale=True, persisted=True)

        outcomes = [
            best_effort_write(self.db, "upsert_token", self.cache.upsert_token, record)
            for record in live
        ]
        live_keys = {record.address for record in live}
        supplement = [
            record for record in self._cached_tokens(owner, network)
            if record.address not in live_keys
        ]
        log_info(logger, "Reconciled tokens", owner=owner, network=network,
                 live=len(live), cached=len(supplement))
        return Reconciliation(self._stored(live, outcomes) + supplement, live=True, stale=False,
                              persisted=all_ok(outcomes))

    def _stored(self, live: List[TokenRecord], outcomes) -> List[TokenRecord]:
        """Live records as written, carrying the store's last_updated when the write went through"""
        return [outcome.value if outcome.ok else record for record, outcome in zip(live, outcomes)]

    def custom_token(self, owner: str, asset: str, network: str) -> Reconciliation:
        """
        One token contract looked up by address, zero balance included.
        Falls back to the stored row for that contract when the chain is unreachable.
        """
        owner = normalize_address(owner)
        asset = normalize_address(asset)
        try:
            record = self.reader.read_token(owner, asset, network)
        except ChainUnavailableError as e:
            logger.warning(f"Serving cached token {asset} for {owner} on {network}: {e.message}")
            cached = [t for t in self._cached_tokens(owner, network) if t.address == asset]
            return Reconciliation(cached, live=False, stale=True, persisted=True)

        outcome = best_effort_write(self.db, "upsert_token", self.cache.upsert_token, record)
        return Reconciliation(self._stored([record], [outcome]), live=True, stale=False, persisted=outcome.ok)

    def _cached_tokens(self, owner: str, network: str) -> List[TokenRecord]:
        try:
            return self.cache.query_tokens(owner, network)
        except Exception as e:
            logger.error(f"Cached tokens unavailable for {owner} on {network}: {str(e)}")
            self.db.rollback()
            return []

    def transfers_for(self, owner: str, asset: str, network: str) -> Reconciliation:
        owner = normalize_address(owner)
        asset = normalize_address(asset)
        filters = {"address": owner, "token_address": asset, "network": network}
        try:
            live = self.reader.list_transfers(owner, asset, network)
        except ChainUnavailableError as e:
            logger.warning(f"Serving cached transfers for {owner}/{asset} on {network}: {e.message}")
            cached, _ = self.cache.query_transfers(filters, page=1, page_size=TRANSFER_HISTORY_LIMIT)
            return Reconciliation(cached, live=False, stale=True, persisted=True)

        outcomes = [
            best_effort_write(self.db, "upsert_transfer", self.cache.upsert_transfer, record)
            for record in live
        ]
        live_hashes = {record.transaction_hash for record in live}
        supplement = [
            record for record in self._cached_transfers(filters)
            if record.transaction_hash not in live_hashes
        ]
        return Reconciliation(live + supplement, live=True, stale=False, persisted=all_ok(outcomes))

    def _cached_transfers(self, filters: dict) -> List[TransferRecord]:
        try:
            cached, _ = self.cache.query_transfers(filters, page=1, page_size=TRANSFER_HISTORY_LIMIT)
            return cached
        except Exception as e:
            logger.error(f"Cached transfers unavailable for {filters}: {str(e)}")
            self.db.rollback()
            return []

    def native_balance(self, owner: str, network: str) -> dict:
        """Native coin balance straight from the chain; there is no cached fallback"""
        wei = self.reader.get_balance(owner, network)
        config = NETWORK_CONFIGS[network]
        balance = Decimal(wei) / Decimal(10 ** 18)
        usd_value = None
        if config["price_id"]:
            price = fetch_usd_price(config["price_id"])
            if price is not None:
                usd_value = round(float(balance) * price, 2)
        return {
            "address": normalize_address(owner),
            "network": network,
            "symbol": config["native_symbol"],
            "balance_raw": str(wei),
            "balance": format_units(str(wei), 18),
            "usd_value": usd_value,
        }
