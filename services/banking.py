"""
Banking gateway.

validate -> (simulate | call provider) -> mask -> persist -> audit

The balance provider for each environment is chosen once when the gateway is
built: ``development`` answers from a seed table, ``production`` talks to the
real banking API through an encrypted envelope. Raw identifiers never reach
the store or the logs, only their masks do.
"""
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
import json
import logging
import random
import time
import requests

from models import BankingInfo
from schemas.activities import ActivityRecord
from schemas.banking import BankingRecord
from services.audit import AuditTrail
from services.common import next_timestamp, normalize_address
from services.config.config import (
    BANKING_API,
    BANKING_METHODS,
    BANKING_MOCK_LATENCY_SECONDS,
    BANKING_TIMEOUT_SECONDS,
    ENVIRONMENTS,
)
from services.errors import ProviderError, ValidationError
from services.identifiers import validate, mask, MASK_PLACEHOLDER
from services.logger import log_info
from services.persistence import best_effort_write
from services.currency import RateSource, convert_currency
from services.secure_channel import SecureChannel
from services.session import SessionContext, generate_session_token

logger = logging.getLogger(__name__)

FETCH_BALANCE = "fetch_balance"

# Development accounts keyed by "method:identifier"
MOCK_ACCOUNTS = {
    "upi:user@bank": {"name": "John Doe", "balance": Decimal("25000.75"), "currency": "INR"},
    "account:12345678901": {"name": "Jane Smith", "balance": Decimal("5430.25"), "currency": "USD"},
    "card:4111111111111111": {"name": "Test User", "balance": Decimal("2150.50"), "currency": "EUR"},
}


class BalanceProvider:
    environment = None

    def fetch(self, method: str, identifier: str) -> dict:
        """Return {"name", "balance", "currency"} for a validated identifier"""
        raise NotImplementedError

    def recognizes(self, method: str, identifier: str) -> bool:
        """Fixture identifiers the provider accepts even when they fail the format rules"""
        return False

    def forward_audit(self, activity: ActivityRecord):
        """Mirror an activity to the upstream audit log, where one exists"""


class MockBalanceProvider(BalanceProvider):
    environment = "development"

    def __init__(self, seed: Dict[str, dict] = None, latency: float = BANKING_MOCK_LATENCY_SECONDS):
        self.seed = MOCK_ACCOUNTS if seed is None else seed
        self.latency = latency

    def recognizes(self, method: str, identifier: str) -> bool:
        return f"{method}:{identifier}" in self.seed

    def fetch(self, method: str, identifier: str) -> dict:
        if self.latency > 0:
            time.sleep(self.latency)
        account = self.seed.get(f"{method}:{identifier}")
        if account:
            return dict(account)
        return {
            "name": "Demo User",
            "balance": Decimal(str(round(random.uniform(0, 10000), 2))),
            "currency": "USD",
        }


class HttpBalanceProvider(BalanceProvider):
    environment = "production"

    def __init__(self, config: dict = None, timeout: int = BANKING_TIMEOUT_SECONDS):
        self.config = config or BANKING_API["production"]
        self.timeout = timeout
        self.channel = SecureChannel(self.config["encryption_key"])

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config['api_key']}",
            "X-Client-Timestamp": datetime.utcnow().isoformat() + "Z",
        }

    def fetch(self, method: str, identifier: str) -> dict:
        envelope = self.channel.encrypt(json.dumps({"method": method, "identifier": identifier}))
        try:
            response = requests.post(
                f"{self.config['base_url']}/balance",
                json={"encryptedData": envelope},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Banking API unreachable: {type(e).__name__}")
            raise ProviderError("Banking API request failed")

        if not response.ok:
            raise ProviderError(f"Banking API request failed with status {response.status_code}")

        try:
            encrypted = response.json().get("encryptedData")
        except (ValueError, AttributeError):
            raise ProviderError("Banking API returned a malformed response")
        if not isinstance(encrypted, str):
            raise ProviderError("Banking API response carried no encrypted payload")

        try:
            payload = json.loads(self.channel.decrypt(encrypted))
            data = payload.get("data", payload)
            return {
                "name": data["name"],
                "balance": Decimal(str(data["balance"])),
                "currency": data["currency"],
            }
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"Banking API payload could not be read: {type(e).__name__}")

    def forward_audit(self, activity: ActivityRecord):
        response = requests.post(
            f"{self.config['base_url']}/audit-log",
            json=activity.model_dump(mode="json"),
            headers=self._headers(),
            timeout=self.timeout,
        )
        response.raise_for_status()


def default_providers() -> Dict[str, BalanceProvider]:
    return {
        "development": MockBalanceProvider(),
        "production": HttpBalanceProvider(),
    }


class BankingGateway:

    def __init__(self, db: Session, providers: Optional[Dict[str, BalanceProvider]] = None,
                 audit: Optional[AuditTrail] = None, rate_source: Optional[RateSource] = None):
        self.db = db
        self.providers = providers if providers is not None else default_providers()
        self.audit = audit or AuditTrail(db)
        self.rate_source = rate_source or RateSource()

    def _record_activity(self, environment: str, method: str, masked: str, session: SessionContext,
                         status: str, details: dict = None) -> bool:
        activity = ActivityRecord(
            action=FETCH_BALANCE,
            method=method,
            masked_identifier=masked,
            environment=environment,
            session_id=session.session_id,
            ip_address=session.ip_address,
            user_agent=session.user_agent,
            status=status,
            details=details,
        )
        outcome = best_effort_write(self.db, "append_activity", self.audit.append, activity)
        provider = self.providers.get(environment)
        if environment == "production" and provider is not None:
            best_effort_write(None, "forward_audit", provider.forward_audit, outcome.value or activity)
        return outcome.ok

    def _find_info(self, user: str, method: str, masked: str) -> Optional[BankingInfo]:
        return self.db.query(BankingInfo).filter(
            BankingInfo.user == user,
            BankingInfo.method == method,
            BankingInfo.masked_identifier == masked,
        ).first()

    def _apply_info(self, row: BankingInfo, record: BankingRecord):
        row.name = record.name
        row.balance = record.balance
        row.currency = record.currency
        row.session_id = record.session_id
        row.environment = record.environment
        row.last_updated = next_timestamp(row.last_updated)

    def _upsert_info(self, record: BankingRecord) -> BankingInfo:
        row = self._find_info(record.user, record.method, record.masked_identifier)
        if row is None:
            row = BankingInfo(user=record.user, method=record.method, masked_identifier=record.masked_identifier)
            self._apply_info(row, record)
            try:
                with self.db.begin_nested():
                    self.db.add(row)
                return row
            except IntegrityError:
                row = self._find_info(record.user, record.method, record.masked_identifier)
                if row is None:
                    raise
        self._apply_info(row, record)
        self.db.flush()
        return row

    def fetch_balance(self, method: str, identifier: str, environment: str = "development",
                      session: Optional[SessionContext] = None) -> BankingRecord:
        """
        Resolve the balance behind a financial identifier.

        Raises ValidationError for a malformed identifier and ProviderError when the
        production provider fails. Persistence and audit failures are logged only;
        ``persisted`` on the result tells whether they succeeded.
        """
        session = session or SessionContext.new()
        if environment not in ENVIRONMENTS:
            raise ValidationError(f"Unsupported environment '{environment}'")

        provider = self.providers[environment]
        if not (validate(method, identifier) or provider.recognizes(method, identifier)):
            self._record_activity(environment, method, MASK_PLACEHOLDER, session, "failure",
                                  {"error": "Invalid banking information format"})
            raise ValidationError("Invalid banking information format")

        masked = mask(method, identifier)
        try:
            data = provider.fetch(method, identifier)
        except ProviderError as e:
            self._record_activity(environment, method, masked, session, "failure", {"error": e.message})
            raise
        except Exception as e:
            self._record_activity(environment, method, masked, session, "failure", {"error": str(e)})
            raise ProviderError(f"Banking provider failed: {type(e).__name__}")

        record = BankingRecord(
            user=session.user,
            method=method,
            masked_identifier=masked,
            name=data["name"],
            balance=data["balance"],
            currency=data["currency"],
            session_id=session.session_id,
            environment=environment,
            last_updated=datetime.utcnow(),
        )
        info = best_effort_write(self.db, "upsert_banking_info", self._upsert_info, record)
        if info.ok:
            record.last_updated = info.value.last_updated
        audited = self._record_activity(environment, method, masked, session, "success")
        record.persisted = info.ok and audited

        log_info(logger, "Fetched banking balance", method=method, identifier=masked,
                 environment=environment, persisted=record.persisted)
        return record

    def list_banking_info(self, user: str, method: Optional[str] = None) -> List[BankingRecord]:
        query = self.db.query(BankingInfo).filter(BankingInfo.user == normalize_address(user))
        if method:
            if method not in BANKING_METHODS:
                raise ValidationError(f"Unsupported banking method '{method}'")
            query = query.filter(BankingInfo.method == method)
        return [BankingRecord.model_validate(row) for row in query.order_by(BankingInfo.last_updated.desc()).all()]

    def convert_currency(self, amount, from_currency: str, to_currency: str) -> dict:
        return convert_currency(amount, from_currency, to_currency, source=self.rate_source)
