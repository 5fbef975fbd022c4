"""Scriptable stand-ins for a chain node"""
from typing import Dict, List, Optional

from services.errors import ChainUnavailableError
from services.networks.evm import ChainProvider

OWNER = "0x1111111111111111111111111111111111111111"
OTHER = "0x2222222222222222222222222222222222222222"
TOKEN_A = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
TOKEN_B = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
TOKEN_C = "0xcccccccccccccccccccccccccccccccccccccccc"


class FakeChainProvider(ChainProvider):
    """
    Chain node double keyed by lower-case addresses.

    contracts: {address: {"name", "symbol", "decimals", "balances": {owner: int}}}
    Missing metadata keys make the matching call revert.
    """

    def __init__(self, contracts: Optional[Dict[str, dict]] = None, events: Optional[List[dict]] = None,
                 native: Optional[Dict[str, int]] = None, head: int = 5000, available: bool = True):
        self.contracts = contracts or {}
        self.events = events or []
        self.native = native or {}
        self.head = head
        self.available = available
        self.unavailable_contracts = set()
        self.unavailable_sides = set()

    def _check(self):
        if not self.available:
            raise ChainUnavailableError("RPC endpoint for network 'development' is temporarily unavailable.")

    def get_balance(self, address: str) -> int:
        self._check()
        return self.native.get(address.lower(), 0)

    def call(self, contract: str, method: str, args=()):
        self._check()
        contract = contract.lower()
        if contract in self.unavailable_contracts:
            raise ChainUnavailableError(f"{contract} timed out")
        if contract not in self.contracts:
            raise ValueError("execution reverted")
        token = self.contracts[contract]
        if method == "balanceOf":
            return token.get("balances", {}).get(args[0].lower(), 0)
        if method not in token:
            raise ValueError(f"{method}() reverted")
        return token[method]

    def get_events(self, contract: str, argument_filters: dict, from_block: int) -> List[dict]:
        self._check()
        side, address = next(iter(argument_filters.items()))
        if side in self.unavailable_sides:
            raise ChainUnavailableError(f"{side} query timed out")
        return [
            {
                "from": event["from"],
                "to": event["to"],
                "value": event["value"],
                "transactionHash": event["transactionHash"],
                "blockNumber": event["blockNumber"],
            }
            for event in self.events
            if event["token"].lower() == contract.lower()
            and event[side].lower() == address.lower()
            and event["blockNumber"] >= from_block
        ]

    def get_block(self, number: int) -> dict:
        self._check()
        return {"timestamp": 1700000000 + number}

    def block_number(self) -> int:
        self._check()
        return self.head

    def candidate_assets(self, network: str) -> List[dict]:
        self._check()
        return [{"address": address} for address in self.contracts]


def make_event(tx: int, block: int, sender: str = OWNER, receiver: str = OTHER,
               value: int = 1000, token: str = TOKEN_A) -> dict:
    return {
        "token": token,
        "from": sender,
        "to": receiver,
        "value": value,
        "transactionHash": "0x" + format(tx, "064x"),
        "blockNumber": block,
    }


