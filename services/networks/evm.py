from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Dict, List, Optional
from urllib.parse import urlparse, urlunparse
import logging
import os
import requests

from schemas.tokens import TokenRecord, TransferRecord
from services.common import normalize_address
from services.config.config import (
    NETWORK_CONFIGS,
    COMMON_TOKENS,
    RPC_TIMEOUT_SECONDS,
    CHAIN_MAX_WORKERS,
    DEV_CANDIDATE_ACCOUNTS,
    TRANSFER_LOOKBACK_BLOCKS,
    TRANSFER_HISTORY_LIMIT,
)
from services.errors import ChainUnavailableError, ValidationError

logger = logging.getLogger(__name__)

ERC20_ABI = [
    {"inputs": [], "name": "name", "outputs": [{"internalType": "string", "name": "", "type": "string"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "symbol", "outputs": [{"internalType": "string", "name": "", "type": "string"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "decimals", "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"internalType": "address", "name": "account", "type": "address"}], "name": "balanceOf", "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"anonymous": False, "inputs": [
        {"indexed": True, "internalType": "address", "name": "from", "type": "address"},
        {"indexed": True, "internalType": "address", "name": "to", "type": "address"},
        {"indexed": False, "internalType": "uint256", "name": "value", "type": "uint256"}],
     "name": "Transfer", "type": "event"},
]

# Fallbacks when a token contract does not answer a metadata call
UNKNOWN_NAME = "Unknown Token"
UNKNOWN_SYMBOL = "???"
DEFAULT_DECIMALS = 18

# Chains whose block headers carry oversized extraData
POA_NETWORKS = ("polygon", "bsc")

# Errors meaning "the endpoint is unreachable", as opposed to "this call reverted"
TRANSPORT_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.HTTPError,
    ConnectionError,
    TimeoutError,
)


def _proxied(url: str, user: str, password: str) -> str:
    parsed = urlparse(url)
    return urlunparse((
        parsed.scheme,
        f"{user}:{password}@{parsed.netloc.split('@')[-1]}",
        parsed.path, parsed.params, parsed.query, parsed.fragment
    ))


def _request_kwargs() -> dict:
    """
    HTTP options for the RPC client.
    Proxies are bypassed unless HTTP(S)_PROXY is configured explicitly.
    """
    request_kwargs = {
        'timeout': RPC_TIMEOUT_SECONDS,
        'proxies': {'http': None, 'https': None},
    }
    http_proxy = os.getenv('HTTP_PROXY') or os.getenv('http_proxy')
    https_proxy = os.getenv('HTTPS_PROXY') or os.getenv('https_proxy')
    if http_proxy or https_proxy:
        request_kwargs['proxies'] = {}
        proxy_user = os.getenv('PROXY_USER') or os.getenv('proxy_user')
        proxy_pass = os.getenv('PROXY_PASS') or os.getenv('proxy_pass')
        for scheme, proxy in (('http', http_proxy), ('https', https_proxy)):
            if not proxy:
                continue
            if proxy_user and proxy_pass:
                proxy = _proxied(proxy, proxy_user, proxy_pass)
            request_kwargs['proxies'][scheme] = proxy
    return request_kwargs


def _get_w3(network: str) -> Web3:
    rpc = NETWORK_CONFIGS[network]["https_rpc_url"]
    if not rpc:
        raise ChainUnavailableError(
            f"RPC endpoint not configured for network '{network}'. Please set {network.upper()}_RPC_URL in your .env file."
        )
    if not rpc.startswith(("http://", "https://")):
        raise ChainUnavailableError(
            f"Invalid RPC URL format for network '{network}': {rpc}. URL must start with http:// or https://"
        )
    w3 = Web3(Web3.HTTPProvider(rpc, request_kwargs=_request_kwargs()))
    if network in POA_NETWORKS:
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    return w3


class ChainProvider:
    """
    Narrow capability interface the reader talks to.
    Implementations raise ChainUnavailableError when the endpoint cannot be reached.
    """

    def get_balance(self, address: str) -> int:
        raise NotImplementedError

    def call(self, contract: str, method: str, args=()):
        raise NotImplementedError

    def get_events(self, contract: str, argument_filters: dict, from_block: int) -> List[dict]:
        raise NotImplementedError

    def get_block(self, number: int) -> dict:
        raise NotImplementedError

    def block_number(self) -> int:
        raise NotImplementedError

    def candidate_assets(self, network: str) -> List[dict]:
        raise NotImplementedError


class Web3ChainProvider(ChainProvider):

    def __init__(self, network: str):
        self.network = network
        self._w3 = None

    @property
    def w3(self) -> Web3:
        if self._w3 is None:
            self._w3 = _get_w3(self.network)
        return self._w3

    def _guard(self, fn: Callable, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except TRANSPORT_ERRORS as e:
            logger.error(f"RPC error for network '{self.network}': {str(e)}")
            raise ChainUnavailableError(
                f"RPC endpoint for network '{self.network}' is temporarily unavailable."
            )

    def _contract(self, contract: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(contract), abi=ERC20_ABI)

    def get_balance(self, address: str) -> int:
        return int(self._guard(self.w3.eth.get_balance, Web3.to_checksum_address(address)))

    def call(self, contract: str, method: str, args=()):
        fn = getattr(self._contract(contract).functions, method)(*args)
        return self._guard(fn.call)

    def get_events(self, contract: str, argument_filters: dict, from_block: int) -> List[dict]:
        event = self._contract(contract).events.Transfer()
        logs = self._guard(event.get_logs, argument_filters=argument_filters, from_block=from_block)
        return [
            {
                "from": log["args"]["from"],
                "to": log["args"]["to"],
                "value": int(log["args"]["value"]),
                "transactionHash": Web3.to_hex(log["transactionHash"]),
                "blockNumber": int(log["blockNumber"]),
            }
            for log in logs
        ]

    def get_block(self, number: int) -> dict:
        block = self._guard(self.w3.eth.get_block, number)
        return {"timestamp": int(block["timestamp"])}

    def block_number(self) -> int:
        return int(self._guard(lambda: self.w3.eth.block_number))


class RpcChainProvider(Web3ChainProvider):
    """Public JSON-RPC networks; checks the network's well-known token list"""

    def candidate_assets(self, network: str) -> List[dict]:
        return list(COMMON_TOKENS.get(NETWORK_CONFIGS[network]["chainId"], []))


class DevChainProvider(Web3ChainProvider):
    """Local Ganache node; the first node accounts double as token contract candidates"""

    def candidate_assets(self, network: str) -> List[dict]:
        accounts = self._guard(lambda: self.w3.eth.accounts)
        return [{"address": account} for account in accounts[:DEV_CANDIDATE_ACCOUNTS]]


_providers: Dict[str, ChainProvider] = {}


def get_chain_provider(network: str) -> ChainProvider:
    if network not in NETWORK_CONFIGS:
        raise ValueError(f"Unsupported network '{network}'. Supported networks: {list(NETWORK_CONFIGS.keys())}")
    if network not in _providers:
        provider_cls = DevChainProvider if network == "development" else RpcChainProvider
        _providers[network] = provider_cls(network)
    return _providers[network]


class ChainReader:
    """Best-effort reads of balances and transfer events from a live chain"""

    def __init__(self, provider_factory: Callable[[str], ChainProvider] = get_chain_provider,
                 max_workers: int = CHAIN_MAX_WORKERS):
        self.provider_factory = provider_factory
        self.max_workers = max(1, max_workers)

    def _head(self, provider: ChainProvider) -> int:
        try:
            return provider.block_number()
        except ChainUnavailableError:
            raise
        except Exception as e:
            raise ChainUnavailableError(f"Chain head could not be read: {str(e)}")

    def get_balance(self, address: str, network: str) -> int:
        provider = self.provider_factory(network)
        try:
            return provider.get_balance(Web3.to_checksum_address(address))
        except ChainUnavailableError:
            raise
        except Exception as e:
            raise ChainUnavailableError(f"Native balance could not be read: {str(e)}")

    def _read_metadata(self, provider: ChainProvider, asset: dict) -> dict:
        address = asset["address"]
        metadata = {}
        for field, fallback in (
            ("name", asset.get("name") or UNKNOWN_NAME),
            ("symbol", asset.get("symbol") or UNKNOWN_SYMBOL),
            ("decimals", DEFAULT_DECIMALS),
        ):
            try:
                metadata[field] = provider.call(address, field)
            except Exception as e:
                logger.debug(f"{field}() failed for {address}: {str(e)}")
                metadata[field] = fallback
        try:
            metadata["decimals"] = int(metadata["decimals"])
        except (TypeError, ValueError):
            metadata["decimals"] = DEFAULT_DECIMALS
        return metadata

    def _read_asset(self, provider: ChainProvider, owner: str, asset: dict, network: str,
                     keep_zero: bool = False) -> Optional[TokenRecord]:
        address = asset["address"]
        try:
            balance = int(provider.call(address, "balanceOf", (Web3.to_checksum_address(owner),)))
        except ChainUnavailableError:
            raise
        except Exception as e:
            # Not a token contract or not ERC20 compliant
            logger.debug(f"balanceOf failed for {address}, treating as no balance: {str(e)}")
            return None
        if balance <= 0 and not keep_zero:
            return None
        metadata = self._read_metadata(provider, asset)
        return TokenRecord(
            address=address,
            name=metadata["name"],
            symbol=metadata["symbol"],
            decimals=metadata["decimals"],
            balance=str(balance),
            owner=owner,
            network=network,
            chain_id=str(NETWORK_CONFIGS[network]["chainId"]),
        )

    def list_token_balances(self, address: str, network: str, candidate_assets: Optional[List[dict]] = None) -> List[TokenRecord]:
        """
        Check candidate token contracts for a balance held by ``address``.

        Each asset is read independently on a bounded pool; zero balances are dropped.
        Raises ChainUnavailableError when the chain cannot be reached at all.
        """
        provider = self.provider_factory(network)
        self._head(provider)
        if candidate_assets is None:
            candidate_assets = provider.candidate_assets(network)
        if not candidate_assets:
            return []

        owner = normalize_address(address)
        results: List[TokenRecord] = []
        unavailable = 0
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(self._read_asset, provider, owner, asset, network) for asset in candidate_assets]
            for asset, future in zip(candidate_assets, futures):
                try:
                    record = future.result()
                except ChainUnavailableError as e:
                    unavailable += 1
                    logger.warning(f"Asset {asset['address']} on {network} skipped: {e.message}")
                    continue
                except Exception as e:
                    logger.warning(f"Asset {asset['address']} on {network} skipped: {str(e)}")
                    continue
                if record is not None:
                    results.append(record)

        if unavailable == len(candidate_assets):
            raise ChainUnavailableError(f"No asset on '{network}' could be read; endpoint unavailable")
        return results

    def read_token(self, address: str, asset: str, network: str) -> TokenRecord:
        """
        Read a single token contract for ``address``, keeping a zero balance.
        Raises ValidationError when the contract does not answer balanceOf.
        """
        provider = self.provider_factory(network)
        self._head(provider)
        record = self._read_asset(provider, normalize_address(address), {"address": asset}, network, keep_zero=True)
        if record is None:
            raise ValidationError(f"Token {asset} is not a readable ERC20 contract on '{network}'")
        return record

    def _events(self, provider: ChainProvider, asset: str, argument_filters: dict, from_block: int) -> List[dict]:
        try:
            return provider.get_events(asset, argument_filters, from_block)
        except ChainUnavailableError:
            raise
        except Exception as e:
            logger.debug(f"Transfer events unavailable for {asset}: {str(e)}")
            return []

    def _block_time(self, provider: ChainProvider, block_number: int) -> datetime:
        try:
            return datetime.utcfromtimestamp(provider.get_block(block_number)["timestamp"])
        except Exception as e:
            logger.debug(f"Block {block_number} timestamp unavailable: {str(e)}")
            return datetime.utcnow()

    def list_transfers(self, address: str, asset: str, network: str,
                       lookback_blocks: int = TRANSFER_LOOKBACK_BLOCKS,
                       limit: int = TRANSFER_HISTORY_LIMIT) -> List[TransferRecord]:
        """
        Transfer events of ``asset`` where ``address`` is sender or receiver.

        Looks back ``lookback_blocks`` from the head (never below block 0), merges both
        sides, drops duplicate hashes and keeps the ``limit`` most recent by block.
        """
        provider = self.provider_factory(network)
        head = self._head(provider)
        from_block = max(0, head - lookback_blocks)
        owner = Web3.to_checksum_address(address)
        token_address = Web3.to_checksum_address(asset)

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            sides = [
                pool.submit(self._events, provider, token_address, {"from": owner}, from_block),
                pool.submit(self._events, provider, token_address, {"to": owner}, from_block),
            ]
            metadata_future = pool.submit(self._read_metadata, provider, {"address": token_address})

            events = []
            failed_sides = 0
            for side in sides:
                try:
                    events.extend(side.result())
                except ChainUnavailableError as e:
                    failed_sides += 1
                    logger.warning(f"Transfer query for {token_address} on {network} failed: {e.message}")
            if failed_sides == len(sides):
                raise ChainUnavailableError(f"Transfer events on '{network}' could not be read")

            unique = {}
            for event in events:
                unique.setdefault(event["transactionHash"], event)
            recent = sorted(unique.values(), key=lambda e: e["blockNumber"], reverse=True)[:limit]

            block_numbers = sorted({e["blockNumber"] for e in recent})
            times = dict(zip(block_numbers, pool.map(lambda n: self._block_time(provider, n), block_numbers)))
            metadata = metadata_future.result()

        chain_id = str(NETWORK_CONFIGS[network]["chainId"])
        return [
            TransferRecord(
                token_address=token_address,
                token_symbol=metadata["symbol"],
                token_name=metadata["name"],
                from_address=event["from"],
                to_address=event["to"],
                amount=str(event["value"]),
                decimals=metadata["decimals"],
                transaction_hash=event["transactionHash"],
                block_number=event["blockNumber"],
                network=network,
                chain_id=chain_id,
                timestamp=times[event["blockNumber"]],
            )
            for event in recent
        ]
