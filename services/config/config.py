# config.py
import os
from dotenv import load_dotenv

load_dotenv()


def _build_rpc_url(url_env: str, default: str = None, project_id_env: str = "INFURA_PROJECT_ID") -> str:
    """Build an RPC URL from the environment.

    Infura-style base URLs ending in ``/v3`` get the project id appended.
    Returns None when nothing is configured.
    """
    base_url = os.getenv(url_env) or default
    if not base_url:
        return None
    base_url = base_url.strip().rstrip('/')
    project_id = os.getenv(project_id_env)
    if base_url.endswith("/v3"):
        if not project_id:
            return None
        return f"{base_url}/{project_id}"
    return base_url


NETWORKS = ("development", "mainnet", "polygon", "bsc")
ENVIRONMENTS = ("development", "production")
BANKING_METHODS = ("upi", "account", "card")

NETWORK_CONFIGS = {
    "development": {
        "name": "Ganache",
        "https_rpc_url": _build_rpc_url("DEVELOPMENT_RPC_URL", "http://127.0.0.1:7545"),
        "chainId": 1337,
        "native_symbol": "ETH",
        "price_id": None,
    },
    "mainnet": {
        "name": "Ethereum Mainnet",
        "https_rpc_url": _build_rpc_url("MAINNET_RPC_URL", "https://mainnet.infura.io/v3"),
        "chainId": 1,
        "native_symbol": "ETH",
        "price_id": "ethereum",
    },
    "polygon": {
        "name": "Polygon Mainnet",
        "https_rpc_url": _build_rpc_url("POLYGON_RPC_URL", "https://polygon-rpc.com"),
        "chainId": 137,
        "native_symbol": "MATIC",
        "price_id": "matic-network",
    },
    "bsc": {
        "name": "BNB Smart Chain",
        "https_rpc_url": _build_rpc_url("BSC_RPC_URL", "https://bsc-dataseed.binance.org"),
        "chainId": 56,
        "native_symbol": "BNB",
        "price_id": "binancecoin",
    },
}

# Well-known ERC-20 contracts checked on the public networks, keyed by chain id
COMMON_TOKENS = {
    1: [
        {"address": "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "symbol": "WETH", "name": "Wrapped Ether"},
        {"address": "0xdAC17F958D2ee523a2206206994597C13D831ec7", "symbol": "USDT", "name": "Tether USD"},
        {"address": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "symbol": "USDC", "name": "USD Coin"},
        {"address": "0x6B175474E89094C44Da98b954EedeAC495271d0F", "symbol": "DAI", "name": "Dai Stablecoin"},
        {"address": "0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984", "symbol": "UNI", "name": "Uniswap"},
        {"address": "0x514910771AF9Ca656af840dff83E8264EcF986CA", "symbol": "LINK", "name": "ChainLink Token"},
    ],
    137: [
        {"address": "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619", "symbol": "WETH", "name": "Wrapped Ether"},
        {"address": "0xc2132D05D31c914a87C6611C10748AEb04B58e8F", "symbol": "USDT", "name": "Tether USD"},
        {"address": "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174", "symbol": "USDC", "name": "USD Coin"},
    ],
    56: [
        {"address": "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c", "symbol": "WBNB", "name": "Wrapped BNB"},
        {"address": "0xe9e7CEA3DedcA5984780Bafc599bD69ADd087D56", "symbol": "BUSD", "name": "BUSD Token"},
        {"address": "0x55d398326f99059fF775485246999027B3197955", "symbol": "USDT", "name": "Tether USD"},
    ],
}

# Chain access
RPC_TIMEOUT_SECONDS = int(os.getenv("RPC_TIMEOUT_SECONDS", "30"))
CHAIN_MAX_WORKERS = int(os.getenv("CHAIN_MAX_WORKERS", "4"))
DEV_CANDIDATE_ACCOUNTS = int(os.getenv("DEV_CANDIDATE_ACCOUNTS", "5"))
TRANSFER_LOOKBACK_BLOCKS = int(os.getenv("TRANSFER_LOOKBACK_BLOCKS", "1000"))
TRANSFER_HISTORY_LIMIT = int(os.getenv("TRANSFER_HISTORY_LIMIT", "20"))

# Banking provider, one block per environment
BANKING_API = {
    "development": {
        "base_url": os.getenv("BANKING_DEV_BASE_URL", "http://localhost:3001/api/banking"),
        "api_key": os.getenv("BANKING_DEV_API_KEY", "dev-api-key-123"),
        "encryption_key": os.getenv("BANKING_DEV_ENCRYPTION_KEY", "dev-encryption-key-456"),
    },
    "production": {
        "base_url": os.getenv("BANKING_PROD_BASE_URL", "https://api.securebanking.example.com/v1"),
        "api_key": os.getenv("BANKING_PROD_API_KEY", ""),
        "encryption_key": os.getenv("BANKING_PROD_ENCRYPTION_KEY", ""),
    },
}
BANKING_KEY_SALT = os.getenv("BANKING_KEY_SALT", "banking-secure-channel")
BANKING_KEY_ITERATIONS = int(os.getenv("BANKING_KEY_ITERATIONS", "100000"))
BANKING_MOCK_LATENCY_SECONDS = float(os.getenv("BANKING_MOCK_LATENCY_SECONDS", "0.8"))
BANKING_TIMEOUT_SECONDS = int(os.getenv("BANKING_TIMEOUT_SECONDS", "15"))

# Rates and prices
CURRENCY_API_URL = os.getenv("CURRENCY_API_URL", "https://api.exchangerate-api.com/v4/latest")
CURRENCY_TIMEOUT_SECONDS = int(os.getenv("CURRENCY_TIMEOUT_SECONDS", "10"))
PRICE_API_URL = os.getenv("PRICE_API_URL", "https://api.coingecko.com/api/v3/simple/price")

# Audit retention; 0 disables the scheduled cleanup
ACTIVITY_RETENTION_DAYS = int(os.getenv("ACTIVITY_RETENTION_DAYS", "90"))
RETENTION_JOB_PERIOD_SECONDS = int(os.getenv("RETENTION_JOB_PERIOD_SECONDS", "3600"))

# Logging
USE_GCLOUD_LOGGING = os.getenv("USE_GCLOUD_LOGGING", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
