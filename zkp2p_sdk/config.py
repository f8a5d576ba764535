"""
Network configuration and environment-driven client settings.
"""
import importlib.resources
import json
import logging
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

PRODUCTION = "production"
STAGING = "staging"
BASE_CHAIN_ID = 8453
BASE_SEPOLIA_CHAIN_ID = 84532
DEFAULT_API_TIMEOUT_MS = 15000


class NetworkConfig:
    """Deployed contract addresses and endpoints for supported networks."""

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        """
        Load the bundled networks.json, once per process.

        Returns:
            Mapping of network name to its configuration
        """
        if cls._networks_cache is None:
            text = importlib.resources.files("zkp2p_sdk").joinpath("networks.json").read_text(encoding="utf-8")
            cls._networks_cache = json.loads(text)
            logger.debug(f"Loaded {len(cls._networks_cache)} network configurations")
        return cls._networks_cache

    @classmethod
    def get_network(cls, network: str) -> Dict[str, Any]:
        networks = cls.load_networks()
        if network not in networks:
            raise ValidationError(
                f"Unknown network: {network}. Available: {', '.join(sorted(networks))}",
                field="network",
            )
        return networks[network]

    @classmethod
    def get_chain_id(cls, network: str) -> int:
        return int(cls.get_network(network)["chainId"])

    @classmethod
    def get_rpc_url(cls, network: str, override: Optional[str] = None) -> str:
        return override or cls.get_network(network)["rpc"]

    @classmethod
    def network_key(cls, chain_id: int, env: str = PRODUCTION) -> str:
        """Name of the network entry for a chain and runtime environment."""
        if chain_id == BASE_SEPOLIA_CHAIN_ID:
            return "base_sepolia"
        if chain_id != BASE_CHAIN_ID:
            raise ValidationError(f"Unsupported chain id: {chain_id}", field="chain_id")
        return "base_staging" if env == STAGING else "base"

    @classmethod
    def for_chain(cls, chain_id: int, env: str = PRODUCTION) -> Dict[str, Any]:
        if env not in (PRODUCTION, STAGING):
            raise ValidationError(f"env must be '{PRODUCTION}' or '{STAGING}', got {env!r}", field="env")
        return cls.get_network(cls.network_key(chain_id, env))


class ClientSettings(BaseModel):
    """Client construction settings, usually read from ZKP2P_* variables."""
    rpc_url: Optional[str] = None
    base_api_url: Optional[str] = None
    api_key: Optional[str] = None
    authorization_token: Optional[str] = None
    private_key: Optional[str] = Field(None, repr=False)
    chain_id: int = BASE_CHAIN_ID
    env: str = PRODUCTION
    api_timeout_ms: int = DEFAULT_API_TIMEOUT_MS

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "ClientSettings":
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {
            "rpc_url": environ.get("ZKP2P_RPC_URL"),
            "base_api_url": environ.get("ZKP2P_API_URL"),
            "api_key": environ.get("ZKP2P_API_KEY"),
            "authorization_token": environ.get("ZKP2P_AUTH_TOKEN"),
            "private_key": environ.get("ZKP2P_PRIVATE_KEY"),
        }
        for key, var in (("chain_id", "ZKP2P_CHAIN_ID"), ("env", "ZKP2P_ENV"), ("api_timeout_ms", "ZKP2P_API_TIMEOUT_MS")):
            if environ.get(var):
                values[key] = environ[var]
        return cls(**values)

    def network(self) -> Dict[str, Any]:
        return NetworkConfig.for_chain(self.chain_id, self.env)
