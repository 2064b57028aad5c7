"""
Blockchain Access Layer Configuration
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .types import FabricGatewayConfig, EthereumConfig


class BalSettings(BaseSettings):
    """Settings for the blockchain access layer, read from BAL_* environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="BAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Hyperledger Fabric gateway
    fabric_blockchain_id: str = "fabric-0"
    fabric_connection_profile: Optional[str] = None
    fabric_org_name: str = "Org1"
    fabric_user_name: str = "Admin"
    fabric_wallet_path: Optional[str] = None
    fabric_channels: str = ""  # comma separated
    fabric_peer_name: Optional[str] = None

    # Gateway management
    gateway_connect_timeout: float = 30.0
    gateway_connect_attempts: int = 3
    health_check_interval: float = 60.0

    # Ethereum
    ethereum_rpc_url: str = "http://localhost:7545"
    ethereum_private_key: Optional[str] = None
    ethereum_chain_id: Optional[int] = None
    ethereum_poll_interval: float = 15.0
    ethereum_max_confirmations: int = 12
    ethereum_orphan_check_depth: int = 12
    ethereum_gas_limit: int = 21000

    @property
    def fabric_channel_list(self) -> List[str]:
        return [channel.strip() for channel in self.fabric_channels.split(",") if channel.strip()]

    def fabric_gateway_config(self, blockchain_id: Optional[str] = None) -> FabricGatewayConfig:
        """Build the gateway configuration for a Fabric backend"""
        if not self.fabric_connection_profile:
            raise ValueError("BAL_FABRIC_CONNECTION_PROFILE is not configured")

        return FabricGatewayConfig(
            blockchain_id=blockchain_id or self.fabric_blockchain_id,
            connection_profile=self.fabric_connection_profile,
            org_name=self.fabric_org_name,
            user_name=self.fabric_user_name,
            wallet_path=self.fabric_wallet_path,
            channels=self.fabric_channel_list,
            peer_name=self.fabric_peer_name,
        )

    def ethereum_config(self, rpc_url: Optional[str] = None,
                        poll_interval: Optional[float] = None) -> EthereumConfig:
        """Build the node configuration for an Ethereum backend"""
        return EthereumConfig(
            rpc_url=rpc_url or self.ethereum_rpc_url,
            private_key=self.ethereum_private_key,
            chain_id=self.ethereum_chain_id,
            poll_interval=poll_interval if poll_interval is not None else self.ethereum_poll_interval,
            max_confirmations=self.ethereum_max_confirmations,
            orphan_check_depth=self.ethereum_orphan_check_depth,
            gas_limit=self.ethereum_gas_limit,
        )


@lru_cache()
def get_settings() -> BalSettings:
    return BalSettings()
