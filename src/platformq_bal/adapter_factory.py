"""
Blockchain adapter factory for creating backend-specific adapters.
"""

import logging
from typing import Dict, List, Optional, Tuple, Type

from .adapters import BaseAdapter, EthereumAdapter, FabricAdapter
from .config import BalSettings, get_settings
from .connection_registry import GatewayManager, get_gateway_manager
from .types import BlockchainType, InvalidParameterError, NotSupportedError

logger = logging.getLogger(__name__)


class AdapterFactory:
    """
    Factory for blockchain adapters.

    Adapters are cached per (blockchain type, endpoint url, backend
    parameter). The backend parameter is the gateway id for Fabric and the
    average block time in seconds for Ethereum.
    """

    # Mapping of blockchain types to adapter classes
    _adapters: Dict[BlockchainType, Type[BaseAdapter]] = {
        BlockchainType.ETHEREUM: EthereumAdapter,
        BlockchainType.FABRIC: FabricAdapter,
    }

    def __init__(self, settings: Optional[BalSettings] = None,
                 gateway_manager: Optional[GatewayManager] = None):
        self.settings = settings or get_settings()
        self._gateway_manager = gateway_manager
        self._instances: Dict[Tuple[BlockchainType, str, str], BaseAdapter] = {}

    @property
    def gateway_manager(self) -> GatewayManager:
        if self._gateway_manager is None:
            self._gateway_manager = get_gateway_manager()
        return self._gateway_manager

    def get_adapter(self, blockchain_type: BlockchainType, endpoint_url: str,
                    backend_param: Optional[str] = None) -> BaseAdapter:
        """
        Get the adapter for a backend, creating it on first use.

        Raises:
            NotSupportedError: If no adapter is registered for the type
        """
        if not self.is_blockchain_supported(blockchain_type):
            raise NotSupportedError(f"Unsupported blockchain type: {blockchain_type}")

        key = (blockchain_type, endpoint_url, backend_param or "")
        adapter = self._instances.get(key)
        if adapter is None:
            adapter = self._create_adapter(blockchain_type, endpoint_url, backend_param)
            self._instances[key] = adapter
            logger.info(f"Created {type(adapter).__name__} for {endpoint_url}")
        return adapter

    def _create_adapter(self, blockchain_type: BlockchainType, endpoint_url: str,
                        backend_param: Optional[str]) -> BaseAdapter:
        adapter_class = self._adapters[blockchain_type]

        if blockchain_type == BlockchainType.FABRIC:
            blockchain_id = backend_param or self.settings.fabric_blockchain_id
            return adapter_class(blockchain_id, registry=self.gateway_manager)

        elif blockchain_type == BlockchainType.ETHEREUM:
            try:
                poll_interval = float(backend_param) if backend_param else None
            except ValueError:
                raise InvalidParameterError(
                    f"Ethereum backend parameter must be the block time in seconds, got {backend_param!r}"
                )
            return adapter_class(self.settings.ethereum_config(rpc_url=endpoint_url, poll_interval=poll_interval))

        # Custom adapters registered by the host
        return adapter_class(endpoint_url, backend_param)

    @classmethod
    def register_adapter(cls, blockchain_type: BlockchainType,
                         adapter_class: Type[BaseAdapter]):
        """
        Register a custom adapter implementation for a blockchain type.

        Args:
            blockchain_type: The blockchain type
            adapter_class: The adapter class to use
        """
        cls._adapters[blockchain_type] = adapter_class
        logger.info(f"Registered adapter {adapter_class.__name__} for {blockchain_type.value}")

    @classmethod
    def get_supported_blockchains(cls) -> List[BlockchainType]:
        """Get list of supported blockchain types"""
        return list(cls._adapters.keys())

    @classmethod
    def is_blockchain_supported(cls, blockchain_type: BlockchainType) -> bool:
        """Check if a blockchain type is supported"""
        return blockchain_type in cls._adapters
