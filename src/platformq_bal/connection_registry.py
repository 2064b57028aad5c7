"""
Gateway registry for Hyperledger Fabric backends.
Keeps one live gateway per blockchain id and hands out contract handles.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from .interfaces import IGateway, IContractHandle
from .types import FabricGatewayConfig, NodeUnreachableError

logger = logging.getLogger(__name__)

# Builds a connected gateway offering get_identity(), get_contract(channel, chaincode)
# and an async disconnect()
GatewayFactory = Callable[[FabricGatewayConfig], Awaitable[Any]]


async def default_gateway_factory(config: FabricGatewayConfig) -> Any:
    from .hfc_gateway import connect_hfc_gateway

    return await connect_hfc_gateway(config)


@dataclass
class GatewayInfo:
    """Information about a registered gateway"""
    config: FabricGatewayConfig
    gateway: Optional[Any] = None
    connected_at: Optional[datetime] = None
    last_used: Optional[datetime] = None
    use_count: int = 0
    is_healthy: bool = False


class GatewayManager:
    """
    Connection registry for Fabric gateways.
    Features:
    - Connection with retry and timeout
    - Synchronous handle lookup
    - Periodic identity health checks with reconnection
    """

    def __init__(self,
                 gateway_factory: Optional[GatewayFactory] = None,
                 connect_timeout: float = 30.0,
                 connect_attempts: int = 3,
                 health_check_interval: float = 60.0):
        self.gateway_factory = gateway_factory or default_gateway_factory
        self.connect_timeout = connect_timeout
        self.connect_attempts = connect_attempts
        self.health_check_interval = health_check_interval

        self._gateways: Dict[str, GatewayInfo] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._health_check_task: Optional[asyncio.Task] = None
        self._closed = False

    @classmethod
    def from_settings(cls, settings, gateway_factory: Optional[GatewayFactory] = None) -> "GatewayManager":
        return cls(
            gateway_factory=gateway_factory,
            connect_timeout=settings.gateway_connect_timeout,
            connect_attempts=settings.gateway_connect_attempts,
            health_check_interval=settings.health_check_interval,
        )

    def register_gateway(self, config: FabricGatewayConfig):
        """Register a gateway configuration"""
        self._gateways[config.blockchain_id] = GatewayInfo(config=config)
        self._locks[config.blockchain_id] = asyncio.Lock()
        logger.info(f"Registered gateway {config.blockchain_id}")

    def is_registered(self, blockchain_id: str) -> bool:
        return blockchain_id in self._gateways

    async def initialize(self, start_health_checks: bool = True):
        """Connect all registered gateways and start health checks"""
        for blockchain_id in list(self._gateways):
            try:
                await self.connect(blockchain_id)
            except NodeUnreachableError as e:
                logger.error(f"Gateway {blockchain_id} unavailable at startup: {e}")

        if start_health_checks and not self._closed and self._health_check_task is None:
            self._health_check_task = asyncio.create_task(self._health_check_loop())
            logger.info("Gateway manager initialized")

    async def connect(self, blockchain_id: str) -> Any:
        """
        Connect a registered gateway, retrying with exponential backoff.

        Raises:
            NodeUnreachableError: If the gateway is unknown or every attempt fails
        """
        info = self._get_info(blockchain_id)

        async with self._locks[blockchain_id]:
            if info.gateway is not None and info.is_healthy:
                return info.gateway

            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.connect_attempts),
                    wait=wait_exponential(multiplier=0.5, max=10),
                    retry=retry_if_exception_type(Exception),
                    reraise=True,
                ):
                    with attempt:
                        gateway = await asyncio.wait_for(
                            self.gateway_factory(info.config),
                            timeout=self.connect_timeout
                        )
            except asyncio.TimeoutError:
                raise NodeUnreachableError(f"Connection timeout for gateway {blockchain_id}")
            except Exception as e:
                logger.error(f"Error connecting gateway {blockchain_id}: {e}")
                raise NodeUnreachableError(f"Cannot connect gateway {blockchain_id}: {e}") from e

            info.gateway = gateway
            info.connected_at = datetime.now(timezone.utc)
            info.is_healthy = True
            logger.info(f"Connected gateway {blockchain_id}")
            return gateway

    async def disconnect(self, blockchain_id: str):
        """Disconnect a gateway, keeping its registration"""
        info = self._get_info(blockchain_id)
        gateway, info.gateway = info.gateway, None
        info.is_healthy = False

        if gateway is not None:
            try:
                await gateway.disconnect()
            except Exception as e:
                logger.error(f"Error disconnecting gateway {blockchain_id}: {e}")
            logger.info(f"Disconnected gateway {blockchain_id}")

    async def close(self):
        """Close all gateways and cleanup"""
        self._closed = True

        if self._health_check_task:
            self._health_check_task.cancel()
            try:
                await self._health_check_task
            except asyncio.CancelledError:
                pass
            self._health_check_task = None

        for blockchain_id in list(self._gateways):
            await self.disconnect(blockchain_id)

        self._gateways.clear()
        self._locks.clear()
        logger.info("Gateway manager closed")

    def get_gateway(self, blockchain_id: str) -> IGateway:
        """
        Get the live gateway of a backend.

        Raises:
            NodeUnreachableError: If the gateway is unknown or not connected
        """
        info = self._get_info(blockchain_id)
        if info.gateway is None or not info.is_healthy:
            raise NodeUnreachableError(f"Gateway {blockchain_id} is not connected")

        info.last_used = datetime.now(timezone.utc)
        info.use_count += 1
        return info.gateway

    def get_contract(self, blockchain_id: str, channel: str, chaincode: str) -> IContractHandle:
        """
        Get a contract handle for a channel/chaincode pair.

        Raises:
            NodeUnreachableError: If the gateway is not connected or the
                contract cannot be looked up
        """
        gateway = self.get_gateway(blockchain_id)
        try:
            return gateway.get_contract(channel, chaincode)
        except Exception as e:
            raise NodeUnreachableError(
                f"Cannot get contract {chaincode} on channel {channel} of {blockchain_id}: {e}"
            ) from e

    def _get_info(self, blockchain_id: str) -> GatewayInfo:
        info = self._gateways.get(blockchain_id)
        if info is None:
            raise NodeUnreachableError(f"Gateway {blockchain_id} not registered")
        return info

    async def _health_check_loop(self):
        """Periodic health check for all gateways"""
        while not self._closed:
            try:
                await asyncio.sleep(self.health_check_interval)
                await self.check_all_gateways()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in health check loop: {e}")

    async def check_all_gateways(self):
        """Probe every gateway's identity, reconnecting the unhealthy ones"""
        for blockchain_id, info in list(self._gateways.items()):
            healthy = False
            if info.gateway is not None:
                try:
                    healthy = info.gateway.get_identity() is not None
                except Exception as e:
                    logger.warning(f"Health check failed for gateway {blockchain_id}: {e}")

            if healthy:
                continue

            await self.disconnect(blockchain_id)
            try:
                await self.connect(blockchain_id)
                logger.info(f"Reconnected gateway {blockchain_id}")
            except NodeUnreachableError as e:
                logger.error(f"Gateway {blockchain_id} is still unreachable: {e}")

    def get_gateway_stats(self) -> Dict[str, Any]:
        """Get statistics about the registered gateways"""
        return {
            blockchain_id: {
                "connected": info.gateway is not None,
                "healthy": info.is_healthy,
                "total_uses": info.use_count,
            }
            for blockchain_id, info in self._gateways.items()
        }


_gateway_manager: Optional[GatewayManager] = None


def get_gateway_manager() -> GatewayManager:
    """Get the process-wide gateway manager"""
    global _gateway_manager
    if _gateway_manager is None:
        from .config import get_settings
        _gateway_manager = GatewayManager.from_settings(get_settings())
    return _gateway_manager
