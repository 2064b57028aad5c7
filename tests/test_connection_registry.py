"""
Tests for the Fabric gateway registry
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from platformq_bal import FabricGatewayConfig, GatewayManager, NodeUnreachableError

CONFIG = FabricGatewayConfig(blockchain_id="fabric-0", connection_profile="network.json", channels=["chan1"])


def make_gateway(identity="admin@Org1"):
    gateway = Mock()
    gateway.get_identity.return_value = identity
    gateway.disconnect = AsyncMock()
    return gateway


class TestGatewayManager:

    @pytest.fixture
    def gateway(self):
        return make_gateway()

    @pytest.fixture
    def factory(self, gateway):
        return AsyncMock(return_value=gateway)

    @pytest.fixture
    def manager(self, factory):
        return GatewayManager(gateway_factory=factory, connect_timeout=1.0, connect_attempts=3)

    @pytest.mark.asyncio
    async def test_connect_and_lookup(self, manager, factory, gateway):
        manager.register_gateway(CONFIG)
        await manager.initialize(start_health_checks=False)

        assert manager.get_gateway("fabric-0") is gateway
        factory.assert_awaited_once_with(CONFIG)
        assert manager.get_gateway_stats()["fabric-0"] == {"connected": True, "healthy": True, "total_uses": 1}

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self, manager, factory):
        manager.register_gateway(CONFIG)

        first = await manager.connect("fabric-0")
        second = await manager.connect("fabric-0")

        assert first is second
        assert factory.await_count == 1

    @pytest.mark.asyncio
    async def test_connect_retries(self, gateway):
        factory = AsyncMock(side_effect=[RuntimeError("peer down"), gateway])
        manager = GatewayManager(gateway_factory=factory, connect_attempts=3)
        manager.register_gateway(CONFIG)

        assert await manager.connect("fabric-0") is gateway
        assert factory.await_count == 2

    @pytest.mark.asyncio
    async def test_connect_gives_up(self):
        factory = AsyncMock(side_effect=RuntimeError("peer down"))
        manager = GatewayManager(gateway_factory=factory, connect_attempts=1)
        manager.register_gateway(CONFIG)

        with pytest.raises(NodeUnreachableError, match="peer down"):
            await manager.connect("fabric-0")

        with pytest.raises(NodeUnreachableError, match="not connected"):
            manager.get_gateway("fabric-0")

    @pytest.mark.asyncio
    async def test_connect_timeout(self):
        async def hangs(config):
            await asyncio.sleep(3600)

        manager = GatewayManager(gateway_factory=hangs, connect_timeout=0.01, connect_attempts=1)
        manager.register_gateway(CONFIG)

        with pytest.raises(NodeUnreachableError, match="timeout"):
            await manager.connect("fabric-0")

    @pytest.mark.asyncio
    async def test_initialize_survives_unreachable_gateway(self):
        manager = GatewayManager(gateway_factory=AsyncMock(side_effect=RuntimeError("x")), connect_attempts=1)
        manager.register_gateway(CONFIG)

        await manager.initialize(start_health_checks=False)

        assert manager.get_gateway_stats()["fabric-0"]["connected"] is False

    def test_unregistered_gateway(self, manager):
        with pytest.raises(NodeUnreachableError, match="not registered"):
            manager.get_gateway("fabric-9")

    @pytest.mark.asyncio
    async def test_get_contract(self, manager, gateway):
        manager.register_gateway(CONFIG)
        await manager.connect("fabric-0")

        handle = manager.get_contract("fabric-0", "chan1", "cc1")

        assert handle is gateway.get_contract.return_value
        gateway.get_contract.assert_called_once_with("chan1", "cc1")

    @pytest.mark.asyncio
    async def test_get_contract_lookup_failure(self, manager, gateway):
        gateway.get_contract.side_effect = KeyError("chan9")
        manager.register_gateway(CONFIG)
        await manager.connect("fabric-0")

        with pytest.raises(NodeUnreachableError, match="chan9"):
            manager.get_contract("fabric-0", "chan9", "cc1")

    @pytest.mark.asyncio
    async def test_health_check_reconnects(self):
        stale, fresh = make_gateway(identity=None), make_gateway()
        factory = AsyncMock(side_effect=[stale, fresh])
        manager = GatewayManager(gateway_factory=factory, connect_attempts=1)
        manager.register_gateway(CONFIG)
        await manager.connect("fabric-0")

        await manager.check_all_gateways()

        stale.disconnect.assert_awaited_once()
        assert manager.get_gateway("fabric-0") is fresh

    @pytest.mark.asyncio
    async def test_healthy_gateways_are_kept(self, manager, factory, gateway):
        manager.register_gateway(CONFIG)
        await manager.connect("fabric-0")

        await manager.check_all_gateways()

        assert factory.await_count == 1
        assert manager.get_gateway("fabric-0") is gateway

    @pytest.mark.asyncio
    async def test_disconnect_and_close(self, manager, gateway):
        manager.register_gateway(CONFIG)
        await manager.initialize()

        await manager.disconnect("fabric-0")
        gateway.disconnect.assert_awaited_once()
        with pytest.raises(NodeUnreachableError):
            manager.get_gateway("fabric-0")

        await manager.close()
        assert manager.get_gateway_stats() == {}
