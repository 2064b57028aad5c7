"""
Tests for the Fabric SDK wrappers, with the SDK objects mocked out
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from platformq_bal import ContractEvent, FabricGatewayConfig
from platformq_bal.hfc_gateway import HfcContractHandle, HfcGateway
from platformq_bal.utils import to_iso_timestamp


@pytest.fixture
def channel():
    channel = Mock()
    channel.newChannelEventHub.return_value.connect = AsyncMock()
    return channel


@pytest.fixture
def handle(channel):
    contract = Mock()
    contract.submit_transaction = AsyncMock(return_value=b"result")
    return HfcContractHandle(contract, channel, "cc1", requestor="admin", peer="peer0")


class TestHfcContractHandle:

    @pytest.mark.asyncio
    async def test_submit_transaction(self, handle):
        result = await handle.submit_transaction("transfer", "bob", "7")

        assert result == b"result"
        handle._contract.submit_transaction.assert_awaited_once_with("transfer", ["bob", "7"], "admin")

    @pytest.mark.asyncio
    async def test_listener_lifecycle(self, handle, channel):
        received = []
        event_hub = channel.newChannelEventHub.return_value

        token = handle.add_contract_listener(received.append)

        channel.newChannelEventHub.assert_called_once_with("peer0", "admin")
        on_event = event_hub.registerChaincodeEvent.call_args.kwargs["onEvent"]
        on_event({"event_name": "Transferred", "payload": b"20"}, 12, "tx-1", "VALID")

        assert len(received) == 1
        event = received[0]
        assert isinstance(event, ContractEvent)
        assert (event.name, event.payload, event.transaction_id) == ("Transferred", b"20", "tx-1")
        assert event.metadata == {"block_number": 12, "tx_status": "VALID"}

        handle.remove_contract_listener(token)

        event_hub.unregisterChaincodeEvent.assert_called_once_with(event_hub.registerChaincodeEvent.return_value)
        event_hub.unregisterBlockEvent.assert_called_once_with(event_hub.registerBlockEvent.return_value)
        event_hub.disconnect.assert_called_once_with()

    @pytest.mark.parametrize("header_timestamp", [
        "2024-01-02T03:04:05.120000Z",
        "2024-01-02 03:04:05.120000123+00:00",
        {"seconds": 1704164645, "nanos": 120000000},
        datetime(2024, 1, 2, 3, 4, 5, 120000, tzinfo=timezone.utc),
    ])
    @pytest.mark.asyncio
    async def test_event_carries_transaction_timestamp(self, handle, channel, header_timestamp):
        received = []
        event_hub = channel.newChannelEventHub.return_value
        handle.add_contract_listener(received.append)
        on_block = event_hub.registerBlockEvent.call_args.kwargs["onEvent"]
        on_event = event_hub.registerChaincodeEvent.call_args.kwargs["onEvent"]

        on_block({"data": {"data": [
            {"payload": {"header": {"channel_header": {"tx_id": "tx-0", "timestamp": "2020-01-01T00:00:00Z"}}}},
            {"payload": {"header": {"channel_header": {"tx_id": "tx-1", "timestamp": header_timestamp}}}},
        ]}})
        on_event({"event_name": "Transferred", "payload": b"20"}, 12, "tx-1", "VALID")

        assert received[0].timestamp == datetime(2024, 1, 2, 3, 4, 5, 120000, tzinfo=timezone.utc)
        assert to_iso_timestamp(received[0].timestamp) == "2024-01-02T03:04:05.12"

    @pytest.mark.asyncio
    async def test_unknown_transaction_has_no_timestamp(self, handle, channel):
        received = []
        event_hub = channel.newChannelEventHub.return_value
        handle.add_contract_listener(received.append)
        on_event = event_hub.registerChaincodeEvent.call_args.kwargs["onEvent"]

        on_event({"event_name": "Transferred", "payload": b"20"}, 12, "tx-9", "VALID")

        assert received[0].timestamp is None

    @pytest.mark.asyncio
    async def test_stream_failure_is_reported(self, handle, channel):
        closed = asyncio.Event()
        errors = []

        def on_close(error):
            errors.append(error)
            closed.set()

        channel.newChannelEventHub.return_value.connect = AsyncMock(side_effect=ConnectionError("peer gone"))
        handle.add_contract_listener(lambda event: None, on_close)

        await asyncio.wait_for(closed.wait(), 1.0)

        assert len(errors) == 1
        assert isinstance(errors[0], ConnectionError)

    @pytest.mark.asyncio
    async def test_stream_end_is_reported(self, handle, channel):
        closed = asyncio.Event()
        errors = []

        def on_close(error):
            errors.append(error)
            closed.set()

        handle.add_contract_listener(lambda event: None, on_close)

        await asyncio.wait_for(closed.wait(), 1.0)

        assert errors == [None]

    @pytest.mark.asyncio
    async def test_removed_listener_is_not_reported(self, handle, channel):
        on_close = Mock()

        async def serve_forever(filtered):
            await asyncio.Event().wait()

        channel.newChannelEventHub.return_value.connect = serve_forever
        token = handle.add_contract_listener(lambda event: None, on_close)
        await asyncio.sleep(0)

        handle.remove_contract_listener(token)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert token.stream_task.cancelled()
        on_close.assert_not_called()


class TestHfcGateway:

    def make_gateway(self, peer_name=None):
        sdk_gateway = Mock()
        client = Mock()
        client.peers = {"peer0": "peer0-object"}
        networks = {"chan1": Mock()}
        config = FabricGatewayConfig("fabric-0", "network.json", channels=["chan1"], peer_name=peer_name)
        return HfcGateway(sdk_gateway, client, "admin", networks, config)

    def test_identity(self):
        gateway = self.make_gateway()
        gateway._gateway.get_current_identity.return_value = "admin"

        assert gateway.get_identity() == "admin"

    def test_contract_for_configured_channel(self):
        gateway = self.make_gateway()

        handle = gateway.get_contract("chan1", "cc1")

        assert isinstance(handle, HfcContractHandle)
        gateway._networks["chan1"].get_contract.assert_called_once_with("cc1")

    def test_unknown_channel(self):
        with pytest.raises(KeyError):
            self.make_gateway().get_contract("chan9", "cc1")

    def test_named_peer(self):
        gateway = self.make_gateway(peer_name="peer1")

        gateway.get_contract("chan1", "cc1")

        gateway._client.get_peer.assert_called_once_with("peer1")
