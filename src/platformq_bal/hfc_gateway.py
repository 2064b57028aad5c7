"""
Hyperledger Fabric gateway built on the Fabric Python SDK (hfc).

Install with the ``fabric`` extra. The SDK is only imported when a
gateway is actually connected.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from .models import ContractEvent
from .types import FabricGatewayConfig

logger = logging.getLogger(__name__)


def _header_timestamp(value: Any) -> Optional[datetime]:
    """Read a transaction's channel-header timestamp as decoded by the SDK"""
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, dict):
        moment = datetime.fromtimestamp(int(value.get("seconds", 0)), tz=timezone.utc)
        return moment + timedelta(microseconds=int(value.get("nanos", 0)) // 1000)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)

    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # datetime only keeps microseconds
    text = re.sub(r"(\.\d{6})\d+", r"\1", text)
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.warning(f"Unreadable transaction timestamp: {value!r}")
        return None


@dataclass
class _ListenerRegistration:
    event_hub: Any
    registration: Any
    block_registration: Any
    stream_task: "asyncio.Future"


class HfcContractHandle:
    """Contract handle for one channel/chaincode pair"""

    def __init__(self, contract: Any, channel: Any, chaincode: str, requestor: Any, peer: Any):
        self._contract = contract
        self._channel = channel
        self._chaincode = chaincode
        self._requestor = requestor
        self._peer = peer

    async def submit_transaction(self, function_name: str, *args: str) -> bytes:
        return await self._contract.submit_transaction(function_name, list(args), self._requestor)

    def add_contract_listener(self, callback: Callable[[ContractEvent], None],
                              on_close: Optional[Callable[[Optional[BaseException]], None]] = None
                              ) -> _ListenerRegistration:
        """
        Listen for chaincode events on a dedicated channel event hub.

        Events carry the timestamp their transaction was created with. The
        hub dispatches each block to block listeners before its chaincode
        events, so the transaction timestamps of the current block are
        always known when its events arrive.
        """
        event_hub = self._channel.newChannelEventHub(self._peer, self._requestor)
        tx_timestamps: Dict[str, Optional[datetime]] = {}

        def on_block(block):
            tx_timestamps.clear()
            for envelope in (block.get("data") or {}).get("data") or []:
                header = ((envelope.get("payload") or {}).get("header") or {}).get("channel_header") or {}
                if header.get("tx_id"):
                    tx_timestamps[header["tx_id"]] = _header_timestamp(header.get("timestamp"))

        def on_event(cc_event, block_number, tx_id, tx_status):
            timestamp = tx_timestamps.get(tx_id)
            if timestamp is None:
                logger.debug(f"No transaction timestamp for {tx_id}, using receive time")
            callback(ContractEvent(
                name=cc_event.get("event_name"),
                payload=cc_event.get("payload"),
                timestamp=timestamp,
                transaction_id=tx_id,
                metadata={"block_number": block_number, "tx_status": tx_status}
            ))

        block_registration = event_hub.registerBlockEvent(unregister=False, onEvent=on_block)
        registration = event_hub.registerChaincodeEvent(self._chaincode, ".*", onEvent=on_event)
        stream_task = asyncio.ensure_future(event_hub.connect(filtered=False))

        if on_close is not None:
            def on_stream_done(task: "asyncio.Future") -> None:
                # Cancelled only by remove_contract_listener
                if task.cancelled():
                    return
                on_close(task.exception())

            stream_task.add_done_callback(on_stream_done)

        return _ListenerRegistration(event_hub, registration, block_registration, stream_task)

    def remove_contract_listener(self, token: _ListenerRegistration) -> None:
        token.event_hub.unregisterChaincodeEvent(token.registration)
        token.event_hub.unregisterBlockEvent(token.block_registration)
        token.stream_task.cancel()
        token.event_hub.disconnect()


class HfcGateway:
    """Connected Fabric gateway with its channel networks"""

    def __init__(self, gateway: Any, client: Any, requestor: Any,
                 networks: Dict[str, Any], config: FabricGatewayConfig):
        self._gateway = gateway
        self._client = client
        self._requestor = requestor
        self._networks = networks
        self.config = config

    def get_identity(self) -> Optional[Any]:
        return self._gateway.get_current_identity()

    def get_contract(self, channel: str, chaincode: str) -> HfcContractHandle:
        network = self._networks.get(channel)
        if network is None:
            raise KeyError(f"Channel {channel} is not configured for {self.config.blockchain_id}")

        return HfcContractHandle(
            contract=network.get_contract(chaincode),
            channel=self._client.get_channel(channel),
            chaincode=chaincode,
            requestor=self._requestor,
            peer=self._select_peer(),
        )

    def _select_peer(self) -> Any:
        if self.config.peer_name:
            return self._client.get_peer(self.config.peer_name)
        return next(iter(self._client.peers.values()))

    async def disconnect(self) -> None:
        self._gateway.disconnect()


async def connect_hfc_gateway(config: FabricGatewayConfig) -> HfcGateway:
    """Connect a gateway and the configured channel networks"""
    from hfc.fabric import Client
    from hfc.fabric_network.gateway import Gateway
    from hfc.fabric_network.wallet import FileSystenWallet

    client = Client(net_profile=config.connection_profile)
    requestor = client.get_user(org_name=config.org_name, name=config.user_name)

    options = {
        "wallet": FileSystenWallet(config.wallet_path) if config.wallet_path else "",
        "identity": config.user_name,
        "discovery": {"enabled": config.discovery_enabled, "asLocalhost": config.as_localhost},
    }

    gateway = Gateway()
    await gateway.connect(config.connection_profile, options)

    networks = {}
    for channel in config.channels:
        networks[channel] = await gateway.get_network(channel, requestor)

    logger.info(f"Connected to Fabric as {config.user_name}@{config.org_name} on channels {config.channels}")
    return HfcGateway(gateway, client, requestor, networks, config)
