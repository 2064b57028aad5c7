"""
Hyperledger Fabric adapter.

Fabric has no native currency, so the monetary operations are declared
unsupported. Smart contract paths have the form
``channel/chaincode[/contract]``.
"""

import asyncio
import logging
from typing import ClassVar, FrozenSet, Optional, Sequence

from ..interfaces import IConnectionRegistry, IFilterEvaluator
from ..invocation import InvocationCoordinator
from ..models import Parameter, Transaction
from ..subscription import EventSubscriptionEngine, OccurrenceStream
from ..types import BlockchainType, Capability
from .base import BaseAdapter

logger = logging.getLogger(__name__)

UNSUPPORTED_MESSAGES = {
    Capability.SUBMIT_TRANSACTION: "Fabric does not support submitting monetary transactions!",
    Capability.RECEIVE_TRANSACTIONS: "Fabric does not support receiving monetary transactions!",
}


class FabricAdapter(BaseAdapter):
    """Adapter for Hyperledger Fabric networks"""

    blockchain_type: ClassVar[BlockchainType] = BlockchainType.FABRIC
    capabilities: ClassVar[FrozenSet[Capability]] = frozenset({
        Capability.INVOKE_SMART_CONTRACT,
        Capability.SUBSCRIBE_TO_EVENT,
    })

    def __init__(self, blockchain_id: str, registry: Optional[IConnectionRegistry] = None,
                 filter_evaluator: Optional[IFilterEvaluator] = None):
        if registry is None:
            from ..connection_registry import get_gateway_manager
            registry = get_gateway_manager()

        self.blockchain_id = blockchain_id
        self.registry = registry
        self._invoker = InvocationCoordinator(registry, blockchain_id, max_return_values=1)
        self._events = EventSubscriptionEngine(registry, blockchain_id, filter_evaluator)

    def _not_supported(self, capability: Capability, reason: Optional[str] = None):
        reason = reason or UNSUPPORTED_MESSAGES.get(capability, "Fabric does not support monetary transactions!")
        return super()._not_supported(capability, reason)

    def invoke_smart_contract(self, smart_contract_path: str, function_identifier: str,
                              inputs: Sequence[Parameter], outputs: Sequence[Parameter],
                              required_confidence: float) -> "asyncio.Future[Transaction]":
        """
        Invoke a chaincode function.

        At most one return value is supported. Path, handle and output
        count problems raise here; execution failures arrive through the
        returned future as InvocationFailureError.
        """
        return self._invoker.invoke(smart_contract_path, function_identifier, inputs, outputs)

    def subscribe_to_event(self, smart_contract_path: str, event_identifier: str,
                           output_parameters: Sequence[Parameter], required_confidence: float,
                           filter_expression: Optional[str]) -> OccurrenceStream:
        # Only the first output parameter is populated from the event payload
        return self._events.subscribe(smart_contract_path, event_identifier, output_parameters, filter_expression)

    def test_connection(self) -> str:
        try:
            gateway = self.registry.get_gateway(self.blockchain_id)
            if gateway.get_identity() is not None:
                return "true"
            return "Cannot get gateway identity!"
        except Exception as e:
            return str(e)
