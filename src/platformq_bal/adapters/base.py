"""
Base adapter implementation with static capability declaration.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import ClassVar, FrozenSet, Optional, Sequence, Any

from ..interfaces import IBlockchainAdapter
from ..models import Parameter, Transaction
from ..types import BlockchainType, Capability, NotSupportedError, TransactionState

logger = logging.getLogger(__name__)


class BaseAdapter(IBlockchainAdapter, ABC):
    """
    Base adapter: every contract operation fails immediately with
    NotSupportedError unless the subclass declares the capability and
    overrides the method. Declarations are checked at class creation.
    """

    blockchain_type: ClassVar[BlockchainType]
    capabilities: ClassVar[FrozenSet[Capability]] = frozenset()

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

        for capability in Capability:
            overridden = getattr(cls, capability.method_name) is not getattr(BaseAdapter, capability.method_name)
            declared = capability in cls.capabilities
            if declared and not overridden:
                raise TypeError(f"{cls.__name__} declares {capability.value} but does not implement it")
            if overridden and not declared:
                raise TypeError(f"{cls.__name__} implements {capability.value} without declaring it")

    @classmethod
    def supports(cls, capability: Capability) -> bool:
        return capability in cls.capabilities

    @property
    def backend_name(self) -> str:
        return self.blockchain_type.value

    def _not_supported(self, capability: Capability, reason: Optional[str] = None) -> NotSupportedError:
        message = reason or f"{self.backend_name} does not support {capability.value}!"
        logger.warning(message)
        return NotSupportedError(message)

    def submit_transaction(self, receiver_address: str, value: Decimal,
                           required_confidence: float) -> "asyncio.Future[Transaction]":
        raise self._not_supported(Capability.SUBMIT_TRANSACTION)

    def receive_transactions(self, sender_address: Optional[str], required_confidence: float) -> Any:
        raise self._not_supported(Capability.RECEIVE_TRANSACTIONS)

    def ensure_transaction_state(self, transaction_id: str,
                                 required_confidence: float) -> "asyncio.Future[TransactionState]":
        raise self._not_supported(Capability.ENSURE_TRANSACTION_STATE)

    def detect_orphaned_transaction(self, transaction_id: str) -> "asyncio.Future[TransactionState]":
        raise self._not_supported(Capability.DETECT_ORPHANED_TRANSACTION)

    def invoke_smart_contract(self, smart_contract_path: str, function_identifier: str,
                              inputs: Sequence[Parameter], outputs: Sequence[Parameter],
                              required_confidence: float) -> "asyncio.Future[Transaction]":
        raise self._not_supported(Capability.INVOKE_SMART_CONTRACT)

    def subscribe_to_event(self, smart_contract_path: str, event_identifier: str,
                           output_parameters: Sequence[Parameter], required_confidence: float,
                           filter_expression: Optional[str]) -> Any:
        raise self._not_supported(Capability.SUBSCRIBE_TO_EVENT)

    @abstractmethod
    def test_connection(self) -> str:
        """Probe the backend; never raises"""
        ...
