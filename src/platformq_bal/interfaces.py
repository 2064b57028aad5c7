"""
Interfaces (protocols) for the blockchain access layer.
Using Python's Protocol for structural subtyping.
"""

import asyncio
from typing import Protocol, Any, Optional, Sequence, Callable, Awaitable, Union, runtime_checkable
from abc import abstractmethod
from decimal import Decimal

from .models import Parameter, Transaction, ContractEvent
from .types import TransactionState


@runtime_checkable
class IGateway(Protocol):
    """Live connection to a blockchain network"""

    @abstractmethod
    def get_identity(self) -> Optional[Any]:
        """Return the identity the gateway is connected with, if any"""
        ...


@runtime_checkable
class IContractHandle(Protocol):
    """Session object for one namespace/container pair (e.g. channel/chaincode)"""

    @abstractmethod
    def submit_transaction(self, function_name: str, *args: str) -> Union[bytes, str, Awaitable[Union[bytes, str]]]:
        """Submit a function call; blocking or coroutine implementations are both accepted"""
        ...

    @abstractmethod
    def add_contract_listener(self, callback: Callable[[ContractEvent], None],
                              on_close: Optional[Callable[[Optional[BaseException]], None]] = None) -> Any:
        """
        Register a native listener and return its token.

        on_close is called once if the native event stream ends on its own,
        with the error that ended it or None. It is not called after
        remove_contract_listener.
        """
        ...

    @abstractmethod
    def remove_contract_listener(self, token: Any) -> None:
        """Deregister a previously registered listener"""
        ...


class IConnectionRegistry(Protocol):
    """Hands out live handles per backend identity"""

    @abstractmethod
    def get_gateway(self, blockchain_id: str) -> IGateway:
        """Get the gateway for a backend; raises NodeUnreachableError"""
        ...

    @abstractmethod
    def get_contract(self, blockchain_id: str, channel: str, chaincode: str) -> IContractHandle:
        """Get a contract handle; raises NodeUnreachableError"""
        ...


class IFilterEvaluator(Protocol):
    """Black-box boolean predicate over event parameters"""

    @abstractmethod
    def evaluate(self, expression: Optional[str], parameters: Sequence[Parameter]) -> bool:
        """Evaluate expression; raises FilterEvaluationError"""
        ...


class IBlockchainAdapter(Protocol):
    """Capability contract every backend adapter implements.

    The first six operations are plain methods: failures detected before
    anything is dispatched are raised directly, later failures arrive
    through the returned future or stream.
    """

    @abstractmethod
    def submit_transaction(self, receiver_address: str, value: Decimal,
                           required_confidence: float) -> "asyncio.Future[Transaction]":
        """Submit a monetary transaction"""
        ...

    @abstractmethod
    def receive_transactions(self, sender_address: Optional[str], required_confidence: float) -> Any:
        """Stream incoming monetary transactions"""
        ...

    @abstractmethod
    def ensure_transaction_state(self, transaction_id: str,
                                 required_confidence: float) -> "asyncio.Future[TransactionState]":
        """Wait until a transaction reaches the required confidence"""
        ...

    @abstractmethod
    def detect_orphaned_transaction(self, transaction_id: str) -> "asyncio.Future[TransactionState]":
        """Watch a transaction until it is orphaned or durably confirmed"""
        ...

    @abstractmethod
    def invoke_smart_contract(self, smart_contract_path: str, function_identifier: str,
                              inputs: Sequence[Parameter], outputs: Sequence[Parameter],
                              required_confidence: float) -> "asyncio.Future[Transaction]":
        """Invoke a smart contract function"""
        ...

    @abstractmethod
    def subscribe_to_event(self, smart_contract_path: str, event_identifier: str,
                           output_parameters: Sequence[Parameter], required_confidence: float,
                           filter_expression: Optional[str]) -> Any:
        """Subscribe to a smart contract event"""
        ...

    @abstractmethod
    def test_connection(self) -> str:
        """Probe the backend; never raises"""
        ...
