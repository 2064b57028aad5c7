"""
Core types, enums and exceptions for the blockchain access layer.
"""

from enum import Enum
from typing import Optional, Sequence, Tuple, Dict, Any, List
from dataclasses import dataclass, field


class BlockchainType(Enum):
    """Supported blockchain backends"""
    ETHEREUM = "ethereum"
    FABRIC = "fabric"


class TransactionState(Enum):
    """Transaction states shared by all adapters"""
    UNKNOWN = "unknown"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    NOT_FOUND = "not_found"
    ERRORED = "errored"
    ORPHANED = "orphaned"
    RETURN_VALUE = "return_value"  # Smart contract call executed, result attached


class Capability(Enum):
    """Operations of the adapter capability contract"""
    SUBMIT_TRANSACTION = "submit_transaction"
    RECEIVE_TRANSACTIONS = "receive_transactions"
    ENSURE_TRANSACTION_STATE = "ensure_transaction_state"
    DETECT_ORPHANED_TRANSACTION = "detect_orphaned_transaction"
    INVOKE_SMART_CONTRACT = "invoke_smart_contract"
    SUBSCRIBE_TO_EVENT = "subscribe_to_event"

    @property
    def method_name(self) -> str:
        return self.value


@dataclass
class FabricGatewayConfig:
    """Configuration for a Hyperledger Fabric gateway"""
    blockchain_id: str
    connection_profile: str
    org_name: str = "Org1"
    user_name: str = "Admin"
    wallet_path: Optional[str] = None
    channels: List[str] = field(default_factory=list)
    peer_name: Optional[str] = None
    discovery_enabled: bool = True
    as_localhost: bool = False


@dataclass
class EthereumConfig:
    """Configuration for an Ethereum node connection"""
    rpc_url: str
    private_key: Optional[str] = None
    chain_id: Optional[int] = None
    poll_interval: float = 15.0  # average block time, seconds
    max_confirmations: int = 12
    orphan_check_depth: int = 12
    gas_limit: int = 21000
    metadata: Dict[str, Any] = field(default_factory=dict)


class BalError(Exception):
    """Base exception for blockchain access layer operations"""
    error_code = "BAL_ERROR"

    def __init__(self, message: str = "", error_code: Optional[str] = None):
        if error_code is not None:
            self.error_code = error_code
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)


class NotSupportedError(BalError):
    """Operation is statically unavailable on this backend"""
    error_code = "NOT_SUPPORTED"


class InvalidParameterError(BalError):
    """A caller-supplied parameter is malformed"""
    error_code = "INVALID_PARAMETER"


class InvalidAddressError(InvalidParameterError):
    """Smart contract path could not be split into its segments"""
    error_code = "INVALID_ADDRESS"

    def __init__(self, message: str, expected: Sequence[int] = (2, 3), found: Optional[int] = None):
        self.expected: Tuple[int, ...] = tuple(expected)
        self.found = found
        super().__init__(message)


class TooManyReturnValuesError(InvalidParameterError):
    """More return values requested than the backend can deliver"""
    error_code = "TOO_MANY_RETURN_VALUES"


class NodeUnreachableError(BalError):
    """No live handle could be obtained for the backend"""
    error_code = "NODE_UNREACHABLE"


class InvocationFailureError(BalError):
    """The backend accepted a call but its execution failed"""
    error_code = "INVOCATION_FAILURE"


class InvalidFilterExpressionError(InvalidParameterError):
    """An event filter could not be evaluated"""
    error_code = "INVALID_FILTER_EXPRESSION"


class InvalidTransactionError(BalError):
    """Transaction is malformed or was rejected by the node"""
    error_code = "INVALID_TRANSACTION"


class ManualUnsubscriptionError(BalError):
    """Pending operation was cancelled by the client"""
    error_code = "MANUAL_UNSUBSCRIPTION"


class FilterEvaluationError(Exception):
    """Raised by filter evaluators for malformed or ill-typed expressions"""
    pass
