"""
PlatformQ Blockchain Access Layer

Uniform adapter contract over heterogeneous blockchain backends: smart
contract invocation and event subscription on Hyperledger Fabric, monetary
transactions on Ethereum.
"""

from .types import (
    BlockchainType,
    TransactionState,
    Capability,
    FabricGatewayConfig,
    EthereumConfig,
    BalError,
    NotSupportedError,
    InvalidParameterError,
    InvalidAddressError,
    TooManyReturnValuesError,
    NodeUnreachableError,
    InvocationFailureError,
    InvalidFilterExpressionError,
    InvalidTransactionError,
    ManualUnsubscriptionError,
    FilterEvaluationError
)

from .models import (
    Parameter,
    Transaction,
    Occurrence,
    SmartContractPathElements,
    ContractEvent
)

from .interfaces import (
    IBlockchainAdapter,
    IConnectionRegistry,
    IContractHandle,
    IFilterEvaluator,
    IGateway
)

from .utils import (
    resolve_smart_contract_path,
    validate_address,
    normalize_address,
    to_iso_timestamp
)

from .filters import ExpressionFilterEvaluator
from .subscription import PushStream, OccurrenceStream, EventSubscriptionEngine
from .invocation import InvocationCoordinator
from .subscription_manager import SubscriptionManager
from .connection_registry import GatewayManager, get_gateway_manager
from .adapter_factory import AdapterFactory
from .adapters import (
    BaseAdapter,
    EthereumAdapter,
    FabricAdapter
)

__all__ = [
    # Types
    "BlockchainType",
    "TransactionState",
    "Capability",
    "FabricGatewayConfig",
    "EthereumConfig",

    # Errors
    "BalError",
    "NotSupportedError",
    "InvalidParameterError",
    "InvalidAddressError",
    "TooManyReturnValuesError",
    "NodeUnreachableError",
    "InvocationFailureError",
    "InvalidFilterExpressionError",
    "InvalidTransactionError",
    "ManualUnsubscriptionError",
    "FilterEvaluationError",

    # Models
    "Parameter",
    "Transaction",
    "Occurrence",
    "SmartContractPathElements",
    "ContractEvent",

    # Interfaces
    "IBlockchainAdapter",
    "IConnectionRegistry",
    "IContractHandle",
    "IFilterEvaluator",
    "IGateway",

    # Utils
    "resolve_smart_contract_path",
    "validate_address",
    "normalize_address",
    "to_iso_timestamp",

    # Engines
    "ExpressionFilterEvaluator",
    "PushStream",
    "OccurrenceStream",
    "EventSubscriptionEngine",
    "InvocationCoordinator",
    "SubscriptionManager",

    # Connection Registry & Factory
    "GatewayManager",
    "get_gateway_manager",
    "AdapterFactory",

    # Adapters
    "BaseAdapter",
    "EthereumAdapter",
    "FabricAdapter"
]

__version__ = "1.0.0"
