"""
Core data models exchanged between callers and adapters.
"""

from typing import Optional, Tuple, Union, Dict, Any
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from .types import TransactionState


@dataclass(frozen=True)
class Parameter:
    """A named, typed, textually encoded value"""
    name: str
    type: str = ""
    value: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "type": self.type, "value": self.value}


@dataclass(frozen=True)
class Transaction:
    """Outcome of a monetary transaction or a smart contract invocation"""
    state: TransactionState
    return_values: Tuple[Parameter, ...] = ()
    transaction_hash: Optional[str] = None
    block_hash: Optional[str] = None
    block_number: Optional[int] = None
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    value: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "state": self.state.value,
            "returnValues": [p.to_dict() for p in self.return_values],
            "transactionHash": self.transaction_hash,
            "blockHash": self.block_hash,
            "blockNumber": self.block_number,
            "from": self.from_address,
            "to": self.to_address,
            "value": str(self.value) if self.value is not None else None,
        }


@dataclass(frozen=True)
class Occurrence:
    """One filtered emission of an on-chain event"""
    parameters: Tuple[Parameter, ...]
    iso_timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parameters": [p.to_dict() for p in self.parameters],
            "isoTimestamp": self.iso_timestamp,
        }


@dataclass(frozen=True)
class SmartContractPathElements:
    """Segments of a smart contract path, e.g. channel/chaincode/contract"""
    namespace: str
    container: str
    contract_name: Optional[str] = None


@dataclass(frozen=True)
class ContractEvent:
    """Backend-neutral view of a native contract event"""
    name: str
    payload: Optional[bytes] = None
    timestamp: Union[datetime, float, int, None] = None
    transaction_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)
