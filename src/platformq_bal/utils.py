"""
Utility functions for blockchain access layer operations.
"""

import asyncio
import functools
import inspect
import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from eth_utils import is_address, to_checksum_address

from .models import SmartContractPathElements
from .types import InvalidAddressError, InvalidParameterError, NodeUnreachableError

logger = logging.getLogger(__name__)

PATH_SEPARATOR = "/"
EXPECTED_PATH_SEGMENTS = (2, 3)


def resolve_smart_contract_path(smart_contract_path: str) -> SmartContractPathElements:
    """
    Split a smart contract path into its elements.

    ``channel/chaincode`` resolves to namespace and container only,
    ``channel/chaincode/contract`` also names the smart contract.

    Raises:
        InvalidAddressError: If the path does not have 2 or 3 segments
    """
    segments = smart_contract_path.split(PATH_SEPARATOR) if smart_contract_path else []

    if len(segments) not in EXPECTED_PATH_SEGMENTS:
        message = (
            "Unable to identify the path to the requested function. "
            f"Expected path segments: 3 or 2. Found path segments: {len(segments)}"
        )
        logger.error(message)
        raise InvalidAddressError(message, expected=EXPECTED_PATH_SEGMENTS, found=len(segments))

    return SmartContractPathElements(
        namespace=segments[0],
        container=segments[1],
        contract_name=segments[2] if len(segments) == 3 else None
    )


def to_iso_timestamp(timestamp: Union[datetime, float, int, None]) -> str:
    """Format a timestamp as ISO local date-time in UTC (no offset suffix)"""
    if timestamp is None:
        moment = datetime.now(timezone.utc)
    elif isinstance(timestamp, datetime):
        # Naive datetimes are taken to be UTC already
        moment = timestamp if timestamp.tzinfo else timestamp.replace(tzinfo=timezone.utc)
    else:
        moment = datetime.fromtimestamp(float(timestamp), tz=timezone.utc)

    moment = moment.astimezone(timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    # Shortest fraction: trailing zeros dropped, none at all for whole seconds
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    return text


def decode_payload(payload: Union[bytes, bytearray, str, None]) -> str:
    """Decode a native byte payload as UTF-8 text"""
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    return bytes(payload).decode("utf-8", errors="replace")


def validate_confidence(required_confidence: float) -> float:
    """Check that a confidence lies in [0, 1]"""
    try:
        confidence = float(required_confidence)
    except (TypeError, ValueError):
        raise InvalidParameterError(f"Invalid required confidence: {required_confidence!r}")

    if math.isnan(confidence) or not 0.0 <= confidence <= 1.0:
        raise InvalidParameterError(
            f"Required confidence must be between 0 and 1, got {required_confidence}"
        )
    return confidence


def confirmations_for_confidence(required_confidence: float, max_confirmations: int) -> int:
    """Map a confidence in [0, 1] to a number of block confirmations"""
    confidence = validate_confidence(required_confidence)
    return max(1, math.ceil(confidence * max_confirmations))


def validate_address(address: Optional[str]) -> bool:
    """Validate an Ethereum address"""
    return bool(address) and is_address(address)


def normalize_address(address: str) -> str:
    """Normalize an Ethereum address to its checksum form"""
    return to_checksum_address(address)


def is_coroutine_callable(fn: Callable[..., Any]) -> bool:
    """Check whether calling fn produces a coroutine"""
    if inspect.iscoroutinefunction(fn):
        return True
    call = getattr(fn, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


async def call_handle(fn: Callable[..., Any], *args: Any) -> Any:
    """
    Call a native handle method that may be blocking or asynchronous.

    Coroutine functions are awaited on the loop, blocking callables run in
    the default executor.
    """
    if is_coroutine_callable(fn):
        return await fn(*args)

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, functools.partial(fn, *args))
    if inspect.isawaitable(result):
        return await result
    return result


def acquire_contract_handle(registry: Any, blockchain_id: str, path: SmartContractPathElements) -> Any:
    """
    Get a contract handle for a resolved path from the connection registry.

    Raises:
        NodeUnreachableError: If the registry cannot produce a handle
    """
    try:
        return registry.get_contract(blockchain_id, path.namespace, path.container)
    except NodeUnreachableError:
        raise
    except Exception as e:
        logger.error(f"Cannot get contract {path.namespace}/{path.container} on {blockchain_id}: {e}")
        raise NodeUnreachableError(str(e)) from e
