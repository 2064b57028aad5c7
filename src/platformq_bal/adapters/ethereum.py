"""
Ethereum adapter for monetary transactions.
Supports Ethereum and other EVM-compatible chains reachable over JSON-RPC.
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, ClassVar, Dict, FrozenSet, Optional, Set

from eth_account import Account
from web3 import Web3
from web3.exceptions import BlockNotFound, TransactionNotFound

from ..metrics import ACTIVE_SUBSCRIPTIONS, MONETARY_TRANSACTIONS_TOTAL
from ..models import Transaction
from ..subscription import PushStream
from ..types import (
    BalError, BlockchainType, Capability, EthereumConfig, InvalidParameterError,
    InvalidTransactionError, NodeUnreachableError, TransactionState
)
from ..utils import confirmations_for_confidence, normalize_address, validate_address
from .base import BaseAdapter

logger = logging.getLogger(__name__)


def _hex(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.lower()
    text = value.hex()
    return (text if text.startswith("0x") else "0x" + text).lower()


class EthereumAdapter(BaseAdapter):
    """Adapter for EVM-compatible blockchains"""

    blockchain_type: ClassVar[BlockchainType] = BlockchainType.ETHEREUM
    capabilities: ClassVar[FrozenSet[Capability]] = frozenset({
        Capability.SUBMIT_TRANSACTION,
        Capability.RECEIVE_TRANSACTIONS,
        Capability.ENSURE_TRANSACTION_STATE,
        Capability.DETECT_ORPHANED_TRANSACTION,
    })

    def __init__(self, config: EthereumConfig, w3: Optional[Web3] = None):
        self.config = config
        self.w3 = w3 or Web3(Web3.HTTPProvider(config.rpc_url))
        self.account = Account.from_key(config.private_key) if config.private_key else None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def blockchain_id(self) -> str:
        return self.config.rpc_url

    def _not_supported(self, capability: Capability, reason: Optional[str] = None):
        if capability in (Capability.INVOKE_SMART_CONTRACT, Capability.SUBSCRIBE_TO_EVENT):
            reason = reason or f"Ethereum adapter does not support {capability.value} without contract ABI descriptors!"
        return super()._not_supported(capability, reason)

    # Capability contract

    def submit_transaction(self, receiver_address: str, value: Decimal,
                           required_confidence: float) -> "asyncio.Future[Transaction]":
        """
        Transfer ether to receiver_address.

        Raises:
            InvalidParameterError: If the confidence is outside [0, 1]
            InvalidTransactionError: If the receiver or amount is invalid or no key is configured
            NodeUnreachableError: If the node does not answer
        """
        confirmations = confirmations_for_confidence(required_confidence, self.config.max_confirmations)

        if self.account is None:
            raise InvalidTransactionError("No signing key configured for the Ethereum adapter")
        if not validate_address(receiver_address):
            raise InvalidTransactionError(f"Invalid receiver address: {receiver_address}")
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise InvalidTransactionError(f"Invalid transaction value: {value}")
        if amount < 0:
            raise InvalidTransactionError(f"Transaction value must not be negative: {value}")

        self._require_connection()
        return self._run(self._submit(normalize_address(receiver_address), amount, confirmations))

    def receive_transactions(self, sender_address: Optional[str],
                             required_confidence: float) -> PushStream[Transaction]:
        """
        Stream confirmed transactions sent to this adapter's account,
        optionally only those from sender_address.
        """
        confirmations = confirmations_for_confidence(required_confidence, self.config.max_confirmations)

        if self.account is None:
            raise InvalidParameterError("No account configured to receive transactions")
        if sender_address is not None and not validate_address(sender_address):
            raise InvalidParameterError(f"Invalid sender address: {sender_address}")

        self._require_connection()

        stream: PushStream[Transaction] = PushStream(name=f"incoming transactions on {self.blockchain_id}")
        task = self._spawn(self._watch_incoming(stream, self.account.address, sender_address, confirmations))

        gauge = ACTIVE_SUBSCRIPTIONS.labels(blockchain_id=self.blockchain_id)
        gauge.inc()

        def release() -> None:
            gauge.dec()
            task.cancel()

        stream.add_finalizer(release)
        return stream

    def ensure_transaction_state(self, transaction_id: str,
                                 required_confidence: float) -> "asyncio.Future[TransactionState]":
        confirmations = confirmations_for_confidence(required_confidence, self.config.max_confirmations)
        self._require_connection()
        return self._run(self._ensure_state(transaction_id, confirmations))

    def detect_orphaned_transaction(self, transaction_id: str) -> "asyncio.Future[TransactionState]":
        self._require_connection()
        return self._run(self._detect_orphaned(transaction_id))

    def test_connection(self) -> str:
        try:
            if self.w3.is_connected():
                return "true"
            return f"Cannot connect to Ethereum node at {self.config.rpc_url}"
        except Exception as e:
            return str(e)

    # Async workers

    async def _submit(self, receiver: str, amount: Decimal, confirmations: int) -> Transaction:
        tx_dict = {
            'to': receiver,
            'value': Web3.to_wei(amount, 'ether'),
            'gas': self.config.gas_limit,
            'gasPrice': await self._call(lambda: self.w3.eth.gas_price),
            'nonce': await self._call(self.w3.eth.get_transaction_count, self.account.address),
            'chainId': self.config.chain_id or await self._call(lambda: self.w3.eth.chain_id),
        }

        try:
            signed_tx = self.account.sign_transaction(tx_dict)
            raw_tx = getattr(signed_tx, 'raw_transaction', None) or signed_tx.rawTransaction
            tx_hash = _hex(await self._call(self.w3.eth.send_raw_transaction, raw_tx))
        except Exception as e:
            logger.error(f"Transaction to {receiver} rejected: {e}")
            MONETARY_TRANSACTIONS_TOTAL.labels(blockchain_id=self.blockchain_id, status='rejected').inc()
            raise InvalidTransactionError(str(e)) from e

        logger.info(f"Submitted transaction {tx_hash}, waiting for {confirmations} confirmation(s)")
        receipt = await self._wait_for_confirmations(tx_hash, confirmations)
        MONETARY_TRANSACTIONS_TOTAL.labels(blockchain_id=self.blockchain_id, status='confirmed').inc()

        return Transaction(
            state=TransactionState.CONFIRMED,
            transaction_hash=tx_hash,
            block_hash=_hex(receipt['blockHash']),
            block_number=receipt['blockNumber'],
            from_address=self.account.address,
            to_address=receiver,
            value=amount
        )

    async def _wait_for_confirmations(self, tx_hash: str, confirmations: int) -> Dict[str, Any]:
        while True:
            receipt = await self._get_receipt(tx_hash)
            if receipt is not None and receipt.get('blockNumber') is not None:
                if await self._is_deep_enough(receipt, confirmations):
                    return receipt
            await asyncio.sleep(self.config.poll_interval)

    async def _ensure_state(self, transaction_id: str, confirmations: int) -> TransactionState:
        while True:
            tx = await self._get_transaction(transaction_id)
            if tx is None:
                return TransactionState.NOT_FOUND
            if tx.get('blockNumber') is not None and await self._is_deep_enough(tx, confirmations):
                return TransactionState.CONFIRMED
            await asyncio.sleep(self.config.poll_interval)

    async def _detect_orphaned(self, transaction_id: str) -> TransactionState:
        mined = False
        while True:
            tx = await self._get_transaction(transaction_id)
            if tx is None:
                return TransactionState.ORPHANED if mined else TransactionState.NOT_FOUND

            if tx.get('blockNumber') is None:
                if mined:
                    # Back in the pool: the block that held it was dropped
                    return TransactionState.ORPHANED
            else:
                mined = True
                if not await self._is_canonical(tx['blockNumber'], tx['blockHash']):
                    return TransactionState.ORPHANED
                head = await self._call(lambda: self.w3.eth.block_number)
                if head - tx['blockNumber'] + 1 >= self.config.orphan_check_depth:
                    return TransactionState.CONFIRMED

            await asyncio.sleep(self.config.poll_interval)

    async def _watch_incoming(self, stream: PushStream[Transaction], receiver: str,
                              sender: Optional[str], confirmations: int) -> None:
        receiver = receiver.lower()
        sender = sender.lower() if sender else None
        try:
            next_block = await self._call(lambda: self.w3.eth.block_number)
            while not stream.closed:
                head = await self._call(lambda: self.w3.eth.block_number)
                while next_block <= head - confirmations + 1 and not stream.closed:
                    block = await self._call(self.w3.eth.get_block, next_block, True)
                    for tx in block['transactions']:
                        if (tx.get('to') or '').lower() != receiver:
                            continue
                        if sender is not None and (tx.get('from') or '').lower() != sender:
                            continue
                        stream.emit(self._incoming_transaction(tx, block))
                    next_block += 1
                await asyncio.sleep(self.config.poll_interval)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error watching incoming transactions on {self.blockchain_id}: {e}")
            stream.fail(NodeUnreachableError(str(e)))

    def _incoming_transaction(self, tx: Dict[str, Any], block: Dict[str, Any]) -> Transaction:
        return Transaction(
            state=TransactionState.CONFIRMED,
            transaction_hash=_hex(tx.get('hash')),
            block_hash=_hex(block.get('hash')),
            block_number=block.get('number'),
            from_address=tx.get('from'),
            to_address=tx.get('to'),
            value=Decimal(str(Web3.from_wei(tx.get('value', 0), 'ether')))
        )

    # Node access

    async def _get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._call(self.w3.eth.get_transaction, tx_hash)
        except TransactionNotFound:
            return None

    async def _get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._call(self.w3.eth.get_transaction_receipt, tx_hash)
        except TransactionNotFound:
            return None

    async def _is_deep_enough(self, tx: Dict[str, Any], confirmations: int) -> bool:
        head = await self._call(lambda: self.w3.eth.block_number)
        if head - tx['blockNumber'] + 1 < confirmations:
            return False
        return await self._is_canonical(tx['blockNumber'], tx['blockHash'])

    async def _is_canonical(self, block_number: int, block_hash: Any) -> bool:
        try:
            block = await self._call(self.w3.eth.get_block, block_number)
        except BlockNotFound:
            # Head moved below the block after a reorg
            return False
        return block is not None and _hex(block['hash']) == _hex(block_hash)

    async def _call(self, fn, *args) -> Any:
        return await asyncio.to_thread(fn, *args)

    def _require_connection(self) -> None:
        try:
            connected = self.w3.is_connected()
        except Exception as e:
            raise NodeUnreachableError(str(e)) from e
        if not connected:
            raise NodeUnreachableError(f"Ethereum node at {self.config.rpc_url} is not reachable")

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _run(self, coro: Awaitable) -> asyncio.Future:
        """Run a worker, delivering its outcome through a single-assignment future"""
        result = asyncio.get_running_loop().create_future()

        async def runner():
            try:
                value = await coro
            except asyncio.CancelledError:
                if not result.done():
                    result.cancel()
                raise
            except BalError as e:
                if not result.done():
                    result.set_exception(e)
            except Exception as e:
                logger.error(f"Ethereum node error on {self.blockchain_id}: {e}")
                if not result.done():
                    result.set_exception(NodeUnreachableError(str(e)))
            else:
                if not result.done():
                    result.set_result(value)

        self._spawn(runner())
        return result
