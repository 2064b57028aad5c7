"""
Smart contract invocation with two-tier failure reporting.

Failures before the call is dispatched (bad path, too many outputs,
unreachable node) are raised from ``invoke``. Failures of the dispatched
call are delivered through the returned future as InvocationFailureError.
"""

import asyncio
import logging
import time
from typing import Optional, Sequence, Set

from .interfaces import IConnectionRegistry
from .metrics import SMART_CONTRACT_INVOCATIONS_TOTAL, SMART_CONTRACT_INVOCATION_DURATION_SECONDS
from .models import Parameter, Transaction
from .types import TransactionState, TooManyReturnValuesError, InvocationFailureError
from .utils import resolve_smart_contract_path, acquire_contract_handle, call_handle, decode_payload

logger = logging.getLogger(__name__)


class InvocationCoordinator:
    """Runs single smart contract calls against handles from a connection registry"""

    def __init__(self, registry: IConnectionRegistry, blockchain_id: str, max_return_values: int = 1):
        self.registry = registry
        self.blockchain_id = blockchain_id
        self.max_return_values = max_return_values
        self._tasks: Set[asyncio.Task] = set()

    def invoke(self,
               smart_contract_path: str,
               function_identifier: str,
               inputs: Sequence[Parameter],
               outputs: Sequence[Parameter]) -> "asyncio.Future[Transaction]":
        """
        Invoke a smart contract function.

        Must be called while an event loop is running; the returned future
        belongs to that loop.

        Raises:
            TooManyReturnValuesError: If more outputs are requested than supported
            InvalidAddressError: If the path cannot be resolved
            NodeUnreachableError: If no contract handle can be acquired
        """
        if len(outputs) > self.max_return_values:
            raise TooManyReturnValuesError(
                f"Backend {self.blockchain_id} supports at most {self.max_return_values} return value(s), "
                f"{len(outputs)} requested"
            )

        path = resolve_smart_contract_path(smart_contract_path)
        contract = acquire_contract_handle(self.registry, self.blockchain_id, path)

        loop = asyncio.get_running_loop()
        result: asyncio.Future = loop.create_future()
        args = [p.value for p in inputs]
        output = outputs[0] if outputs else None

        task = loop.create_task(self._execute(result, contract, function_identifier, args, output))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return result

    async def _execute(self, result: asyncio.Future, contract, function_identifier: str,
                       args: Sequence[str], output: Optional[Parameter]) -> None:
        start_time = time.time()
        try:
            raw = await call_handle(contract.submit_transaction, function_identifier, *args)
            transaction = self._build_transaction(raw, output)
        except asyncio.CancelledError:
            if not result.done():
                result.cancel()
            raise
        except Exception as e:
            # Execution failures belong to the caller's future, never raised here
            logger.error(f"Invocation of {function_identifier} on {self.blockchain_id} failed: {e}")
            SMART_CONTRACT_INVOCATIONS_TOTAL.labels(
                blockchain_id=self.blockchain_id, function=function_identifier, status='failure'
            ).inc()
            if not result.done():
                result.set_exception(InvocationFailureError(str(e)))
            return
        finally:
            SMART_CONTRACT_INVOCATION_DURATION_SECONDS.labels(
                blockchain_id=self.blockchain_id, function=function_identifier
            ).observe(time.time() - start_time)

        SMART_CONTRACT_INVOCATIONS_TOTAL.labels(
            blockchain_id=self.blockchain_id, function=function_identifier, status='success'
        ).inc()
        if not result.done():
            result.set_result(transaction)

    def _build_transaction(self, raw, output: Optional[Parameter]) -> Transaction:
        if output is None:
            logger.info(f"Transaction without a return value executed on {self.blockchain_id}")
            return Transaction(state=TransactionState.RETURN_VALUE)

        return_value = Parameter(name=output.name, type=output.type, value=decode_payload(raw))
        logger.info(f"Transaction on {self.blockchain_id} returned {return_value.value}")
        return Transaction(state=TransactionState.RETURN_VALUE, return_values=(return_value,))
