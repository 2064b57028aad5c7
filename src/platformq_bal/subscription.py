"""
Event subscription engine.

Turns native contract listener callbacks into filtered, lifecycle-managed
async streams of occurrences. Every stream releases its native listener
exactly once, whichever way it ends.

Usage:
    async with adapter.subscribe_to_event("chan/cc", "Transferred", outputs, 0.0, "amount > 10") as stream:
        async for occurrence in stream:
            ...
"""

import asyncio
import logging
from typing import Any, Callable, Generic, List, Optional, Sequence, TypeVar

from .interfaces import IConnectionRegistry, IFilterEvaluator
from .metrics import ACTIVE_SUBSCRIPTIONS, OCCURRENCES_EMITTED_TOTAL, FILTER_ERRORS_TOTAL
from .models import ContractEvent, Occurrence, Parameter
from .types import InvalidFilterExpressionError, NodeUnreachableError
from .utils import resolve_smart_contract_path, acquire_contract_handle, decode_payload, to_iso_timestamp

logger = logging.getLogger(__name__)

T = TypeVar('T')

_END = object()


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException):
        self.error = error


class PushStream(Generic[T]):
    """
    Push-based async stream with guaranteed, single-shot cleanup.

    Producers call ``emit``, ``fail`` and ``complete`` from any thread;
    calls from outside the owning loop are marshalled onto it. Consumers
    iterate with ``async for`` and stop it with ``cancel`` (loop thread
    only), ``aclose`` or by leaving an ``async with`` block.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None, name: str = "stream"):
        self.name = name
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._finalizers: List[Callable[[], Any]] = []
        self._closed = False
        self._cancelled = False
        self._finalized = False

    @property
    def closed(self) -> bool:
        """True once no further items will be delivered"""
        return self._closed

    @property
    def finalized(self) -> bool:
        return self._finalized

    def add_finalizer(self, finalizer: Callable[[], Any]) -> None:
        """Register cleanup; runs immediately if the stream is already finalized"""
        if self._finalized:
            self._run_finalizer(finalizer)
        else:
            self._finalizers.append(finalizer)

    def emit(self, item: T) -> None:
        self._dispatch(self._put_item, item)

    def fail(self, error: BaseException) -> None:
        self._dispatch(self._put_failure, error)

    def complete(self) -> None:
        self._dispatch(self._put_end, None)

    def cancel(self) -> None:
        """Stop the stream now; queued items are dropped and cleanup runs before returning"""
        if self._cancelled:
            return
        self._cancelled = True
        self._closed = True
        self._finalize()

        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_END)

    async def aclose(self) -> None:
        self.cancel()

    def __aiter__(self) -> "PushStream[T]":
        return self

    async def __anext__(self) -> T:
        if self._cancelled:
            raise StopAsyncIteration

        item = await self._queue.get()

        if self._cancelled or item is _END:
            self._queue.put_nowait(_END)
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._queue.put_nowait(_END)
            raise item.error
        return item

    async def __aenter__(self) -> "PushStream[T]":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()

    def _dispatch(self, fn: Callable[[Any], None], arg: Any) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            fn(arg)
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(fn, arg)

    def _put_item(self, item: T) -> None:
        if not self._closed:
            self._queue.put_nowait(item)

    def _put_failure(self, error: BaseException) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_Failure(error))
        self._finalize()

    def _put_end(self, _: Any) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END)
        self._finalize()

    def _finalize(self) -> None:
        if self._finalized:
            return
        self._finalized = True
        finalizers, self._finalizers = self._finalizers, []
        for finalizer in finalizers:
            self._run_finalizer(finalizer)

    def _run_finalizer(self, finalizer: Callable[[], Any]) -> None:
        try:
            finalizer()
        except Exception as e:
            logger.error(f"Error releasing {self.name}: {e}")


class OccurrenceStream(PushStream[Occurrence]):
    """Stream of occurrences for one event subscription"""

    def __init__(self, event_identifier: str, blockchain_id: str,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        super().__init__(loop=loop, name=f"subscription to {event_identifier} on {blockchain_id}")
        self.event_identifier = event_identifier
        self.blockchain_id = blockchain_id


class EventSubscriptionEngine:
    """Registers native listeners and converts their events into occurrences"""

    def __init__(self, registry: IConnectionRegistry, blockchain_id: str,
                 filter_evaluator: Optional[IFilterEvaluator] = None):
        if filter_evaluator is None:
            from .filters import ExpressionFilterEvaluator
            filter_evaluator = ExpressionFilterEvaluator()

        self.registry = registry
        self.blockchain_id = blockchain_id
        self.filter_evaluator = filter_evaluator

    def subscribe(self,
                  smart_contract_path: str,
                  event_identifier: str,
                  output_parameters: Sequence[Parameter],
                  filter_expression: Optional[str]) -> OccurrenceStream:
        """
        Subscribe to a contract event.

        Raises:
            InvalidAddressError: If the path cannot be resolved
            NodeUnreachableError: If no contract handle can be acquired or the
                listener cannot be registered
        """
        path = resolve_smart_contract_path(smart_contract_path)
        contract = acquire_contract_handle(self.registry, self.blockchain_id, path)

        stream = OccurrenceStream(event_identifier, self.blockchain_id)
        output = output_parameters[0] if output_parameters else None

        def on_event(event: ContractEvent) -> None:
            self._handle_event(stream, event, event_identifier, output, filter_expression)

        def on_close(error: Optional[BaseException]) -> None:
            if error is None:
                logger.info(f"Event stream for {event_identifier} on {self.blockchain_id} ended")
                stream.complete()
            else:
                logger.error(f"Event stream for {event_identifier} on {self.blockchain_id} failed: {error}")
                stream.fail(NodeUnreachableError(str(error)))

        try:
            token = contract.add_contract_listener(on_event, on_close)
        except Exception as e:
            stream.cancel()
            logger.error(f"Cannot register listener for {event_identifier} on {self.blockchain_id}: {e}")
            raise NodeUnreachableError(str(e)) from e

        gauge = ACTIVE_SUBSCRIPTIONS.labels(blockchain_id=self.blockchain_id)
        gauge.inc()

        def release() -> None:
            gauge.dec()
            contract.remove_contract_listener(token)
            logger.info(f"Removed listener for {event_identifier} on {smart_contract_path}")

        stream.add_finalizer(release)
        logger.info(f"Subscribed to {event_identifier} on {smart_contract_path} ({self.blockchain_id})")
        return stream

    def _handle_event(self, stream: OccurrenceStream, event: ContractEvent, event_identifier: str,
                      output: Optional[Parameter], filter_expression: Optional[str]) -> None:
        logger.debug(f"Native event received: {event}")
        if stream.closed or event.name != event_identifier:
            return

        parameters = []
        if event.payload is not None and output is not None:
            parameters.append(Parameter(
                name=output.name,
                type=output.type,
                value=decode_payload(event.payload)
            ))

        try:
            matches = self.filter_evaluator.evaluate(filter_expression, parameters)
        except Exception as e:
            logger.error(f"Invalid filter expression '{filter_expression}' for {event_identifier}: {e}")
            FILTER_ERRORS_TOTAL.labels(blockchain_id=self.blockchain_id, event=event_identifier).inc()
            stream.fail(InvalidFilterExpressionError(str(e)))
            return

        if matches:
            OCCURRENCES_EMITTED_TOTAL.labels(blockchain_id=self.blockchain_id, event=event_identifier).inc()
            stream.emit(Occurrence(
                parameters=tuple(parameters),
                iso_timestamp=to_iso_timestamp(event.timestamp)
            ))
