"""
Bookkeeping for live subscriptions and pending operations, so clients can
cancel them by id.
"""

import asyncio
import logging
import uuid
from typing import Dict, List, Optional, Union

from .subscription import PushStream
from .types import ManualUnsubscriptionError

logger = logging.getLogger(__name__)

Trackable = Union[PushStream, asyncio.Future]


class SubscriptionManager:
    """Tracks streams and pending futures under string ids"""

    def __init__(self):
        self._items: Dict[str, Trackable] = {}

    def track(self, item: Trackable, subscription_id: Optional[str] = None) -> str:
        """
        Start tracking a stream or pending future.

        The item untracks itself once it finishes. Returns the id to pass to
        ``unsubscribe``.
        """
        subscription_id = subscription_id or str(uuid.uuid4())
        if subscription_id in self._items:
            raise ValueError(f"Subscription {subscription_id} is already tracked")

        self._items[subscription_id] = item

        def forget(*_):
            if self._items.get(subscription_id) is item:
                del self._items[subscription_id]

        if isinstance(item, PushStream):
            item.add_finalizer(forget)
        else:
            item.add_done_callback(forget)

        logger.debug(f"Tracking subscription {subscription_id}")
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """
        Cancel a tracked item.

        Streams are cancelled; pending futures fail with
        ManualUnsubscriptionError. Returns False for unknown ids.
        """
        item = self._items.pop(subscription_id, None)
        if item is None:
            return False

        if isinstance(item, PushStream):
            item.cancel()
        elif not item.done():
            item.set_exception(ManualUnsubscriptionError(f"Subscription {subscription_id} was cancelled by the client"))

        logger.info(f"Unsubscribed {subscription_id}")
        return True

    def active_subscriptions(self) -> List[str]:
        return list(self._items)

    def close(self):
        """Cancel everything still tracked"""
        for subscription_id in list(self._items):
            self.unsubscribe(subscription_id)
