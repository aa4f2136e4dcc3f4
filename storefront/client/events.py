import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

CART_UPDATED = "cart-updated"


class CartEventBus:
    """Fire-and-forget broadcast between cart views of one client"""

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[], None]]] = {}

    def subscribe(self, callback: Callable[[], None], event: str = CART_UPDATED) -> Callable[[], None]:
        """Returns a function that removes the subscription"""
        self._subscribers.setdefault(event, []).append(callback)

        def unsubscribe():
            if callback in self._subscribers.get(event, []):
                self._subscribers[event].remove(callback)

        return unsubscribe

    def publish(self, event: str = CART_UPDATED) -> None:
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback()
            except Exception as e:
                # One broken view must not stop the others
                logger.error(f"Subscriber of {event} failed: {e}", exc_info=True)
