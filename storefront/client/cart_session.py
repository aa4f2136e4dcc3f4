"""Optimistic client-side view of one user's cart.

Edits are applied to the local mirror at once and queued; the queue is sent as
a single batch once no new edit has arrived for ``flush_delay`` seconds. If
the server rejects anything, the mirror and the queue are thrown away and the
cart is reloaded, so the view never drifts from what the server holds past
the next flush.
"""
import asyncio
import logging
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from storefront.application.batch_cart import CartOperation
from storefront.client.events import CartEventBus
from storefront.client.guest_cart import GuestCart, GuestCartMerger
from storefront.client.interfaces import CartBackend
from storefront.client.models import CartLine, CartSnapshot

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


class CartSession:
    def __init__(
        self,
        backend: CartBackend,
        events: CartEventBus,
        guest_cart: Optional[GuestCart] = None,
        user_id: Optional[str] = None,
        flush_delay: float = 0.5,
        merger: Optional[GuestCartMerger] = None
    ):
        self._backend = backend
        self._events = events
        self._guest_cart = guest_cart or GuestCart()
        self._user_id = user_id
        self._flush_delay = flush_delay
        self._merger = merger

        self.state = SessionState.UNINITIALIZED
        self._mirror = CartSnapshot()
        self._pending: List[CartOperation] = []
        self._timer: Optional[asyncio.Task] = None
        self._flush_lock = asyncio.Lock()

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def items(self) -> List[CartLine]:
        return [line.model_copy() for line in self._mirror.items]

    @property
    def total_items(self) -> int:
        return self._mirror.total_items

    @property
    def total_price(self) -> Decimal:
        return self._mirror.total_price

    @property
    def has_pending_changes(self) -> bool:
        return bool(self._pending)

    def is_in_cart(self, product_id: str) -> bool:
        return self._find(product_id) is not None

    def quantity_of(self, product_id: str) -> int:
        line = self._find(product_id)
        return line.quantity if line else 0

    async def load(self) -> None:
        """Replaces the mirror with the authoritative cart"""
        self.state = SessionState.LOADING
        try:
            if self._user_id:
                snapshot = await self._backend.get_cart(self._user_id)
            else:
                snapshot = self._guest_cart.snapshot()
        except Exception:
            self.state = SessionState.UNINITIALIZED
            raise
        self._mirror = snapshot
        self.state = SessionState.READY

    async def refresh_cart(self) -> None:
        """Drops optimistic state, including queued edits, and reloads"""
        self._cancel_timer()
        self._pending = []
        await self.load()
        self._events.publish()

    async def set_user(self, user_id: Optional[str]) -> None:
        """Follows a sign-in or sign-out"""
        if user_id == self._user_id:
            return
        await self.flush()
        self._user_id = user_id
        if self._merger:
            await self._merger.on_identity_change(user_id)
        await self.load()
        self._events.publish()

    # Edits
    def add(self, product_id: str, quantity: int = 1, unit_price: Optional[Decimal] = None) -> None:
        self._require_ready()
        if quantity < 1:
            raise ValueError(f"Quantity must be at least 1, got {quantity}")
        line = self._find(product_id)
        if line:
            line.quantity += quantity
        else:
            self._mirror.items.append(CartLine(product_id=product_id, quantity=quantity, unit_price=unit_price))

        if self._user_id:
            self._enqueue(CartOperation(action="add", product_id=product_id, quantity=quantity))
        else:
            self._guest_cart.add(product_id, quantity, unit_price)
            self._events.publish()

    def remove(self, product_id: str) -> None:
        self._require_ready()
        self._mirror.items = [line for line in self._mirror.items if line.product_id != product_id]

        if self._user_id:
            self._enqueue(CartOperation(action="remove", product_id=product_id))
        else:
            self._guest_cart.remove(product_id)
            self._events.publish()

    def set_quantity(self, product_id: str, quantity: int) -> None:
        self._require_ready()
        if quantity <= 0:
            self.remove(product_id)
            return
        line = self._find(product_id)
        if line:
            line.quantity = quantity

        if self._user_id:
            self._enqueue(CartOperation(action="set", product_id=product_id, quantity=quantity))
        else:
            self._guest_cart.set_quantity(product_id, quantity)
            self._events.publish()

    def add_many(self, product_ids: List[str]) -> None:
        for product_id in product_ids:
            self.add(product_id)

    def remove_many(self, product_ids: List[str]) -> None:
        for product_id in product_ids:
            self.remove(product_id)

    async def flush(self) -> None:
        """Sends queued edits now instead of waiting for the debounce window"""
        self._cancel_timer()
        async with self._flush_lock:
            if not self._pending or not self._user_id:
                return
            operations, self._pending = self._pending, []

            try:
                outcome = await self._backend.apply_batch(self._user_id, operations)
            except Exception as e:
                logger.warning(f"Cart flush of {len(operations)} edits failed: {e}")
                await self._recover()
                return

            if outcome.failed:
                reasons = "; ".join(f"{r.product_id}: {r.reason}" for r in outcome.failed)
                logger.warning(f"Cart flush rejected {len(outcome.failed)} edits ({reasons})")
                await self._recover()
                return

            # Edits queued during the request are still optimistic; keep the local mirror then
            if not self._pending:
                self._mirror = outcome.cart
            logger.info(f"Flushed {len(operations)} cart edits for user {self._user_id}")
            self._events.publish()

    async def close(self) -> None:
        await self.flush()

    def _enqueue(self, operation: CartOperation) -> None:
        last = self._pending[-1] if self._pending else None
        if last and last.product_id == operation.product_id and last.action == operation.action:
            if operation.action == "add":
                last.quantity = (last.quantity or 1) + (operation.quantity or 1)
            elif operation.action == "set":
                last.quantity = operation.quantity
            # Removing twice is the same as removing once
        else:
            self._pending.append(operation)
        self._restart_timer()

    def _restart_timer(self) -> None:
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().create_task(self._flush_later())

    def _cancel_timer(self) -> None:
        # Only the sleeping phase is cancelled; a request in flight always completes
        if self._timer and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _flush_later(self) -> None:
        await asyncio.sleep(self._flush_delay)
        self._timer = None
        await self.flush()

    async def _recover(self) -> None:
        self._pending = []
        try:
            await self.load()
        except Exception as e:
            logger.error(f"Cart reload after failed flush failed: {e}", exc_info=True)
        self._events.publish()

    def _require_ready(self) -> None:
        if self.state != SessionState.READY:
            raise RuntimeError(f"Cart session is {self.state.value}, load it first")

    def _find(self, product_id: str) -> Optional[CartLine]:
        return next((line for line in self._mirror.items if line.product_id == product_id), None)
