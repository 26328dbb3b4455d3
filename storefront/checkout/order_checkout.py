"""Checkout state machine for store orders.

An order moves ``pending -> processing`` when checkout begins, then either
``processing -> checkout`` once the user returns from the payment provider or
``processing -> failed`` when the provider reports a failure. ``paid`` and
``delivered`` are set elsewhere (payment notifications, fulfilment), but the
completion callback may arrive after them and must then leave the order alone.

Every transition runs in a single transaction holding a row lock on the
order, and inventory reservation/release happens inside that same
transaction. There is no optimistic retry: the lock is the only thing that
serializes the user callback, the provider notification and failure handling.
"""

from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.checkout.custom_items import custom_validation_errors
from storefront.core.config import settings
from storefront.core.errors import InvalidStateError, InvariantError, OrderNotFoundError
from storefront.db.models import Order, OrderStatus, Provider

logger = structlog.get_logger(__name__)

Publisher = Callable[[str, dict], None]

NOT_AVAILABLE = "This item is not available."
INSUFFICIENT_STOCK = "There is not enough of this item left in stock."
TOO_MANY = "You can only order {count} of this item per order."
MUST_SEPARATE = "This item must be checked out separately from other items."


class OrderCheckout:
    def __init__(
        self,
        db: Session,
        order: Order,
        provider: Optional[str] = None,
        provider_reference: Optional[str] = None,
        country: Optional[str] = None,
        intl: bool = False,
        publisher: Optional[Publisher] = None,
    ):
        if provider is not None:
            try:
                provider = Provider(provider)
            except ValueError:
                raise InvariantError(f"unknown checkout provider `{provider}`.")

        if provider == Provider.SHOPIFY and provider_reference is None:
            raise InvariantError("shopify provider requires a provider_reference (checkout id).")

        self.db = db
        self.order = order
        self.provider: Optional[Provider] = provider
        self.provider_reference = provider_reference
        self.country = country
        # user asked for the international payment options only
        self.intl = intl
        self.publisher = publisher

    @classmethod
    def for_order_number(cls, db: Session, order_number: Optional[str], **kwargs) -> "OrderCheckout":
        parsed = Order.parse_order_number(order_number)
        if parsed is None:
            raise OrderNotFoundError(order_number)

        user_id, order_id = parsed
        stmt = select(Order).where(Order.id == order_id, Order.user_id == user_id)
        order = db.execute(stmt).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(order_number)

        return cls(db, order, **kwargs)

    def allowed_providers(self) -> set[Provider]:
        if self.order.should_use_restricted_provider:
            return {Provider.SHOPIFY}

        if self.order.total > 0:
            allowed = {Provider.PAYPAL}
            if self._allow_centili_payment():
                allowed.add(Provider.CENTILI)
            if self._allow_xsolla_payment():
                allowed.add(Provider.XSOLLA)
            return allowed

        return {Provider.FREE}

    def centili_payment_link(self) -> str:
        params = {
            "apikey": settings.CENTILI_API_KEY,
            "country": "jp",
            "countrylock": "true",
            "reference": self.order.order_number,
            "price": str(self.order.total * settings.CENTILI_CONVERSION_RATE),
        }
        return str(httpx.URL(settings.CENTILI_WIDGET_URL, params=params))

    def is_shipping_delayed(self) -> bool:
        return Order.paid_count(self.db) > settings.DELAYED_SHIPPING_ORDER_THRESHOLD

    def begin_checkout(self) -> Order:
        # the UI only offers allowed providers; getting here means something is wrong.
        if self.provider not in self.allowed_providers():
            provider = self.provider.value if self.provider else None
            raise InvariantError(f"{provider} not in allowed checkout providers.")

        with self._transaction():
            order = self.order.lock_self(self.db)
            if not order.can_checkout():
                raise InvalidStateError(
                    f"`Order {order.id}` cannot be checked out: `{order.status.value}`",
                    order_id=order.id,
                    status=order.status.value,
                )

            order.status = OrderStatus.PROCESSING
            order.transaction_id = self._new_transaction_id()
            order.reserve_items(self.db)
            self.db.flush()

        logger.info("checkout started", order_id=order.id, provider=self.provider.value, transaction_id=order.transaction_id)
        self._publish("checkout.started", order)
        return order

    def complete_checkout(self) -> Order:
        with self._transaction():
            order = self.order.lock_self(self.db)

            # processing: the user hit the callback first.
            # paid/delivered: the provider notification got there first.
            if order.is_processing():
                order.status = OrderStatus.CHECKOUT
                self.db.flush()
            elif not order.is_paid_or_delivered():
                raise InvalidStateError(
                    f"`Order {order.id}` in wrong state: `{order.status.value}`",
                    order_id=order.id,
                    status=order.status.value,
                )

        logger.info("checkout completed", order_id=order.id, status=order.status.value)
        self._publish("checkout.completed", order)
        return order

    def fail_checkout(self) -> Order:
        with self._transaction():
            order = self.order.lock_self(self.db)
            if not order.is_processing():
                raise InvalidStateError(
                    f"`Order {order.id}` failed checkout but is not processing",
                    order_id=order.id,
                    status=order.status.value,
                )

            provider = self.provider.value if self.provider else None
            order.transaction_id = f"{provider}-failed"
            order.status = OrderStatus.FAILED
            order.release_items(self.db)
            self.db.flush()

        logger.warning("checkout failed", order_id=order.id, transaction_id=order.transaction_id)
        self._publish("checkout.failed", order)
        return order

    def validate(self) -> dict[int, list[str]]:
        """Checkout-level problems with each item, keyed by item id.

        Items without problems are left out, so a valid order gives ``{}``.
        """
        should_shopify = self.order.should_use_restricted_provider
        item_errors: dict[int, list[str]] = {}

        for item in self.order.items:
            messages = item.validation_errors()
            product = item.product

            if product is None or not product.is_available():
                messages.append(NOT_AVAILABLE)

            if product is not None:
                if not product.in_stock(item.quantity):
                    messages.append(INSUFFICIENT_STOCK)

                if item.quantity > product.max_quantity:
                    messages.append(TOO_MANY.format(count=product.max_quantity))

                if should_shopify and not product.is_shopify():
                    messages.append(MUST_SEPARATE)

                custom_errors = custom_validation_errors(item)
                if custom_errors:
                    messages.extend(custom_errors)

            if messages:
                item_errors[item.id] = messages

        return item_errors

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _allow_centili_payment(self) -> bool:
        is_japan = (self.country or "").upper() == "JP"
        return settings.CENTILI_ENABLED and is_japan and not self.order.requires_shipping and not self.intl

    def _allow_xsolla_payment(self) -> bool:
        return not self.order.requires_shipping

    def _new_transaction_id(self) -> str:
        if self.provider == Provider.SHOPIFY:
            return f"{self.provider.value}-{self.provider_reference}"
        return self.provider.value

    def _publish(self, event_type: str, order: Order) -> None:
        if self.publisher is None:
            return
        payload = {
            "order_id": order.id,
            "order_number": order.order_number,
            "status": order.status.value,
            "transaction_id": order.transaction_id,
        }
        try:
            self.publisher(event_type, payload)
        except Exception:
            # the transition is already committed; a lost event must not undo it
            logger.exception("order event publish failed", order_id=order.id, event_type=event_type)
