"""Event handlers and the default handler table.

Fee configuration events of the exchange are decodable but deliberately
absent from the table: they carry no listing or offer state.
"""

from marketsync.core.models import EventType
from marketsync.handlers.common import (
    BackgroundTasks,
    Handler,
    HandlerContext,
    resolve_identity,
    to_price,
)
from marketsync.handlers.exchange import (
    on_listing_cancelled,
    on_listing_created,
    on_listing_sold,
    on_offer_accepted,
    on_offer_cancelled,
    on_offer_made,
)
from marketsync.handlers.seaport import on_order_cancelled, on_order_fulfilled, on_orders_matched


def default_handlers() -> dict[EventType, Handler]:
    """Return the explicit event-type → handler table."""
    return {
        EventType.LISTING_CREATED: on_listing_created,
        EventType.LISTING_SOLD: on_listing_sold,
        EventType.LISTING_CANCELLED: on_listing_cancelled,
        EventType.OFFER_MADE: on_offer_made,
        EventType.OFFER_ACCEPTED: on_offer_accepted,
        EventType.OFFER_CANCELLED: on_offer_cancelled,
        EventType.ORDER_FULFILLED: on_order_fulfilled,
        EventType.ORDER_CANCELLED: on_order_cancelled,
        EventType.ORDERS_MATCHED: on_orders_matched,
    }


__all__ = [
    "BackgroundTasks",
    "Handler",
    "HandlerContext",
    "default_handlers",
    "resolve_identity",
    "to_price",
]
