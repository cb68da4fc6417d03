"""Customer notifications for order lifecycle events.

Dispatch is best effort: whatever the mail transport does, the dispatcher
returns a ``DispatchOutcome`` and never raises, so a failed email can not
undo or block the order change that triggered it.
"""

from datetime import datetime
from typing import Callable, Optional, Tuple

import structlog
from jinja2 import DictLoader, Environment, select_autoescape
from pydantic import BaseModel

from .errors import NotificationDispatchFailure
from .mail import MailSender
from .models import Order, TimelineEntry

logger = structlog.get_logger(__name__)

TEMPLATES = {
    "order_created.html": """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #2c3e50;">{{ brand }} Order Confirmation</h2>
  <div style="background-color: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <h3 style="color: #495057; margin-top: 0;">Order Details</h3>
    <p><strong>Tracking ID:</strong> {{ tracking_id }}</p>
    <p><strong>Status:</strong> Order Created</p>
    <p><strong>Items:</strong> {{ summary }}</p>
  </div>
  <p>Your order has been confirmed and is being processed. You will receive
  updates as your package moves through our delivery network.</p>
  <p style="color: #6c757d; font-size: 14px;">Thank you for choosing {{ brand }}!</p>
</div>
""",
    "status_changed.html": """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #2c3e50;">{{ brand }} Status Update</h2>
  <div style="background-color: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <h3 style="color: #495057; margin-top: 0;">Update Details</h3>
    <p><strong>Tracking ID:</strong> {{ tracking_id }}</p>
    <p><strong>New Status:</strong> <span style="color: #28a745; font-weight: bold;">{{ status }}</span></p>
    {% if location %}<p><strong>Location:</strong> {{ location }}</p>{% endif %}
    {% if timestamp %}<p><strong>Updated:</strong> {{ timestamp }}</p>{% endif %}
  </div>
  <p>You can track your package in real time using the tracking ID above.</p>
</div>
""",
}

env = Environment(loader=DictLoader(TEMPLATES), autoescape=select_autoescape(["html"]))


class DispatchOutcome(BaseModel):
    ok: bool
    delivery_ref: Optional[str] = None
    reason: Optional[str] = None


def route_summary(order: Order) -> str:
    shipping = order.shipping_info()
    return f"Package from {shipping.from_} to {shipping.to}"


def _format_timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S")


class NotificationDispatcher:
    def __init__(self, sender: MailSender, brand: str = "ParcelX"):
        self.sender = sender
        self.brand = brand

    def notify_order_created(self, order: Order) -> DispatchOutcome:
        def compose():
            subject = f"{self.brand} Order Confirmation - Tracking ID: {order.tracking_id}"
            body = env.get_template("order_created.html").render(
                brand=self.brand,
                tracking_id=order.tracking_id,
                summary=route_summary(order),
            )
            return subject, body

        return self._send(order, "order_created", compose)

    def notify_status_changed(self, order: Order, entry: TimelineEntry) -> DispatchOutcome:
        def compose():
            subject = f"{self.brand} Status Update - {order.tracking_id}"
            body = env.get_template("status_changed.html").render(
                brand=self.brand,
                tracking_id=order.tracking_id,
                status=entry.status,
                location=entry.location or order.shipping_info().to,
                timestamp=_format_timestamp(entry.date),
            )
            return subject, body

        return self._send(order, "status_changed", compose, status=entry.status)

    def _send(self, order: Order, kind: str, compose: Callable[[], Tuple[str, str]], **context) -> DispatchOutcome:
        log = logger.bind(tracking_id=order.tracking_id, notification=kind, **context)
        # rendering failures count as dispatch failures too
        try:
            subject, body = compose()
            to = order.customer_info().email
            result = self.sender.send(to, subject, body, is_html=True)
        except Exception as e:
            failure = NotificationDispatchFailure(str(e) or e.__class__.__name__)
            log.error("notification dispatch failed", reason=failure.reason, exc_info=True)
            return DispatchOutcome(ok=False, reason=failure.reason)

        if not result.get("ok"):
            failure = NotificationDispatchFailure(result.get("reason") or "Unknown dispatch error")
            log.warning("notification dispatch failed", reason=failure.reason)
            return DispatchOutcome(ok=False, reason=failure.reason)

        log.info("notification sent", to=to, message_id=result.get("message_id"))
        return DispatchOutcome(ok=True, delivery_ref=result.get("message_id"))
