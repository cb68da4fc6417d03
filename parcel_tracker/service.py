"""Order lifecycle orchestration.

create -> (update | append status)* -> delete

Notifications are handed to ``defer`` after the mutation is committed. The
HTTP layer passes FastAPI's ``BackgroundTasks.add_task`` so mail goes out
after the response; by default they run inline. Either way the dispatcher
never raises, so the stored order never depends on mail delivery.
"""

from datetime import datetime
from typing import Callable, List, Optional, Tuple, Type, Union

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from .errors import DuplicateTrackingId, ValidationError
from .models import (
    Customer,
    Order,
    OrderCreate,
    OrderUpdate,
    PackageInfo,
    Shipping,
    utcnow,
)
from .notifications import NotificationDispatcher
from .store import OrderStore
from .timeline import TimelineManager
from .tracking import TrackingIdGenerator

logger = structlog.get_logger(__name__)


def _run_now(fn: Callable, *args) -> None:
    fn(*args)


def _require(group: str, draft: Optional[BaseModel], model: Type[BaseModel]) -> BaseModel:
    if draft is None:
        raise ValidationError(group)
    try:
        return model.model_validate(draft.model_dump(exclude_none=True))
    except SchemaError as e:
        raise ValidationError(group) from e


class OrderService:
    def __init__(
        self,
        store: OrderStore,
        dispatcher: NotificationDispatcher,
        timeline: Optional[TimelineManager] = None,
        generator: Optional[TrackingIdGenerator] = None,
        max_id_attempts: int = 5,
        defer: Optional[Callable] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.timeline = timeline or TimelineManager()
        self.generator = generator or TrackingIdGenerator()
        self.max_id_attempts = max(max_id_attempts, 1)
        self.defer = defer or _run_now

    # ---------- Create ----------
    def create_order(self, payload: OrderCreate) -> Order:
        customer = _require("customer", payload.customer, Customer)
        shipping = _require("shipping", payload.shipping, Shipping)
        package = _require("package", payload.package, PackageInfo)

        entries = list(payload.timeline) or [self.timeline.initial_entry(shipping.from_)]

        def build(tracking_id: str) -> Order:
            now = utcnow()
            o = Order(tracking_id=tracking_id, created_at=now, updated_at=now)
            o.set_customer(customer)
            o.set_shipping(shipping)
            o.set_package(package)
            o.set_timeline(entries)
            return o

        if payload.tracking_id and payload.tracking_id.strip():
            order = self.store.create(build(payload.tracking_id))
        else:
            order = self._create_with_generated_id(build)

        logger.info("order created", order_id=order.id, tracking_id=order.tracking_id)
        self.defer(self.dispatcher.notify_order_created, order)
        return order

    def _create_with_generated_id(self, build: Callable[[str], Order]) -> Order:
        for attempt in range(1, self.max_id_attempts + 1):
            candidate = self.generator.generate()
            try:
                return self.store.create(build(candidate))
            except DuplicateTrackingId:
                logger.warning("tracking id collision", tracking_id=candidate, attempt=attempt)
                if attempt == self.max_id_attempts:
                    raise
        raise AssertionError("unreachable")

    # ---------- Read ----------
    def get_order(self, ref: Union[int, str]) -> Order:
        return self.store.resolve(ref)

    def list_orders(self, search: Optional[str] = None, page: int = 1, limit: int = 10) -> Tuple[List[Order], int]:
        return self.store.list(search=search, page=page, limit=limit)

    # ---------- Update ----------
    def update_order(self, ref: Union[int, str], patch: OrderUpdate) -> Order:
        order = self.store.resolve(ref)
        if patch.timeline is not None and not patch.timeline:
            raise ValidationError("timeline", "Timeline must contain at least one entry")

        previous = order.timeline_entries()
        order = self.store.update(order.id, patch)
        logger.info("order updated", order_id=order.id, tracking_id=order.tracking_id,
                    timeline_replaced=patch.timeline is not None)

        if patch.timeline is not None:
            decision = self.timeline.apply_replacement(previous, patch.timeline)
            if decision.should_notify:
                self.defer(self.dispatcher.notify_status_changed, order, decision.latest)
        return order

    def append_status(
        self,
        ref: Union[int, str],
        status: Optional[str],
        location: Optional[str] = None,
        date: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Order:
        if not status or not status.strip():
            raise ValidationError("status", "Status is required")
        order = self.store.resolve(ref)

        entries = order.timeline_entries()
        entry = self.timeline.append_status(
            entries,
            status.strip(),
            location=location.strip() if location and location.strip() else None,
            date=date,
            notes=notes,
            default_location=order.shipping_info().to,
        )
        order = self.store.save_timeline(order.id, entries)
        logger.info("status appended", order_id=order.id, tracking_id=order.tracking_id, status=entry.status)
        # appended statuses are not announced by email; see DESIGN.md
        return order

    # ---------- Delete ----------
    def delete_order(self, ref: Union[int, str]) -> None:
        order = self.store.resolve(ref)
        order_id, tracking_id = order.id, order.tracking_id
        self.store.delete(order_id)
        logger.info("order deleted", order_id=order_id, tracking_id=tracking_id)
