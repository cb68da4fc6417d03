import re
from typing import List, Optional, Tuple, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .errors import DuplicateTrackingId, OrderNotFound, ValidationError
from .models import (
    Customer,
    Order,
    OrderUpdate,
    PackageInfo,
    Shipping,
    TimelineEntry,
    utcnow,
)

# Store ids are autoincrement integers; anything else is a tracking code.
NATIVE_ID = re.compile(r"^[0-9]+$")
MAX_ID = 2 ** 63 - 1  # signed 64-bit INTEGER


def normalize_code(code: str) -> str:
    return code.strip().upper()


def _overlay(group: str, current: dict, patch: Optional[BaseModel], model: Type[BaseModel]) -> Optional[BaseModel]:
    """Field-level merge of ``patch`` over ``current``, revalidated as ``model``."""
    if patch is None:
        return None
    data = {**current, **patch.model_dump(exclude_unset=True, exclude_none=True)}
    try:
        return model.model_validate(data)
    except SchemaError as e:
        raise ValidationError(group) from e


class OrderStore:
    def __init__(self, session: Session, clock=utcnow):
        self.session = session
        self.clock = clock

    # ---------- Lookup ----------
    def get_by_id(self, order_id: int) -> Order:
        o = self.session.get(Order, order_id)
        if o is None:
            raise OrderNotFound(order_id)
        return o

    def get_by_tracking_id(self, code: str) -> Order:
        code = normalize_code(code)
        o = self.session.exec(select(Order).where(Order.tracking_id == code)).first()
        if o is None:
            raise OrderNotFound(code)
        return o

    def resolve(self, ref: Union[int, str]) -> Order:
        """Find an order by store id or by tracking code, whichever ``ref`` looks like."""
        ref = str(ref).strip()
        if NATIVE_ID.match(ref):
            order_id = int(ref)
            if order_id > MAX_ID:
                raise OrderNotFound(ref)
            return self.get_by_id(order_id)
        return self.get_by_tracking_id(ref)

    def exists(self, code: str) -> bool:
        code = normalize_code(code)
        return self.session.exec(select(Order.id).where(Order.tracking_id == code)).first() is not None

    # ---------- Mutations ----------
    def create(self, o: Order) -> Order:
        o.tracking_id = normalize_code(o.tracking_id)
        if self.exists(o.tracking_id):
            raise DuplicateTrackingId(o.tracking_id)
        self.session.add(o)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            if "tracking_id" in str(e.orig):
                raise DuplicateTrackingId(o.tracking_id) from e
            raise
        self.session.refresh(o)
        return o

    def update(self, order_id: int, patch: OrderUpdate) -> Order:
        o = self.get_by_id(order_id)

        customer = _overlay("customer", o.customer, patch.customer, Customer)
        shipping = _overlay("shipping", o.shipping, patch.shipping, Shipping)
        package = _overlay("package", o.package, patch.package, PackageInfo)

        if customer is not None:
            o.set_customer(customer)
        if shipping is not None:
            o.set_shipping(shipping)
        if package is not None:
            o.set_package(package)
        if patch.timeline is not None:
            o.set_timeline(patch.timeline)

        return self._save(o)

    def save_timeline(self, order_id: int, entries: List[TimelineEntry]) -> Order:
        o = self.get_by_id(order_id)
        o.set_timeline(entries)
        return self._save(o)

    def delete(self, order_id: int) -> None:
        o = self.get_by_id(order_id)
        self.session.delete(o)
        self.session.commit()

    def _save(self, o: Order) -> Order:
        o.updated_at = self.clock()
        self.session.add(o)
        self.session.commit()
        self.session.refresh(o)
        return o

    # ---------- Listing ----------
    def list(self, search: Optional[str] = None, page: int = 1, limit: int = 10) -> Tuple[List[Order], int]:
        page = max(page, 1)
        limit = max(limit, 1)

        conditions = []
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            conditions.append(or_(
                Order.tracking_id.ilike(pattern),
                Order.customer["name"].as_string().ilike(pattern),
                Order.customer["email"].as_string().ilike(pattern),
                Order.shipping["from_"].as_string().ilike(pattern),
                Order.shipping["to"].as_string().ilike(pattern),
            ))

        total = self.session.exec(select(func.count()).select_from(Order).where(*conditions)).one()
        items = self.session.exec(
            select(Order)
            .where(*conditions)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return list(items), total
