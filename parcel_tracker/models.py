from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

import sqlmodel
from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import JSON, Column
from sqlmodel import SQLModel

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

DELIVERED = "Delivered"
ORDER_PLACED = "Order Placed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PackageCategory(str, Enum):
    ELECTRONICS = "Electronics"
    CLOTHING = "Clothing"
    DOCUMENTS = "Documents"
    FRAGILE = "Fragile"
    OTHER = "Other"


class ProofKind(str, Enum):
    IMAGE = "image"
    SIGNATURE = "signature"
    TEXT = "text"


class ApiModel(BaseModel):
    """Base for everything that crosses the HTTP boundary (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------- Validated groups ----------
class Customer(ApiModel):
    name: NonEmptyStr
    email: NonEmptyStr
    phone: NonEmptyStr
    address: NonEmptyStr

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: str) -> str:
        return v.lower()


class Shipping(ApiModel):
    from_: NonEmptyStr = Field(alias="from")
    to: NonEmptyStr
    expected_delivery: datetime


class PackageInfo(ApiModel):
    type: PackageCategory = PackageCategory.OTHER
    weight: NonEmptyStr
    dimensions: NonEmptyStr
    value: NonEmptyStr
    special_instructions: str = ""

    @field_validator("special_instructions", mode="before")
    @classmethod
    def _strip_instructions(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else ("" if v is None else v)


class ProofOfDelivery(ApiModel):
    type: ProofKind
    url: Optional[str] = None
    alt: Optional[str] = None
    content: Optional[str] = None


class TimelineEntry(ApiModel):
    status: NonEmptyStr
    date: datetime
    time: str
    location: NonEmptyStr
    completed: bool = False
    proof_of_delivery: Optional[ProofOfDelivery] = None
    notes: Optional[str] = None


# ---------- Partial groups (request drafts and patches) ----------
class CustomerPatch(ApiModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class ShippingPatch(ApiModel):
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    expected_delivery: Optional[datetime] = None


class PackagePatch(ApiModel):
    type: Optional[PackageCategory] = None
    weight: Optional[str] = None
    dimensions: Optional[str] = None
    value: Optional[str] = None
    special_instructions: Optional[str] = None


class OrderCreate(ApiModel):
    tracking_id: Optional[str] = None
    customer: Optional[CustomerPatch] = None
    shipping: Optional[ShippingPatch] = None
    package: Optional[PackagePatch] = None
    timeline: List[TimelineEntry] = []


class OrderUpdate(ApiModel):
    customer: Optional[CustomerPatch] = None
    shipping: Optional[ShippingPatch] = None
    package: Optional[PackagePatch] = None
    timeline: Optional[List[TimelineEntry]] = None


class StatusAppend(ApiModel):
    status: Optional[str] = None
    location: Optional[str] = None
    date: Optional[datetime] = None
    notes: Optional[str] = None


# ---------- Storage ----------
def _json(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json")


class Order(SQLModel, table=True):
    id: Optional[int] = sqlmodel.Field(default=None, primary_key=True)
    tracking_id: str = sqlmodel.Field(index=True, unique=True)          # always uppercase
    customer: Dict[str, Any] = sqlmodel.Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    shipping: Dict[str, Any] = sqlmodel.Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    package: Dict[str, Any] = sqlmodel.Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    timeline: List[Dict[str, Any]] = sqlmodel.Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = sqlmodel.Field(default_factory=utcnow)
    updated_at: datetime = sqlmodel.Field(default_factory=utcnow)

    # JSON columns are only flushed when reassigned, so setters always build new objects.
    def set_customer(self, customer: Customer) -> None:
        self.customer = _json(customer)

    def set_shipping(self, shipping: Shipping) -> None:
        self.shipping = _json(shipping)

    def set_package(self, package: PackageInfo) -> None:
        self.package = _json(package)

    def set_timeline(self, entries: List[TimelineEntry]) -> None:
        self.timeline = [_json(e) for e in entries]

    def customer_info(self) -> Customer:
        return Customer.model_validate(self.customer)

    def shipping_info(self) -> Shipping:
        return Shipping.model_validate(self.shipping)

    def package_info(self) -> PackageInfo:
        return PackageInfo.model_validate(self.package)

    def timeline_entries(self) -> List[TimelineEntry]:
        return [TimelineEntry.model_validate(e) for e in self.timeline]

    @property
    def current_status(self) -> Optional[str]:
        return self.timeline[-1]["status"] if self.timeline else None


class OrderRead(ApiModel):
    id: int
    tracking_id: str
    customer: Customer
    shipping: Shipping
    package: PackageInfo
    timeline: List[TimelineEntry]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_order(cls, o: Order) -> "OrderRead":
        return cls(
            id=o.id,
            tracking_id=o.tracking_id,
            customer=o.customer_info(),
            shipping=o.shipping_info(),
            package=o.package_info(),
            timeline=o.timeline_entries(),
            created_at=o.created_at,
            updated_at=o.updated_at,
        )
