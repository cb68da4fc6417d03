from datetime import datetime, timezone
from typing import List, Optional
import math

import structlog
from fastapi import FastAPI, Depends, Query, Request
from fastapi.responses import JSONResponse

from .deps import init_db, get_order_service, settings
from .errors import DuplicateTrackingId, OrderNotFound, ValidationError
from .logconfig import configure_logging
from .models import ApiModel, OrderCreate, OrderRead, OrderUpdate, StatusAppend
from .service import OrderService

logger = structlog.get_logger(__name__)

app = FastAPI(title="Parcel Tracker")


# ---------- Response shapes ----------
class OrderEnvelope(ApiModel):
    message: Optional[str] = None
    order: OrderRead


class OrderPage(ApiModel):
    orders: List[OrderRead]
    total: int
    total_pages: int
    current_page: int


class MessageOut(ApiModel):
    message: str


def envelope(order, message: Optional[str] = None) -> OrderEnvelope:
    return OrderEnvelope(message=message, order=OrderRead.from_order(order))


# ---------- Lifecycle ----------
@app.on_event("startup")
def on_startup():
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    init_db()


# ---------- Error mapping ----------
@app.exception_handler(ValidationError)
def on_validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message, "group": exc.group})


@app.exception_handler(OrderNotFound)
def on_not_found(request: Request, exc: OrderNotFound):
    return JSONResponse(status_code=404, content={"detail": "Order not found"})


@app.exception_handler(DuplicateTrackingId)
def on_duplicate(request: Request, exc: DuplicateTrackingId):
    logger.warning("duplicate tracking id rejected", tracking_id=exc.tracking_id)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


# ---------- Health ----------
@app.get("/api/health")
def health():
    return {
        "message": "Parcel tracker API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": "healthy",
    }


# ---------- Orders ----------
@app.get("/api/orders", response_model=OrderPage)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    service: OrderService = Depends(get_order_service),
):
    orders, total = service.list_orders(search=search, page=page, limit=limit)
    return OrderPage(
        orders=[OrderRead.from_order(o) for o in orders],
        total=total,
        total_pages=math.ceil(total / limit),
        current_page=page,
    )


# Public tracking page lookup: tracking code only
@app.get("/api/orders/track/{tracking_id}", response_model=OrderEnvelope)
def track_order(tracking_id: str, service: OrderService = Depends(get_order_service)):
    return envelope(service.store.get_by_tracking_id(tracking_id))


@app.get("/api/orders/{ref}", response_model=OrderEnvelope)
def get_order(ref: str, service: OrderService = Depends(get_order_service)):
    return envelope(service.get_order(ref))


@app.post("/api/orders", response_model=OrderEnvelope, status_code=201)
def create_order(payload: OrderCreate, service: OrderService = Depends(get_order_service)):
    return envelope(service.create_order(payload), "Order created successfully")


@app.put("/api/orders/{ref}", response_model=OrderEnvelope)
def update_order(ref: str, payload: OrderUpdate, service: OrderService = Depends(get_order_service)):
    return envelope(service.update_order(ref, payload), "Order updated successfully")


@app.patch("/api/orders/{ref}/status", response_model=OrderEnvelope)
def append_status(ref: str, payload: StatusAppend, service: OrderService = Depends(get_order_service)):
    o = service.append_status(
        ref,
        payload.status,
        location=payload.location,
        date=payload.date,
        notes=payload.notes,
    )
    return envelope(o, "Timeline updated successfully")


@app.delete("/api/orders/{ref}", response_model=MessageOut)
def delete_order(ref: str, service: OrderService = Depends(get_order_service)):
    service.delete_order(ref)
    return MessageOut(message="Order deleted successfully")
