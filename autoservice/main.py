from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from autoservice.db import SessionLocal, unit_of_work
from autoservice.errors import RuleViolation
from autoservice.integrity import delete_dealership, update_dealership
from autoservice.invoicing import generate_invoice
from autoservice.loggers import configure_logging
from autoservice.models import Invoice, Stock
from autoservice.orders import create_order, resolve_order_dealership
from autoservice.roles import register_manager, register_operative
from autoservice.stock import ApplicationKey, apply_product, update_product_application

configure_logging()

app = FastAPI(title="Autoservice Rules")


def _meta(request_id: Optional[str] = None, warnings: Optional[list[str]] = None) -> dict:
    return {
        "request_id": request_id or f"req_{uuid4().hex}",
        "warnings": warnings or [],
    }


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.exception_handler(RuleViolation)
async def rule_violation_handler(request: Request, exc: RuleViolation) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "error": exc.kind, "meta": _meta()},
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"detail": "write conflicts with existing data", "error": "IntegrityError", "meta": _meta()},
    )


@app.get("/", tags=["root"])
def read_root() -> dict:
    return {"status": "ok"}


@app.get("/health", tags=["health"])
def health_check() -> dict:
    return {"status": "healthy"}


class RoleAssignment(BaseModel):
    model_config = {"json_schema_extra": {"example": {"staff_id": 7, "dealership_id": 2}}}
    staff_id: int
    dealership_id: int


@app.post("/api/v1/managers", tags=["Staff Roles"])
def create_manager(payload: RoleAssignment, db: Session = Depends(get_db)) -> dict:
    with unit_of_work(db):
        manager = register_manager(db, payload.staff_id, payload.dealership_id)
    return {
        "data": {"staff_id": manager.staff_id, "dealership_id": manager.dealership_id, "role": "manager"},
        "meta": _meta(),
    }


@app.post("/api/v1/operatives", tags=["Staff Roles"])
def create_operative(payload: RoleAssignment, db: Session = Depends(get_db)) -> dict:
    with unit_of_work(db):
        operative = register_operative(db, payload.staff_id, payload.dealership_id)
    return {
        "data": {"staff_id": operative.staff_id, "dealership_id": operative.dealership_id, "role": "operative"},
        "meta": _meta(),
    }


@app.get("/api/v1/staff/{staff_id}/order-dealership", tags=["Staff Roles"])
def get_order_dealership(staff_id: int, db: Session = Depends(get_db)) -> dict:
    return {
        "data": {"staff_id": staff_id, "dealership_id": resolve_order_dealership(db, staff_id)},
        "meta": _meta(),
    }


class DealershipUpdate(BaseModel):
    model_config = {"json_schema_extra": {"example": {"name": "Autoservice Centro", "manager_id": 7}}}
    rif: Optional[str] = None
    name: Optional[str] = None
    manager_id: Optional[int] = None


@app.patch("/api/v1/dealerships/{dealership_id}", tags=["Dealerships"])
def patch_dealership(dealership_id: int, payload: DealershipUpdate, db: Session = Depends(get_db)) -> dict:
    with unit_of_work(db):
        dealership = update_dealership(db, dealership_id, payload.model_dump(exclude_unset=True))
    return {
        "data": {
            "dealership_id": dealership.id,
            "rif": dealership.rif,
            "name": dealership.name,
            "manager_id": dealership.manager_id,
        },
        "meta": _meta(),
    }


@app.delete("/api/v1/dealerships/{dealership_id}", tags=["Dealerships"])
def remove_dealership(dealership_id: int, db: Session = Depends(get_db)) -> dict:
    with unit_of_work(db):
        delete_dealership(db, dealership_id)
    return {"data": {"dealership_id": dealership_id, "deleted": True}, "meta": _meta()}


@app.get("/api/v1/dealerships/{dealership_id}/stock/{product_id}", tags=["Stock"])
def get_stock(dealership_id: int, product_id: int, db: Session = Depends(get_db)) -> dict:
    stock = db.get(Stock, (product_id, dealership_id))
    if not stock:
        raise HTTPException(status_code=404, detail="stock not found")
    return {
        "data": {
            "product_id": stock.product_id,
            "dealership_id": stock.dealership_id,
            "product_count": stock.product_count,
            "product_cost": float(stock.product_cost),
            "min_capacity": stock.min_capacity,
            "max_capacity": stock.max_capacity,
            "below_min_capacity": stock.product_count < stock.min_capacity,
        },
        "meta": _meta(),
    }


class OrderCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'vehicle_id': 3, 'analyst_id': 7, 'reservation_timestamp': '2026-01-15T09:00:00', 'checkin_timestamp': '2026-01-15T10:00:00', 'vehicle_kilometrage': 45200}}}
    vehicle_id: int
    analyst_id: int
    reservation_timestamp: datetime
    checkin_timestamp: Optional[datetime] = None
    estimated_checkout_timestamp: Optional[datetime] = None
    checkout_timestamp: Optional[datetime] = None
    vehicle_kilometrage: Decimal


@app.post("/api/v1/orders", tags=["Orders"])
def post_order(payload: OrderCreate, db: Session = Depends(get_db)) -> dict:
    with unit_of_work(db):
        order = create_order(
            db,
            vehicle_id=payload.vehicle_id,
            analyst_id=payload.analyst_id,
            reservation_timestamp=payload.reservation_timestamp,
            vehicle_kilometrage=payload.vehicle_kilometrage,
            checkin_timestamp=payload.checkin_timestamp,
            estimated_checkout_timestamp=payload.estimated_checkout_timestamp,
            checkout_timestamp=payload.checkout_timestamp,
        )
    return {
        "data": {
            "order_id": order.id,
            "vehicle_id": order.vehicle_id,
            "analyst_id": order.analyst_id,
            "dealership_id": order.dealership_id,
            "reservation_timestamp": order.reservation_timestamp.isoformat(),
        },
        "meta": _meta(),
    }


class ProductApplicationCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'activity_number': 1, 'service_id': 4, 'product_id': 12, 'employee_id': 9, 'application_count': 2}}}
    activity_number: int
    service_id: int
    product_id: int
    employee_id: int
    application_count: int = Field(gt=0)


def _application_data(application) -> dict:
    return {
        "order_id": application.order_id,
        "activity_number": application.activity_number,
        "service_id": application.service_id,
        "product_id": application.product_id,
        "employee_id": application.employee_id,
        "application_count": application.application_count,
        "product_cost": float(application.product_cost),
    }


@app.post("/api/v1/orders/{order_id}/product-applications", tags=["Product Applications"])
def post_product_application(
    order_id: int, payload: ProductApplicationCreate, db: Session = Depends(get_db)
) -> dict:
    with unit_of_work(db):
        application = apply_product(
            db,
            order_id,
            payload.activity_number,
            payload.service_id,
            payload.product_id,
            payload.employee_id,
            payload.application_count,
        )
    return {"data": _application_data(application), "meta": _meta()}


@app.patch("/api/v1/orders/{order_id}/product-applications", tags=["Product Applications"])
def patch_product_application(
    order_id: int, payload: ProductApplicationCreate, db: Session = Depends(get_db)
) -> dict:
    key = ApplicationKey(
        order_id=order_id,
        activity_number=payload.activity_number,
        service_id=payload.service_id,
        product_id=payload.product_id,
        employee_id=payload.employee_id,
    )
    with unit_of_work(db):
        application = update_product_application(db, key, payload.application_count)
    return {"data": _application_data(application), "meta": _meta()}


class InvoiceCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'order_id': 31, 'issue_date': '2026-01-16'}}}
    order_id: int
    issue_date: Optional[date] = None
    discount: Optional[Decimal] = None
    amount_due: Optional[Decimal] = None


def _invoice_data(invoice: Invoice) -> dict:
    return {
        "invoice_id": invoice.id,
        "order_id": invoice.order_id,
        "discount": float(invoice.discount),
        "amount_due": float(invoice.amount_due),
        "issue_date": invoice.issue_date.isoformat(),
    }


@app.post("/api/v1/invoices", tags=["Invoices"])
def post_invoice(payload: InvoiceCreate, db: Session = Depends(get_db)) -> dict:
    warnings: list[str] = []
    if payload.discount is not None:
        warnings.append("discount_ignored")
    if payload.amount_due is not None:
        warnings.append("amount_due_ignored")
    with unit_of_work(db):
        invoice = generate_invoice(db, payload.order_id, issue_date=payload.issue_date)
    return {"data": _invoice_data(invoice), "meta": _meta(warnings=warnings)}


@app.get("/api/v1/invoices/{invoice_id}", tags=["Invoices"])
def get_invoice(invoice_id: int, db: Session = Depends(get_db)) -> dict:
    invoice = db.get(Invoice, invoice_id)
    if not invoice:
        raise HTTPException(status_code=404, detail="invoice not found")
    return {"data": _invoice_data(invoice), "meta": _meta()}
