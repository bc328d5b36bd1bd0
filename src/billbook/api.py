"""FastAPI REST API for billbook."""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .billing import BillingService
from .catalog import Catalog
from .errors import (
    BillbookError,
    ConfigError,
    ContentionError,
    DuplicateRecordError,
    InsufficientStockError,
    InvalidArgumentError,
    InvalidSchemaVersionError,
    InvalidStateError,
    NotFoundError,
    UnexpectedError,
)
from .models import Bill, BillStatus, Customer, Item, LineRequest
from .reports import BillReports
from .store import RecordStore

logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---


class CustomerSchema(BaseModel):
    id: str
    account_number: str
    name: str
    address: str
    phone: str
    email: Optional[str] = None
    display_name: str
    created_at: str
    updated_at: str


class CustomerCreateRequest(BaseModel):
    account_number: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=2, max_length=100)
    address: str = Field(default="", max_length=500)
    phone: str = Field(default="", max_length=15)
    email: Optional[str] = Field(None, max_length=100)


class CustomerListResponse(BaseModel):
    customers: list[CustomerSchema]
    count: int


class ItemSchema(BaseModel):
    id: str
    code: str
    name: str
    price: Decimal
    stock_quantity: int
    minimum_stock_level: int
    category: Optional[str] = None
    description: Optional[str] = None
    active: bool
    low_stock: bool
    display_name: str
    created_at: str
    updated_at: str


class ItemCreateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=30, pattern=r"^[A-Za-z0-9-]+$")
    name: str = Field(..., min_length=2, max_length=150)
    price: Decimal = Field(..., gt=0)
    stock_quantity: int = Field(default=0, ge=0)
    minimum_stock_level: int = Field(default=10, ge=0)
    category: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = Field(None, max_length=1000)


class RestockRequest(BaseModel):
    quantity: int = Field(..., ge=0, description="Units to add to stock")


class ItemListResponse(BaseModel):
    items: list[ItemSchema]
    count: int


class BillLineSchema(BaseModel):
    item_id: str
    item_code: str
    item_name: str
    quantity: int
    unit_price: Decimal
    discount_percentage: Decimal
    discount_amount: Decimal
    total_price: Decimal


class BillSchema(BaseModel):
    id: str
    bill_number: str
    customer_id: str
    bill_date: str
    lines: list[BillLineSchema]
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    status: BillStatus
    status_display: str
    total_quantity: int
    notes: Optional[str] = None
    created_at: str
    updated_at: str


class BillLineRequest(BaseModel):
    item_id: str
    quantity: int = Field(..., ge=1, le=9999)
    discount_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)


class BillUpdateRequest(BaseModel):
    """Request body for replacing a bill's lines."""

    items: list[BillLineRequest] = Field(..., min_length=1)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = Field(None, max_length=1000)


class BillCreateRequest(BillUpdateRequest):
    """Request body for creating a bill."""

    customer_id: str


class BillListResponse(BaseModel):
    bills: list[BillSchema]
    count: int


class SalesTotalResponse(BaseModel):
    start: datetime
    end: datetime
    total_amount: Decimal


class AverageAmountResponse(BaseModel):
    average_amount: Decimal


class StatusCountsResponse(BaseModel):
    counts: dict[str, int]


class CustomerTotalSchema(BaseModel):
    customer: CustomerSchema
    total_amount: Decimal
    bill_count: int


class TopCustomersResponse(BaseModel):
    customers: list[CustomerTotalSchema]
    count: int


class DailySalesSchema(BaseModel):
    day: date
    bill_count: int
    total_amount: Decimal


class DailySalesResponse(BaseModel):
    days: list[DailySalesSchema]
    count: int


class MonthlySalesSchema(BaseModel):
    year: int
    month: int
    bill_count: int
    total_amount: Decimal


class MonthlySalesResponse(BaseModel):
    months: list[MonthlySalesSchema]
    count: int


class ErrorResponse(BaseModel):
    detail: str
    error_type: str
    retryable: bool = False


# --- Helper Functions ---


def get_store() -> RecordStore:
    """Get a RecordStore for the configured data directory."""
    return RecordStore()


def get_billing_service() -> BillingService:
    return BillingService(get_store())


def get_catalog() -> Catalog:
    return Catalog(get_store())


def get_reports() -> BillReports:
    return BillReports(get_store())


def customer_to_schema(customer: Customer) -> CustomerSchema:
    """Convert dataclass Customer to Pydantic schema."""
    return CustomerSchema(**customer.to_dict(), display_name=customer.display_name)


def item_to_schema(item: Item) -> ItemSchema:
    """Convert dataclass Item to Pydantic schema."""
    return ItemSchema(
        **item.to_dict(),
        low_stock=item.is_low_stock,
        display_name=item.display_name,
    )


def bill_to_schema(bill: Bill) -> BillSchema:
    """Convert dataclass Bill to Pydantic schema."""
    return BillSchema(
        id=bill.id,
        bill_number=bill.bill_number,
        customer_id=bill.customer_id,
        bill_date=bill.bill_date,
        lines=[
            BillLineSchema(**line.to_dict(), discount_amount=line.discount_amount)
            for line in bill.lines
        ],
        subtotal=bill.subtotal,
        tax_rate=bill.tax_rate,
        tax_amount=bill.tax_amount,
        discount_amount=bill.discount_amount,
        total_amount=bill.total_amount,
        status=bill.status,
        status_display=bill.status.display_name,
        total_quantity=bill.total_quantity,
        notes=bill.notes,
        created_at=bill.created_at,
        updated_at=bill.updated_at,
    )


def bill_list(bills: list[Bill]) -> BillListResponse:
    return BillListResponse(bills=[bill_to_schema(b) for b in bills], count=len(bills))


def _line_requests(items: list[BillLineRequest]) -> list[LineRequest]:
    return [
        LineRequest(
            item_id=line.item_id,
            quantity=line.quantity,
            discount_percentage=line.discount_percentage,
        )
        for line in items
    ]


# --- App Setup ---


app = FastAPI(
    title="billbook API",
    description="Bookshop billing: customers, stock and invoices",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handlers ---


# Map exception types to HTTP status codes (checked in MRO order)
ERROR_STATUS_CODES: dict[type, int] = {
    NotFoundError: 404,
    InsufficientStockError: 409,
    InvalidStateError: 409,
    DuplicateRecordError: 409,
    InvalidArgumentError: 400,
    ContentionError: 503,
    ConfigError: 500,
    InvalidSchemaVersionError: 500,
}


def _status_for(exc: BillbookError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


@app.exception_handler(BillbookError)
async def billbook_error_handler(request: Request, exc: BillbookError) -> JSONResponse:
    """Map BillbookError subclasses to appropriate HTTP responses."""
    status_code = _status_for(exc)
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": str(exc),
            "error_type": type(exc).__name__,
            "retryable": exc.retryable,
        },
        headers=headers,
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log anything unanticipated and answer with an opaque 500."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    opaque = UnexpectedError()
    return JSONResponse(
        status_code=500,
        content={"detail": str(opaque), "error_type": type(opaque).__name__, "retryable": False},
    )


# --- Endpoints ---


@app.get("/api/health")
def health_check():
    """Health check endpoint. Store failures fall through to the opaque 500 handler."""
    view = get_store().snapshot()
    return {
        "status": "ok",
        "version": __version__,
        "customer_count": len(view.customers()),
        "item_count": len(view.items()),
        "bill_count": len(view.bills()),
    }


# --- Customer Endpoints ---


@app.get("/api/customers", response_model=CustomerListResponse)
def list_customers():
    customers = get_catalog().list_customers()
    return CustomerListResponse(
        customers=[customer_to_schema(c) for c in customers],
        count=len(customers),
    )


@app.post("/api/customers", response_model=CustomerSchema, status_code=201)
def create_customer(request: CustomerCreateRequest):
    customer = get_catalog().add_customer(
        account_number=request.account_number,
        name=request.name,
        address=request.address,
        phone=request.phone,
        email=request.email,
    )
    return customer_to_schema(customer)


@app.get("/api/customers/{customer_id}", response_model=CustomerSchema)
def get_customer(customer_id: str):
    return customer_to_schema(get_catalog().get_customer(customer_id))


@app.get("/api/customers/{customer_id}/bills", response_model=BillListResponse)
def list_customer_bills(customer_id: str):
    """List a customer's bills, newest first."""
    return bill_list(get_billing_service().list_bills_by_customer(customer_id))


# --- Item Endpoints ---


@app.get("/api/items", response_model=ItemListResponse)
def list_items(include_inactive: bool = Query(default=False)):
    items = get_catalog().list_items(include_inactive=include_inactive)
    return ItemListResponse(items=[item_to_schema(i) for i in items], count=len(items))


@app.post("/api/items", response_model=ItemSchema, status_code=201)
def create_item(request: ItemCreateRequest):
    item = get_catalog().add_item(
        code=request.code,
        name=request.name,
        price=request.price,
        stock_quantity=request.stock_quantity,
        minimum_stock_level=request.minimum_stock_level,
        category=request.category,
        description=request.description,
    )
    return item_to_schema(item)


@app.get("/api/items/low-stock", response_model=ItemListResponse)
def list_low_stock_items():
    items = get_reports().low_stock_items()
    return ItemListResponse(items=[item_to_schema(i) for i in items], count=len(items))


@app.get("/api/items/{item_id}", response_model=ItemSchema)
def get_item(item_id: str):
    return item_to_schema(get_catalog().get_item(item_id))


@app.post("/api/items/{item_id}/restock", response_model=ItemSchema)
def restock_item(item_id: str, request: RestockRequest):
    return item_to_schema(get_catalog().restock_item(item_id, request.quantity))


@app.delete("/api/items/{item_id}", response_model=ItemSchema)
def deactivate_item(item_id: str):
    """Soft-delete an item; bills that reference it are unaffected."""
    return item_to_schema(get_catalog().deactivate_item(item_id))


# --- Bill Endpoints ---


@app.get("/api/bills", response_model=BillListResponse)
def list_bills(limit: Optional[int] = Query(default=None, ge=1)):
    return bill_list(get_reports().list_bills(limit=limit))


@app.post("/api/bills", response_model=BillSchema, status_code=201)
def create_bill(request: BillCreateRequest):
    """Create a bill and reserve stock for its lines."""
    bill = get_billing_service().create_bill(
        customer_id=request.customer_id,
        lines=_line_requests(request.items),
        discount_amount=request.discount_amount,
        notes=request.notes,
    )
    return bill_to_schema(bill)


@app.get("/api/bills/search", response_model=BillListResponse)
def search_bills(q: str = Query(..., min_length=1, description="Customer name or bill number")):
    return bill_list(get_reports().search(q))


@app.get("/api/bills/today", response_model=BillListResponse)
def list_todays_bills():
    return bill_list(get_reports().todays_bills())


@app.get("/api/bills/overdue", response_model=BillListResponse)
def list_overdue_bills(days: int = Query(default=30, ge=0)):
    """Pending bills older than ``days``."""
    return bill_list(get_reports().overdue_bills(days))


@app.get("/api/bills/date-range", response_model=BillListResponse)
def list_bills_between(start: datetime = Query(...), end: datetime = Query(...)):
    return bill_list(get_reports().bills_between(start, end))


@app.get("/api/bills/status/{status}", response_model=BillListResponse)
def list_bills_by_status(status: BillStatus):
    return bill_list(get_reports().bills_by_status(status))


@app.get("/api/bills/number/{bill_number}", response_model=BillSchema)
def get_bill_by_number(bill_number: str):
    return bill_to_schema(get_billing_service().get_bill_by_number(bill_number))


@app.get("/api/bills/account/{account_number}", response_model=BillListResponse)
def list_bills_by_account_number(account_number: str):
    """Bills of the customer with this account number, newest first."""
    return bill_list(get_reports().bills_by_account_number(account_number))


@app.get("/api/bills/above", response_model=BillListResponse)
def list_bills_above(amount: Decimal = Query(..., ge=0)):
    """Bills whose total exceeds ``amount``, largest first."""
    return bill_list(get_reports().bills_above(amount))


@app.get("/api/bills/{bill_id}", response_model=BillSchema)
def get_bill(bill_id: str):
    return bill_to_schema(get_billing_service().get_bill(bill_id))


@app.put("/api/bills/{bill_id}", response_model=BillSchema)
def update_bill(bill_id: str, request: BillUpdateRequest):
    """Replace the lines of a DRAFT or PENDING bill."""
    bill = get_billing_service().update_bill(
        bill_id,
        lines=_line_requests(request.items),
        discount_amount=request.discount_amount,
        notes=request.notes,
    )
    return bill_to_schema(bill)


@app.post("/api/bills/{bill_id}/pay", response_model=BillSchema)
def pay_bill(bill_id: str):
    return bill_to_schema(get_billing_service().mark_bill_paid(bill_id))


@app.post("/api/bills/{bill_id}/cancel", response_model=BillSchema)
def cancel_bill(bill_id: str):
    """Cancel a bill and return its stock."""
    return bill_to_schema(get_billing_service().cancel_bill(bill_id))


@app.post("/api/bills/{bill_id}/overdue", response_model=BillSchema)
def mark_bill_overdue(bill_id: str):
    return bill_to_schema(get_billing_service().mark_bill_overdue(bill_id))


# --- Report Endpoints ---


@app.get("/api/reports/sales-total", response_model=SalesTotalResponse)
def sales_total(start: datetime = Query(...), end: datetime = Query(...)):
    """Total of paid bills dated within the range."""
    total = get_reports().total_sales(start, end)
    return SalesTotalResponse(start=start, end=end, total_amount=total)


@app.get("/api/reports/average-amount", response_model=AverageAmountResponse)
def average_amount():
    return AverageAmountResponse(average_amount=get_reports().average_bill_amount())


@app.get("/api/reports/status-counts", response_model=StatusCountsResponse)
def status_counts():
    counts = get_reports().count_by_status()
    return StatusCountsResponse(counts={status.value: n for status, n in counts.items()})


@app.get("/api/reports/top-customers", response_model=TopCustomersResponse)
def top_customers(limit: int = Query(default=10, ge=1, le=100)):
    ranked = get_reports().top_customers(limit=limit)
    return TopCustomersResponse(
        customers=[
            CustomerTotalSchema(
                customer=customer_to_schema(entry.customer),
                total_amount=entry.total_amount,
                bill_count=entry.bill_count,
            )
            for entry in ranked
        ],
        count=len(ranked),
    )


@app.get("/api/reports/daily-sales", response_model=DailySalesResponse)
def daily_sales(start: datetime = Query(...), end: datetime = Query(...)):
    """Paid sales in the range, one entry per day."""
    days = get_reports().daily_sales(start, end)
    return DailySalesResponse(
        days=[
            DailySalesSchema(day=d.day, bill_count=d.bill_count, total_amount=d.total_amount)
            for d in days
        ],
        count=len(days),
    )


@app.get("/api/reports/monthly-sales", response_model=MonthlySalesResponse)
def monthly_sales(start: datetime = Query(...), end: datetime = Query(...)):
    """Paid sales in the range, one entry per calendar month."""
    months = get_reports().monthly_sales(start, end)
    return MonthlySalesResponse(
        months=[
            MonthlySalesSchema(
                year=m.year, month=m.month, bill_count=m.bill_count, total_amount=m.total_amount
            )
            for m in months
        ],
        count=len(months),
    )
