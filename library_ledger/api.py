import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, StrictInt

from library_ledger.circulation import CirculationService, LoanResult
from library_ledger.config import settings
from library_ledger.database import read_connection
from library_ledger.errors import (
    CapacityConflict,
    CapacityExhausted,
    CirculationError,
    Conflict,
    InvalidInput,
    NotFound,
    StorageError,
)
from library_ledger.loan import LoanRecord
from library_ledger.read_model import ItemAvailability

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

_service: Optional[CirculationService] = None


def get_service() -> CirculationService:
    """Dependency returning the process-wide circulation service."""
    global _service
    if _service is None:
        _service = CirculationService(settings.database_file, seed=settings.seed_sample_data)
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.app_name} {settings.app_version} starting (database: {settings.database_file})")
    yield
    logger.info(f"{settings.app_name} shutting down")


app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug, lifespan=lifespan)

# --- Compression ---
app.add_middleware(GZipMiddleware, minimum_size=1000)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_headers(request: Request, call_next):
    response = await call_next(request)
    # Availability changes with every loan, never let clients cache it
    if request.url.path.startswith(("/items", "/loans", "/stats")):
        response.headers["Cache-Control"] = "no-store"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    return response


# --- Errors ---
ERROR_STATUS = {
    InvalidInput: 400,
    NotFound: 404,
    CapacityExhausted: 409,
    CapacityConflict: 409,
    Conflict: 409,
    StorageError: 503,
}


def _http_error(exc: CirculationError) -> HTTPException:
    """Translate a circulation failure to the matching HTTP error."""
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


@app.exception_handler(CirculationError)
async def circulation_exception_handler(request: Request, exc: CirculationError):
    # Also reached when the service dependency itself fails, e.g. the database cannot be opened
    error = _http_error(exc)
    return JSONResponse(status_code=error.status_code, content={"detail": error.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Malformed input is InvalidInput, reported as 400 like every other input error
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


# --- Models ---
class ItemModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    title: str
    author: str
    year: int | None = None
    total_copies: int = Field(alias="totalCopies")
    available: int

    @classmethod
    def from_availability(cls, entry: ItemAvailability) -> "ItemModel":
        return cls(**entry.to_dict())


class ItemCreateModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    author: str | None = None
    year: StrictInt | None = None
    total_copies: StrictInt = Field(default=1, alias="totalCopies")


class ItemUpdateModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    author: str | None = None
    year: StrictInt | None = None
    total_copies: StrictInt | None = Field(default=None, alias="totalCopies")


class AvailabilityModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_id: int = Field(alias="itemId")
    available: int
    total_copies: int = Field(alias="totalCopies")
    state: str


class LoanRecordModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    item_id: int = Field(alias="itemId")
    borrower: str
    opened_at: str = Field(alias="openedAt")
    closed_at: str | None = Field(default=None, alias="closedAt")
    status: str

    @classmethod
    def from_record(cls, record: LoanRecord) -> "LoanRecordModel":
        return cls(**record.to_dict())


class BorrowModel(BaseModel):
    borrower: str | None = None


class ReturnModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    record_id: StrictInt | None = Field(default=None, alias="recordId")


class BorrowResponse(BaseModel):
    success: bool = True
    record: LoanRecordModel
    available: int


class ReturnResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    record_id: int = Field(alias="recordId")
    record: LoanRecordModel
    available: int


class StatsModel(BaseModel):
    total_items: int
    unique_authors: int
    total_copies: int
    open_loans: int
    available_copies: int


# --- Health ---
@app.get("/health")
def health():
    """Lightweight health endpoint: a quick database round trip plus catalog size."""
    db_ok = True
    total_items = 0
    # A service that cannot be built counts as a degraded database
    provider = app.dependency_overrides.get(get_service, get_service)
    try:
        service = provider()
        with read_connection(service.db_file) as conn:
            total_items = conn.execute("SELECT COUNT(*) FROM items").fetchone()[0]
    except StorageError:
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_ok,
        "total_items": total_items,
    }


# --- Items ---
@app.get("/items", response_model=List[ItemModel])
def list_items(
    search: Optional[str] = Query(None, description="Case-insensitive title/author substring"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Maximum number of results"),
    offset: int = Query(0, ge=0, description="Number of results to skip"),
    service: CirculationService = Depends(get_service),
):
    """List items newest first with their current availability."""
    try:
        entries = service.list_items(search, limit=limit, offset=offset)
    except CirculationError as e:
        raise _http_error(e)
    return [ItemModel.from_availability(entry) for entry in entries]


@app.get("/items/{item_id}", response_model=ItemModel)
def get_item(item_id: int, service: CirculationService = Depends(get_service)):
    try:
        return ItemModel.from_availability(service.get_item(item_id))
    except CirculationError as e:
        raise _http_error(e)


@app.get("/items/{item_id}/availability", response_model=AvailabilityModel)
def get_availability(item_id: int, service: CirculationService = Depends(get_service)):
    try:
        entry = service.get_item(item_id)
    except CirculationError as e:
        raise _http_error(e)
    return AvailabilityModel(
        item_id=entry.item.id,
        available=entry.available,
        total_copies=entry.item.total_copies,
        state=entry.state.value,
    )


@app.post("/items", response_model=ItemModel)
def create_item(payload: ItemCreateModel, service: CirculationService = Depends(get_service)):
    """Add a new item to the catalog."""
    try:
        entry = service.add_item(payload.title, payload.author, payload.year, payload.total_copies)
    except CirculationError as e:
        raise _http_error(e)
    return ItemModel.from_availability(entry)


@app.put("/items/{item_id}", response_model=ItemModel)
def update_item(item_id: int, payload: ItemUpdateModel, service: CirculationService = Depends(get_service)):
    """Update title, author, year and/or total copies of an item."""
    fields = payload.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="no fields to update")
    try:
        entry = service.update_item(item_id, fields)
    except CirculationError as e:
        raise _http_error(e)
    return ItemModel.from_availability(entry)


@app.delete("/items/{item_id}")
def delete_item(item_id: int, service: CirculationService = Depends(get_service)):
    """Remove an item that has no open loans."""
    try:
        service.remove_item(item_id)
    except CirculationError as e:
        raise _http_error(e)
    return {"success": True}


# --- Circulation ---
def _borrow_response(result: LoanResult) -> BorrowResponse:
    return BorrowResponse(record=LoanRecordModel.from_record(result.record), available=result.available)


@app.post("/items/{item_id}/borrow", response_model=BorrowResponse)
def borrow_item(item_id: int, payload: BorrowModel, service: CirculationService = Depends(get_service)):
    """Lend one copy of an item to a borrower."""
    try:
        result = service.borrow(item_id, payload.borrower)
    except CirculationError as e:
        raise _http_error(e)
    return _borrow_response(result)


@app.post("/items/{item_id}/return", response_model=ReturnResponse)
def return_item(
    item_id: int,
    payload: Optional[ReturnModel] = Body(default=None),
    service: CirculationService = Depends(get_service),
):
    """Close a specific loan, or the most recent open loan when no recordId is given."""
    record_id = payload.record_id if payload else None
    try:
        result = service.return_item(item_id, record_id)
    except CirculationError as e:
        raise _http_error(e)
    return ReturnResponse(
        record_id=result.record.id,
        record=LoanRecordModel.from_record(result.record),
        available=result.available,
    )


@app.get("/loans", response_model=List[LoanRecordModel])
def list_loans(
    item_id: Optional[int] = Query(None, alias="itemId", description="Only loans of this item"),
    service: CirculationService = Depends(get_service),
):
    """List loan records newest first."""
    try:
        records = service.list_loans(item_id)
    except CirculationError as e:
        raise _http_error(e)
    return [LoanRecordModel.from_record(record) for record in records]


@app.get("/stats", response_model=StatsModel)
def get_stats(service: CirculationService = Depends(get_service)):
    """Catalog and circulation statistics."""
    try:
        return StatsModel(**service.statistics())
    except CirculationError as e:
        raise _http_error(e)
