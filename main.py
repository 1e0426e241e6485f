import logging
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, init_db, ping, session_scope
from errors import ConflictError, NotFoundError, StoreUnavailableError, ValidationError
from models import CATEGORIES
from schemas import (
    BudgetIn,
    BudgetOut,
    ExpenseFilters,
    ExpenseIn,
    ExpenseOut,
    ExpensePage,
    ExpensePatch,
    MonthlyTotal,
    Summary,
    field_errors,
    parse_model,
)
from services import BudgetService, ExpenseService, ReportService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title="Household Budget")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    max_age=86400,
)


@app.middleware("http")
async def enforce_origin_policy(request: Request, call_next):
    origin = request.headers.get("origin")
    # Preflights are answered by CORSMiddleware.
    if origin and request.method != "OPTIONS":
        try:
            settings.require_origin(origin)
        except ConflictError as exc:
            logger.warning(f"origin_rejected: origin={origin} path={request.url.path}")
            return JSONResponse(status_code=403, content={"detail": str(exc)})
    return await call_next(request)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    if settings.auto_create_schema:
        init_db()
    else:
        with session_scope() as session:
            ping(session)
    if settings.seed_default_budgets:
        with session_scope() as session:
            BudgetService(session).seed_defaults()
    logger.info(f"startup: origins={settings.cors_origins} port={settings.port}")


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    detail = {"error": "Invalid request", "fields": field_errors(exc.errors())}
    return JSONResponse(status_code=422, content={"detail": detail})


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    logger.error(f"store_unavailable: path={request.url.path} error={exc}")
    return JSONResponse(
        status_code=503, content={"detail": "Database unavailable, try again later"}
    )


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"store_error: path={request.url.path}", exc_info=exc)
    if isinstance(exc, (OperationalError, InterfaceError)):
        return JSONResponse(
            status_code=503, content={"detail": "Database unavailable, try again later"}
        )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def filters_from_request(request: Request) -> ExpenseFilters:
    keys = ("category", "startDate", "endDate", "search", "page", "limit")
    raw = {
        key: request.query_params[key]
        for key in keys
        if request.query_params.get(key, "").strip()
    }
    try:
        return parse_model(ExpenseFilters, raw)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.as_detail()) from exc


@app.get("/expenses", response_model=ExpensePage)
def list_expenses(request: Request, db: Session = Depends(get_db)):
    filters = filters_from_request(request)
    items, total = ExpenseService(db).list(filters)
    return ExpensePage(
        data=[ExpenseOut.model_validate(item) for item in items],
        total=total,
        page=filters.page,
        limit=filters.limit,
    )


@app.get("/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense(expense_id: str, db: Session = Depends(get_db)):
    try:
        expense = ExpenseService(db).get(expense_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ExpenseOut.model_validate(expense)


@app.post("/expenses", response_model=ExpenseOut, status_code=201)
def upsert_expense(payload: ExpenseIn, db: Session = Depends(get_db)):
    try:
        expense = ExpenseService(db).upsert(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.as_detail()) from exc
    return ExpenseOut.model_validate(expense)


@app.put("/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: str, payload: ExpensePatch, db: Session = Depends(get_db)
):
    try:
        expense = ExpenseService(db).update(expense_id, payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.as_detail()) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ExpenseOut.model_validate(expense)


@app.delete("/expenses/{expense_id}", status_code=204)
def delete_expense(expense_id: str, db: Session = Depends(get_db)):
    try:
        ExpenseService(db).delete(expense_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/budgets", response_model=list[BudgetOut])
def list_budgets(db: Session = Depends(get_db)):
    return [BudgetOut.model_validate(b) for b in BudgetService(db).list()]


@app.put("/budgets", response_model=BudgetOut)
def upsert_budget(payload: BudgetIn, db: Session = Depends(get_db)):
    try:
        budget = BudgetService(db).upsert(payload.category, payload.limit)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.as_detail()) from exc
    return BudgetOut.model_validate(budget)


@app.delete("/budgets/{category}", status_code=204)
def delete_budget(category: str, db: Session = Depends(get_db)):
    try:
        BudgetService(db).delete(category)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.as_detail()) from exc
    return Response(status_code=204)


@app.get("/reports/summary", response_model=Summary)
def report_summary(request: Request, db: Session = Depends(get_db)):
    return ReportService(db).summary(request.query_params.get("month"))


@app.get("/reports/monthly", response_model=list[MonthlyTotal])
def report_monthly(db: Session = Depends(get_db)):
    return ReportService(db).monthly_trend()


@app.get("/categories", response_model=list[str])
def list_categories():
    return list(CATEGORIES)


@app.get("/health")
def health(db: Session = Depends(get_db)):
    try:
        ping(db)
    except StoreUnavailableError:
        logger.warning("health: db=disconnected")
        return JSONResponse(
            status_code=503, content={"status": "error", "db": "disconnected"}
        )
    return {
        "status": "ok",
        "db": "connected",
        "ts": datetime.now(timezone.utc).isoformat(),
    }


def main():
    import uvicorn

    uvicorn.run("main:app", host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":
    main()
