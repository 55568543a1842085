import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db
from periods import MAX_YEAR, MIN_YEAR
from schemas import (
    BillingPeriodOut,
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    CategoryWithCountOut,
    ExpenseIn,
    ExpenseOut,
    ExpenseUpdate,
    IncomeIn,
    IncomeListOut,
    IncomeOut,
    IncomeUpdate,
    LoginIn,
    LoginOut,
    MessageOut,
    MonthlySummaryOut,
    RegisterIn,
    RegisterOut,
    SettingsIn,
    SettingsOut,
)
from services import (
    CategoryService,
    ExpenseFilters,
    ExpenseService,
    IncomeService,
    RecordNotFound,
    SettingsService,
    StatsService,
    UserService,
)
from sessions import (
    SESSION_COOKIE,
    issue_session_token,
    resolve_session_token,
    token_from_headers,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()


def _format_validation_errors(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        loc = [
            str(part)
            for part in error.get("loc", ())
            if part not in ("body", "query", "path")
        ]
        message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
        messages.append(f"{'.'.join(loc)}: {message}" if loc else message)
    return "; ".join(messages) or "Invalid request"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": _format_validation_errors(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"unhandled_error: method={request.method} path={request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def http_error(exc: ValueError) -> HTTPException:
    # RecordConflict and InvalidInput both surface as 400
    if isinstance(exc, RecordNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def current_user_id(request: Request, db: Session = Depends(get_db)) -> int:
    token = token_from_headers(
        request.headers.get("Authorization"), request.cookies.get(SESSION_COOKIE)
    )
    user_id = resolve_session_token(token)
    if user_id is None or UserService(db).get(user_id) is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


@app.get("/api/health")
def health():
    return {"status": "ok", "version": APP_VERSION}


@app.post("/api/register", response_model=RegisterOut, status_code=201)
def register(data: RegisterIn, db: Session = Depends(get_db)):
    try:
        user = UserService(db).register(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    logger.info(f"user_registered: user_id={user.id}")
    return {"message": "User created successfully", "user_id": user.id}


@app.post("/api/login", response_model=LoginOut)
def login(data: LoginIn, response: Response, db: Session = Depends(get_db)):
    user = UserService(db).authenticate(data.email, data.password)
    if not user:
        logger.info("login_failed")
        raise HTTPException(status_code=401, detail="Invalid email or password")
    token = issue_session_token(user.id)
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=settings.session_max_age_hours * 3600,
        httponly=True,
        samesite="lax",
    )
    logger.info(f"login: user_id={user.id}")
    return {"token": token, "user_id": user.id}


@app.post("/api/logout", response_model=MessageOut)
def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE)
    return {"message": "Logged out"}


@app.get("/api/categories", response_model=list[CategoryWithCountOut])
def list_categories(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return CategoryService(db, user_id).list_all()


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return CategoryService(db, user_id).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    data: CategoryUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return CategoryService(db, user_id).update(category_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.delete("/api/categories/{category_id}", response_model=MessageOut)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        CategoryService(db, user_id).delete(category_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    logger.info(f"category_deleted: user_id={user_id} category_id={category_id}")
    return {"message": "Category deleted successfully"}


@app.get("/api/expenses", response_model=list[ExpenseOut])
def list_expenses(
    month: Optional[int] = Query(default=None, ge=1, le=12),
    year: Optional[int] = Query(default=None, ge=MIN_YEAR, le=MAX_YEAR),
    category_id: Optional[int] = Query(default=None, alias="categoryId"),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    filters = ExpenseFilters(month=month, year=year, category_id=category_id)
    try:
        return ExpenseService(db, user_id).list(filters)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.post("/api/expenses", response_model=ExpenseOut, status_code=201)
def create_expense(
    data: ExpenseIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return ExpenseService(db, user_id).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.put("/api/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: int,
    data: ExpenseUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return ExpenseService(db, user_id).update(expense_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.delete("/api/expenses/{expense_id}", response_model=MessageOut)
def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        ExpenseService(db, user_id).delete(expense_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    logger.info(f"expense_deleted: user_id={user_id} expense_id={expense_id}")
    return {"message": "Expense deleted successfully"}


@app.get("/api/incomes", response_model=IncomeListOut)
def list_incomes(
    month: Optional[int] = Query(default=None, ge=1, le=12),
    year: Optional[int] = Query(default=None, ge=MIN_YEAR, le=MAX_YEAR),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        incomes, total = IncomeService(db, user_id).list_for_month(month, year)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"incomes": incomes, "total": total}


@app.post("/api/incomes", response_model=IncomeOut, status_code=201)
def create_income(
    data: IncomeIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return IncomeService(db, user_id).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.put("/api/incomes/{income_id}", response_model=IncomeOut)
def update_income(
    income_id: int,
    data: IncomeUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return IncomeService(db, user_id).update(income_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.delete("/api/incomes/{income_id}", response_model=MessageOut)
def delete_income(
    income_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        IncomeService(db, user_id).delete(income_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    logger.info(f"income_deleted: user_id={user_id} income_id={income_id}")
    return {"message": "Income deleted successfully"}


@app.get("/api/settings", response_model=SettingsOut)
def get_user_settings(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return {"billing_cycle_start": SettingsService(db, user_id).billing_cycle_start()}


@app.put("/api/settings", response_model=SettingsOut)
def update_user_settings(
    data: SettingsIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        value = SettingsService(db, user_id).update(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"billing_cycle_start": value}


@app.get("/api/settings/period", response_model=BillingPeriodOut)
def billing_period_for_month(
    month: Optional[int] = Query(default=None, ge=1, le=12),
    year: Optional[int] = Query(default=None, ge=MIN_YEAR, le=MAX_YEAR),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = SettingsService(db, user_id)
    try:
        period = service.period(month, year)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {
        "billing_cycle_start": service.billing_cycle_start(),
        "start": period.start,
        "end": period.end,
    }


@app.get("/api/stats", response_model=MonthlySummaryOut)
def monthly_stats(
    month: Optional[int] = Query(default=None, ge=1, le=12),
    year: Optional[int] = Query(default=None, ge=MIN_YEAR, le=MAX_YEAR),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        summary = StatsService(db, user_id).monthly_summary(month, year)
    except ValueError as exc:
        raise http_error(exc) from exc
    return MonthlySummaryOut.model_validate(summary, from_attributes=True)
