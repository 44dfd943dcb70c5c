import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from aggregation import TransactionRecord
from auth import SESSION_COOKIE, current_user_id, issue_session_token
from config import get_settings
from csrf import generate_csrf_token, validate_csrf_token
from csv_utils import cents_to_units, parse_amount
from database import SessionLocal, session_scope
from filtering import (
    TYPE_FILTERS,
    Page,
    TransactionFilters,
    filter_transactions,
    group_by_date,
)
from models import (
    Account,
    AccountCategory,
    AccountRole,
    AccountType,
    Category,
    Transaction,
    TransactionType,
)
from periods import resolve_period
from schemas import (
    AccountIn,
    AccountTypeIn,
    AccountUpdate,
    CategoryIn,
    TransactionIn,
    TransferIn,
    UserIn,
)
from services import (
    AccountService,
    AccountTypeService,
    CategoryService,
    CSVService,
    MetricsService,
    TransactionService,
    TransferService,
    UserService,
    seed_defaults,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="MoneyDiary")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    with session_scope() as session:
        seed_defaults(session)
    logger.info("Default categories and account types seeded")


def _http_error(exc: ValueError) -> HTTPException:
    message = str(exc)
    status = 404 if message.endswith("not found") else 400
    return HTTPException(status_code=status, detail=message)


FORM_ERRORS = (KeyError, ValueError, ValidationError)


def _form_error(exc: Exception) -> HTTPException:
    if isinstance(exc, KeyError):
        return HTTPException(status_code=400, detail=f"Missing field: {exc.args[0]}")
    if isinstance(exc, ValidationError):
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        message = first["msg"]
        detail = f"{field}: {message}" if field else message
        return HTTPException(status_code=400, detail=detail)
    return _http_error(exc)


async def _form_with_csrf(request: Request, user_id: int):
    form = await request.form()
    token = request.headers.get("X-CSRF-Token") or form.get("csrf_token", "")
    if not validate_csrf_token(str(token), user_id):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")
    return form


def _optional_int(value) -> Optional[int]:
    value = (value or "").strip() if isinstance(value, str) else value
    return int(value) if value else None


def _flag(form, name: str) -> bool:
    return form.get(name) in ("on", "true", "1", "yes")


def category_out(category: Category) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "type": category.type.value,
        "color": category.color,
        "is_default": category.is_default,
    }


def account_type_out(account_type: AccountType) -> dict[str, object]:
    return {
        "id": account_type.id,
        "name": account_type.name,
        "category": account_type.category.value,
        "role": account_type.role.value,
        "description": account_type.description,
        "color": account_type.color,
        "affects_net_worth": account_type.affects_net_worth,
        "is_system": account_type.is_system,
        "is_default": account_type.is_default,
    }


def account_out(account: Account) -> dict[str, object]:
    return {
        "id": account.id,
        "name": account.name,
        "account_type_id": account.account_type_id,
        "account_type": (
            account_type_out(account.account_type) if account.account_type else None
        ),
        "balance": cents_to_units(account.balance_cents),
        "initial_balance": cents_to_units(account.initial_balance_cents),
        "currency": account.currency,
        "description": account.description,
        "color": account.color,
        "is_active": account.is_active,
        "is_default": account.is_default,
    }


def transaction_out(txn: Transaction) -> dict[str, object]:
    out = {
        "id": txn.id,
        "type": txn.type.value,
        "amount": cents_to_units(txn.amount_cents),
        "description": txn.description,
        "date": txn.date,
    }
    if txn.type == TransactionType.transfer:
        out["from_account_id"] = txn.from_account_id
        out["to_account_id"] = txn.to_account_id
    else:
        out["category_id"] = txn.category_id
        out["category"] = txn.category.name if txn.category else ""
        out["account_id"] = txn.account_id
    return out


def record_out(record: TransactionRecord) -> dict[str, object]:
    return {
        "id": record.id,
        "date": record.date,
        "description": record.description,
        "category": record.category,
        "category_id": record.category_id,
        "type": record.type.value,
        "amount": record.amount,
    }


def page_out(result: Page, group_by_day: bool = False) -> dict[str, object]:
    out: dict[str, object] = {
        "items": [record_out(t) for t in result.items],
        "total_count": result.total_count,
        "total_pages": result.total_pages,
        "page": result.page,
    }
    if group_by_day:
        out["groups"] = [
            {"date": day, "items": [record_out(t) for t in records]}
            for day, records in group_by_date(result.items)
        ]
    return out


def transaction_payload_from_form(form, session: Session, user_id: int) -> TransactionIn:
    category = CategoryService(session, user_id).get(int(form["category_id"]))
    return TransactionIn(
        date=date.fromisoformat(form["date"]),
        type=category.type,
        amount_cents=parse_amount(str(form["amount"])),
        category_id=category.id,
        description=form["description"],
        account_id=_optional_int(form.get("account_id")),
    )


def account_type_payload_from_form(form) -> AccountTypeIn:
    return AccountTypeIn(
        name=form["name"],
        category=AccountCategory(form["category"]),
        role=AccountRole(form.get("role") or "general"),
        description=form.get("description") or None,
        color=form.get("color") or None,
        affects_net_worth=form.get("affects_net_worth", "on") in ("on", "true", "1"),
        is_default=_flag(form, "is_default"),
    )


# Session


@app.post("/auth/register")
async def register(request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    try:
        data = UserIn(
            name=form.get("name") or None,
            email=form.get("email", ""),
            password=form.get("password", ""),
        )
    except ValidationError as exc:
        raise _form_error(exc) from exc
    try:
        user = UserService(db).register(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _session_response(user.id, user.email, status_code=201)


@app.post("/auth/login")
async def login(request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    user = UserService(db).authenticate(
        str(form.get("email", "")), str(form.get("password", ""))
    )
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return _session_response(user.id, user.email)


def _session_response(user_id: int, email: str, status_code: int = 200) -> JSONResponse:
    settings = get_settings()
    response = JSONResponse(
        {
            "user_id": user_id,
            "email": email,
            "csrf_token": generate_csrf_token(user_id),
        },
        status_code=status_code,
    )
    response.set_cookie(
        SESSION_COOKIE,
        issue_session_token(user_id),
        max_age=settings.session_max_age_hours * 3600,
        httponly=True,
        samesite="lax",
    )
    return response


@app.post("/auth/logout")
def logout():
    response = Response(status_code=204)
    response.delete_cookie(SESSION_COOKIE)
    return response


@app.get("/auth/me")
def me(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    try:
        user = UserService(db).get(user_id)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Not authenticated") from exc
    return {
        "user_id": user.id,
        "email": user.email,
        "name": user.name,
        "csrf_token": generate_csrf_token(user.id),
    }


# Categories


@app.get("/categories")
def list_categories(
    type: Optional[str] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    txn_type = None
    if type:
        try:
            txn_type = TransactionType(type)
        except ValueError:
            txn_type = None
    categories = CategoryService(db, user_id).list_all(type=txn_type)
    return [category_out(c) for c in categories]


@app.post("/categories", status_code=201)
async def create_category(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    form = await _form_with_csrf(request, user_id)
    try:
        data = CategoryIn(
            name=form["name"],
            type=TransactionType(form["type"]),
            color=form.get("color") or None,
        )
    except FORM_ERRORS as exc:
        raise _form_error(exc) from exc
    try:
        category = CategoryService(db, user_id).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return category_out(category)


@app.post("/categories/{category_id}")
async def update_category(
    category_id: int,
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    form = await _form_with_csrf(request, user_id)
    try:
        data = CategoryIn(
            name=form["name"],
            type=TransactionType(form["type"]),
            color=form.get("color") or None,
        )
    except FORM_ERRORS as exc:
        raise _form_error(exc) from exc
    try:
        category = CategoryService(db, user_id).update(category_id, data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return category_out(category)


@app.post("/categories/{category_id}/delete")
async def delete_category(
    category_id: int,
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    await _form_with_csrf(request, user_id)
    try:
        CategoryService(db, user_id).delete(category_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


# Account types


@app.get("/account-types")
def list_account_types(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return [account_type_out(t) for t in AccountTypeService(db, user_id).list_all()]


@app.post("/account-types", status_code=201)
async def create_account_type(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    form = await _form_with_csrf(request, user_id)
    try:
        data = account_type_payload_from_form(form)
    except FORM_ERRORS as exc:
        raise _form_error(exc) from exc
    try:
        account_type = AccountTypeService(db, user_id).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return account_type_out(account_type)


@app.post("/account-types/{account_type_id}")
async def update_account_type(
    account_type_id: int,
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    form = await _form_with_csrf(request, user_id)
    try:
        data = account_type_payload_from_form(form)
    except FORM_ERRORS as exc:
        raise _form_error(exc) from exc
    try:
        account_type = AccountTypeService(db, user_id).update(account_type_id, data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return account_type_out(account_type)


@app.post("/account-types/{account_type_id}/delete")
async def delete_account_type(
    account_type_id: int,
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    await _form_with_csrf(request, user_id)
    try:
        AccountTypeService(db, user_id).delete(account_type_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


# Accounts


@app.get("/accounts")
def list_accounts(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return [account_out(a) for a in AccountService(db, user_id).list_active()]


@app.post("/accounts", status_code=201)
async def create_account(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    form = await _form_with_csrf(request, user_id)
    try:
        data = AccountIn(
            name=form["name"],
            account_type_id=int(form["account_type_id"]),
            initial_balance_cents=parse_amount(
                str(form.get("initial_balance") or "0"), allow_negative=True
            ),
            currency=form.get("currency") or None,
            description=form.get("description") or None,
            color=form.get("color") or None,
            is_default=_flag(form, "is_default"),
        )
    except FORM_ERRORS as exc:
        raise _form_error(exc) from exc
    try:
        account = AccountService(db, user_id).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return account_out(account)


@app.post("/accounts/{account_id}")
async def update_account(
    account_id: int,
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    form = await _form_with_csrf(request, user_id)
    try:
        data = AccountUpdate(
            name=form.get("name") or None,
            account_type_id=_optional_int(form.get("account_type_id")),
            description=form.get("description") or None,
            color=form.get("color") or None,
            is_default=_flag(form, "is_default") if "is_default" in form else None,
        )
    except FORM_ERRORS as exc:
        raise _form_error(exc) from exc
    try:
        account = AccountService(db, user_id).update(account_id, data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return account_out(account)


@app.post("/accounts/{account_id}/adjust")
async def adjust_account_balance(
    account_id: int,
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    form = await _form_with_csrf(request, user_id)
    try:
        delta_cents = parse_amount(str(form["amount"]), allow_negative=True)
    except FORM_ERRORS as exc:
        raise _form_error(exc) from exc
    try:
        account = AccountService(db, user_id).adjust_balance(account_id, delta_cents)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return account_out(account)


@app.post("/accounts/{account_id}/delete")
async def delete_account(
    account_id: int,
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    await _form_with_csrf(request, user_id)
    try:
        AccountService(db, user_id).soft_delete(account_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


# Transactions


def filters_from_request(request: Request) -> TransactionFilters:
    type_param = request.query_params.get("type") or "all"
    if type_param not in TYPE_FILTERS:
        type_param = "all"
    try:
        date_from = (
            date.fromisoformat(request.query_params["from"])
            if request.query_params.get("from")
            else None
        )
        date_to = (
            date.fromisoformat(request.query_params["to"])
            if request.query_params.get("to")
            else None
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TransactionFilters(
        search=request.query_params.get("q") or "",
        type=type_param,
        date_from=date_from,
        date_to=date_to,
    )


@app.get("/transactions")
def transactions_page(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    filters = filters_from_request(request)
    try:
        page = int(request.query_params.get("page", "1"))
    except ValueError:
        page = 1
    page_size = get_settings().page_size
    result = MetricsService(db, user_id).transactions_page(filters, page, page_size)
    return page_out(result, group_by_day=request.query_params.get("group") == "date")


@app.get("/transactions/recent")
def recent_transactions(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    limit = get_settings().recent_page_size
    items = TransactionService(db, user_id).list(limit=limit)
    return [transaction_out(t) for t in items]


@app.get("/transactions/export.csv")
def export_transactions_csv(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    filters = filters_from_request(request)
    snapshot = MetricsService(db, user_id).snapshot
    content = CSVService(db, user_id).export(
        filter_transactions(snapshot.transactions, filters)
    )
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="transactions.csv"'},
    )


@app.post("/transactions", status_code=201)
async def create_transaction(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    form = await _form_with_csrf(request, user_id)
    try:
        data = transaction_payload_from_form(form, db, user_id)
    except FORM_ERRORS as exc:
        raise _form_error(exc) from exc
    try:
        txn = TransactionService(db, user_id).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return transaction_out(txn)


@app.post("/transactions/clear")
async def clear_transactions(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    await _form_with_csrf(request, user_id)
    count = TransactionService(db, user_id).clear_all()
    return {"deleted": count}


@app.post("/transactions/{transaction_id}")
async def update_transaction(
    transaction_id: int,
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    form = await _form_with_csrf(request, user_id)
    try:
        data = transaction_payload_from_form(form, db, user_id)
    except FORM_ERRORS as exc:
        raise _form_error(exc) from exc
    try:
        txn = TransactionService(db, user_id).update(transaction_id, data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return transaction_out(txn)


@app.post("/transactions/{transaction_id}/delete")
async def delete_transaction(
    transaction_id: int,
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    await _form_with_csrf(request, user_id)
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


# Transfers


@app.get("/transfers")
def list_transfers(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return [transaction_out(t) for t in TransferService(db, user_id).list()]


@app.post("/transfers", status_code=201)
async def create_transfer(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    form = await _form_with_csrf(request, user_id)
    try:
        data = TransferIn(
            date=date.fromisoformat(form["date"]),
            amount_cents=parse_amount(str(form["amount"])),
            description=form["description"],
            from_account_id=int(form["from_account_id"]),
            to_account_id=int(form["to_account_id"]),
        )
    except FORM_ERRORS as exc:
        raise _form_error(exc) from exc
    try:
        txn = TransferService(db, user_id).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return transaction_out(txn)


@app.post("/transfers/{transfer_id}/delete")
async def delete_transfer(
    transfer_id: int,
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    await _form_with_csrf(request, user_id)
    try:
        TransferService(db, user_id).delete(transfer_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


# Analytics


@app.get("/api/summary")
def api_summary(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return MetricsService(db, user_id).summary()


@app.get("/api/net-worth")
def api_net_worth(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return MetricsService(db, user_id).net_worth()


@app.get("/api/category-breakdown")
def api_category_breakdown(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return MetricsService(db, user_id).category_summary()


@app.get("/api/trend")
def api_trend(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        period = resolve_period(
            request.query_params.get("period"),
            request.query_params.get("start"),
            request.query_params.get("end"),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "period": period.slug,
        "start": period.start,
        "end": period.end,
        "days": MetricsService(db, user_id).daily_series(period),
    }


@app.get("/api/insights")
def api_insights(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    try:
        report = MetricsService(db, user_id).insights()
    except Exception as exc:
        logger.exception("Error generating insights")
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return report.as_dict()


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
