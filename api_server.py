"""HTTP surface for the finance tracker: transactions CRUD, summaries and the recurring trigger."""

import logging
import os
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

import gateway
from aggregation import BudgetState, monthly_summary
from auth import COOKIE_NAME, COOKIE_SECURE, TOKEN_TTL, check_passcode, create_access_token, require_token
from database import get_db, init_db
from errors import InvalidTransaction, StoreUnavailable, TrackerError, TransactionNotFound
from recurring import RecurringScheduler, process_recurring_transactions, scheduler_enabled
from schemas import (
    DeleteRequest,
    LoginRequest,
    MaterializationResponse,
    MonthlyRow,
    StatusUpdate,
    SummaryResponse,
    TransactionCreate,
    TransactionOut,
)

logger = logging.getLogger(__name__)

scheduler = RecurringScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    if scheduler_enabled():
        scheduler.start()
        logger.info("Recurring transaction scheduler started")
    else:
        logger.info("Recurring scheduler disabled; trigger POST /recurring/run or recurring.py externally")
    yield
    scheduler.stop()


app = FastAPI(title="Personal Finance Tracker", version="0.1.0", lifespan=lifespan)


# --- Error mapping ---

ERROR_STATUS = {
    InvalidTransaction: status.HTTP_400_BAD_REQUEST,
    TransactionNotFound: status.HTTP_404_NOT_FOUND,
    StoreUnavailable: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@app.exception_handler(TrackerError)
async def tracker_error_handler(request: Request, exc: TrackerError):
    code = next(
        (c for kind, c in ERROR_STATUS.items() if isinstance(exc, kind)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse({"message": "Store error", "error": str(exc)}, status_code=code)
    return JSONResponse({"message": str(exc)}, status_code=code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'][1:]) or 'body'}: {err['msg']}" for err in errors
    )
    return JSONResponse(
        {"message": message, "errors": jsonable_encoder(errors)},
        status_code=status.HTTP_400_BAD_REQUEST,
    )


# --- Auth ---

@app.post("/auth/login")
def login(req: LoginRequest, response: Response):
    if not check_passcode(req.passcode):
        return JSONResponse({"message": "Incorrect passcode"}, status_code=status.HTTP_401_UNAUTHORIZED)

    token = create_access_token()
    response.set_cookie(
        COOKIE_NAME,
        token,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="strict",
        max_age=int(TOKEN_TTL.total_seconds()),
        path="/",
    )
    return {"message": "Login successful", "token": token}


# --- Transactions ---

@app.get("/transactions")
def read_transactions(user: dict = Depends(require_token), db: Session = Depends(get_db)):
    rows = gateway.list_transactions(db)
    return {"user": user, "transactions": [TransactionOut.model_validate(t) for t in rows]}


@app.post("/transactions", status_code=status.HTTP_201_CREATED)
def add_transaction(
    data: TransactionCreate,
    user: dict = Depends(require_token),
    db: Session = Depends(get_db),
):
    transaction = gateway.create_transaction(db, data)
    return {
        "user": user,
        "message": "Transaction added",
        "transaction": TransactionOut.model_validate(transaction),
    }


@app.delete("/transactions")
def remove_transaction(req: DeleteRequest, user: dict = Depends(require_token), db: Session = Depends(get_db)):
    gateway.delete_transaction(db, req.id)
    return {"user": user, "message": "Transaction deleted successfully"}


@app.patch("/transactions")
def patch_transaction_status(req: StatusUpdate, user: dict = Depends(require_token), db: Session = Depends(get_db)):
    transaction = gateway.update_status(db, req.id, req.new_status)
    return {
        "user": user,
        "message": "Transaction updated successfully",
        "updatedTransaction": {"id": transaction.id, "status": transaction.status},
    }


@app.get("/transactions/summary", response_model=SummaryResponse)
def transaction_summary(
    start: Optional[date] = None,
    end: Optional[date] = None,
    type_: str = Query("all", alias="type"),
    mode: str = "total",
    user: dict = Depends(require_token),
    db: Session = Depends(get_db),
):
    state = BudgetState(
        gateway.list_transactions(db),
        start=start,
        end=end,
        type_filter=type_,
        balance_mode=mode,
    )
    return SummaryResponse(
        start=state.start,
        end=state.end,
        type=state.type_filter,
        mode=state.balance_mode,
        total_income=state.total_income,
        total_expense=state.total_expense,
        balance=state.balance,
        total_balance=state.total_balance,
        displayed_balance=state.displayed_balance,
        transaction_count=len(state.filtered),
    )


@app.get("/transactions/monthly", response_model=List[MonthlyRow])
def transactions_by_month(user: dict = Depends(require_token), db: Session = Depends(get_db)):
    df = monthly_summary(gateway.list_transactions(db))
    return [
        MonthlyRow(month=row.Month, income=row.Income, expense=row.Expense, net=row.Net)
        for row in df.itertuples(index=False)
    ]


# --- Recurring ---

@app.post("/recurring/run", response_model=MaterializationResponse)
def run_recurring(user: dict = Depends(require_token), db: Session = Depends(get_db)):
    report = process_recurring_transactions(db)
    return MaterializationResponse(
        created=[TransactionOut.model_validate(t) for t in report.created],
        failures=report.failures,
    )


@app.get("/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("api_server:app", host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8001")), reload=True)
