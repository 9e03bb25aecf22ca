import logging
import os
import time
from dataclasses import asdict
from datetime import date, datetime, timezone
from decimal import Decimal

import bcrypt
from fastapi import Depends, FastAPI, HTTPException, Header, Query, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
    func,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from fincontrol.access_policy import can
from fincontrol.budget_engine import LedgerEntry, evaluate_wallet, remaining_budget, total_value
from fincontrol.cnpj import format_cnpj, normalize_cnpj
from fincontrol.dashboard import (
    ReportEntry,
    expense_vs_revenue,
    financial_summary,
    most_expensive,
)
from fincontrol.enums import (
    ExpenseType,
    PaymentMethod,
    RecurringType,
    StatusTransaction,
    TransactionType,
    UserRole,
)
from fincontrol.recurring_expansion import (
    MasterTransaction,
    TransactionCopy,
    expand_installments,
    expand_until,
    missing_occurrences,
)
from fincontrol.status_rule import derive_status

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

app = FastAPI()

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

SLOW_REQUEST_THRESHOLD_MS = float(os.getenv("SLOW_REQUEST_THRESHOLD_MS", "1000"))


@app.middleware("http")
async def log_slow_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    if elapsed_ms > SLOW_REQUEST_THRESHOLD_MS:
        logger.warning(
            "Slow request detected: %s %s took %.2f ms (user %s)",
            request.method,
            request.url.path,
            elapsed_ms,
            request.headers.get("x-user-id"),
        )
    return response


database_url = os.getenv("DATABASE_URL", "sqlite:///./fincontrol.db")
connect_args = {}
if database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(database_url, connect_args=connect_args)
metadata = MetaData()

DEFAULT_COMPANY_NAME = "Minha Empresa"
# Payload fields named "date" shadow the type inside the class body.
CalendarDate = date
ITEM_MAX_LENGTH = 255

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), unique=True, nullable=False),
    Column("hashed_password", String(255), nullable=False),
    Column("role", String(20), nullable=False, server_default=UserRole.EDITOR),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

wallets = Table(
    "wallets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), unique=True, nullable=False),
    Column("description", String(500)),
    Column("budget", Numeric(12, 2), nullable=False, server_default="0"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

transactions = Table(
    "transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("item", String(ITEM_MAX_LENGTH), nullable=False),
    Column("date", Date, nullable=False, index=True),
    Column("value", Numeric(12, 2), nullable=False),
    Column("type", String(20), nullable=False, index=True),
    Column("expense_type", String(20)),
    Column("payment_method", String(20)),
    Column("status", String(20), nullable=False, index=True),
    Column("is_recurring", Boolean, nullable=False, server_default="0"),
    Column("recurring_type", String(20)),
    Column("installments", Integer),
    Column("recurring_end_date", Date),
    Column("wallet_id", Integer, ForeignKey("wallets.id"), nullable=False, index=True),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

companies = Table(
    "companies",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("cnpj", String(14)),
    Column("razao_social", String(255)),
    Column("inscricao_estadual", String(50)),
    Column("telefone", String(50)),
    Column("endereco", String(500)),
    Column("email", String(255)),
    Column("pessoa_responsavel", String(255)),
    Column("website", String(255)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)


@app.on_event("startup")
def init_db() -> None:
    metadata.create_all(engine)


def get_today() -> date:
    return date.today()


class CredentialsPayload(BaseModel):
    email: str
    password: str


class UserPayload(BaseModel):
    name: str
    email: str
    password: str | None = None
    role: str = UserRole.EDITOR

    @classmethod
    def validate_payload(cls, payload: "UserPayload", creating: bool) -> "UserPayload":
        payload.name = payload.name.strip()
        payload.email = payload.email.strip().lower()
        if not payload.name:
            raise ValueError("Nome é obrigatório.")
        if not payload.email or "@" not in payload.email:
            raise ValueError("E-mail inválido.")
        if creating and not payload.password:
            raise ValueError("Senha é obrigatória.")
        payload.role = UserRole.validate(payload.role)
        return payload


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    role_label: str
    created_at: datetime | None = None


class WalletPayload(BaseModel):
    name: str
    description: str | None = None
    budget: Decimal | None = None

    @classmethod
    def validate_payload(cls, payload: "WalletPayload") -> "WalletPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Nome da carteira é obrigatório.")
        payload.description = payload.description.strip() if payload.description else None
        if payload.budget is None:
            payload.budget = Decimal("0")
        if payload.budget < 0:
            raise ValueError("Orçamento não pode ser negativo.")
        return payload


class WalletEmbed(BaseModel):
    id: int
    name: str
    description: str | None = None
    budget: Decimal


class WalletResponse(WalletEmbed):
    total_value: Decimal
    remaining_budget: Decimal
    created_at: datetime | None = None


class WalletSummaryResponse(BaseModel):
    wallet_id: int
    budget: Decimal
    year: int
    month: int
    total_value: Decimal
    open_transactions_value: Decimal
    open_transactions_value_current_month: Decimal
    open_transactions_value_for_month: Decimal
    paid_transactions_value: Decimal
    expense_transactions_value: Decimal
    remaining_budget: Decimal
    remaining_budget_for_month: Decimal


class CompanyPayload(BaseModel):
    name: str
    cnpj: str | None = None
    razao_social: str | None = None
    inscricao_estadual: str | None = None
    telefone: str | None = None
    endereco: str | None = None
    email: str | None = None
    pessoa_responsavel: str | None = None
    website: str | None = None

    @classmethod
    def validate_payload(cls, payload: "CompanyPayload") -> "CompanyPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Nome da empresa é obrigatório.")
        payload.cnpj = normalize_cnpj(payload.cnpj)
        if payload.email is not None:
            payload.email = payload.email.strip().lower() or None
        return payload


class CompanyResponse(CompanyPayload):
    id: int
    formatted_cnpj: str | None = None
    created_at: datetime | None = None


class TransactionPayload(BaseModel):
    item: str | None = None
    date: CalendarDate | None = None
    value: Decimal | None = None
    type: str | None = None
    expense_type: str | None = None
    payment_method: str | None = None
    status: str | None = None
    is_recurring: bool | None = None
    recurring_type: str | None = None
    installments: int | None = None
    recurring_end_date: CalendarDate | None = None
    wallet_id: int | None = None


class TransactionResponse(BaseModel):
    id: int
    item: str
    date: date
    value: Decimal
    type: str
    expense_type: str | None = None
    payment_method: str | None = None
    status: str
    status_label: str
    is_recurring: bool
    recurring_type: str | None = None
    installments: int | None = None
    recurring_end_date: date | None = None
    wallet_id: int
    wallet: WalletEmbed | None = None
    created_at: datetime | None = None


class TransactionEnvelope(BaseModel):
    success: bool
    data: TransactionResponse
    message: str


class TransactionListEnvelope(BaseModel):
    success: bool
    data: list[TransactionResponse]
    message: str


class MessageEnvelope(BaseModel):
    success: bool
    message: str


class SyncRecurringEnvelope(BaseModel):
    success: bool
    data: dict
    message: str


class MonthTotalsResponse(BaseModel):
    start_date: date
    end_date: date
    revenues: Decimal
    expenses: Decimal
    balance: Decimal


class FinancialSummaryResponse(BaseModel):
    current_month: MonthTotalsResponse
    previous_month: MonthTotalsResponse
    revenue_change: Decimal
    expense_change: Decimal
    balance_change: Decimal
    revenue_description: str
    expense_description: str
    balance_description: str
    total_wallets: int
    total_transactions: int


class ExpenseVsRevenueResponse(BaseModel):
    period: str
    start_date: date
    end_date: date
    revenues: Decimal
    expenses: Decimal


class MostExpensiveEntry(BaseModel):
    id: int
    item: str
    date: date
    value: Decimal
    wallet_id: int
    wallet_name: str | None = None


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    if not request.url.path.startswith("/transactions"):
        return await request_validation_exception_handler(request, exc)
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        field = str(error["loc"][-1]) if error.get("loc") else "body"
        errors.setdefault(field, []).append(error.get("msg", "Valor inválido."))
    return validation_failed(errors)


def validation_failed(errors: dict[str, list[str]]) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "Dados de validação falharam",
            "errors": errors,
        },
    )


def transaction_not_found() -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"success": False, "message": "Transação não encontrada"},
    )


def server_error(message: str, exc: Exception) -> JSONResponse:
    logger.exception("%s: %s", message, exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": message, "error": str(exc)},
    )


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def get_current_user(x_user_id: str | None) -> dict:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user identity.")
    try:
        user_id = int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid user identity.") from exc
    with engine.begin() as conn:
        row = conn.execute(select(users).where(users.c.id == user_id)).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="User not found.")
    return dict(row)


def authorize(
    user: dict, resource: str, action: str, target_id: int | None = None
) -> None:
    if not can(user["role"], resource, action, actor_id=user["id"], target_id=target_id):
        raise HTTPException(status_code=403, detail="Ação não autorizada.")


def parse_month_value(value: str) -> tuple[int, int]:
    try:
        parsed = datetime.strptime(value, "%Y-%m").date()
    except ValueError as exc:
        raise ValueError("Invalid month format. Use YYYY-MM.") from exc
    return parsed.year, parsed.month


def coerce_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def normalize_transaction_values(values: dict) -> tuple[dict, dict[str, list[str]]]:
    """Normalize a merged transaction record and collect field errors.

    Fields that only make sense for expenses or recurring masters are
    cleared when the record is neither.
    """
    errors: dict[str, list[str]] = {}
    normalized = dict(values)

    def fail(field: str, message: str) -> None:
        errors.setdefault(field, []).append(message)

    item = (normalized.get("item") or "").strip()
    if not item:
        fail("item", "O campo item é obrigatório.")
    elif len(item) > ITEM_MAX_LENGTH:
        fail("item", "O campo item não pode ter mais de 255 caracteres.")
    normalized["item"] = item

    if normalized.get("date") is None:
        fail("date", "O campo data é obrigatório.")
    if normalized.get("value") is None:
        fail("value", "O campo valor é obrigatório.")
    if normalized.get("wallet_id") is None:
        fail("wallet_id", "O campo carteira é obrigatório.")

    for field, choice, required_message in (
        ("type", TransactionType, "O campo tipo é obrigatório."),
        ("expense_type", ExpenseType, None),
        ("payment_method", PaymentMethod, None),
        ("status", StatusTransaction, None),
        ("recurring_type", RecurringType, None),
    ):
        raw = normalized.get(field)
        if raw is None or not str(raw).strip():
            normalized[field] = None
            if required_message:
                fail(field, required_message)
            continue
        try:
            normalized[field] = choice.validate(str(raw))
        except ValueError:
            fail(field, f"O valor selecionado para {field} é inválido.")

    if normalized.get("type") == TransactionType.EXPENSE:
        if not normalized.get("expense_type") and "expense_type" not in errors:
            fail("expense_type", "O tipo de despesa é obrigatório para despesas.")
    elif normalized.get("type") == TransactionType.INCOME:
        normalized["expense_type"] = None

    normalized["is_recurring"] = bool(normalized.get("is_recurring"))
    if normalized["is_recurring"]:
        if not normalized.get("recurring_type") and "recurring_type" not in errors:
            fail("recurring_type", "O tipo de recorrência é obrigatório.")
        installments = normalized.get("installments")
        end_date = normalized.get("recurring_end_date")
        if installments is None and end_date is None:
            fail(
                "installments",
                "Informe o número de parcelas ou a data final da recorrência.",
            )
        if installments is not None and installments < 1:
            fail("installments", "O número de parcelas deve ser maior ou igual a 1.")
        if (
            end_date is not None
            and normalized.get("date") is not None
            and end_date < normalized["date"]
        ):
            fail(
                "recurring_end_date",
                "A data final da recorrência deve ser igual ou posterior à data.",
            )
    else:
        normalized["recurring_type"] = None
        normalized["installments"] = None
        normalized["recurring_end_date"] = None

    return normalized, errors


def wallet_exists(conn, wallet_id: int) -> bool:
    return conn.execute(select(wallets.c.id).where(wallets.c.id == wallet_id)).first() is not None


def create_transaction_row(conn, values: dict, today: date) -> dict:
    row_values = dict(values)
    row_values["status"] = derive_status(
        row_values.get("payment_method"),
        row_values["date"],
        today,
        row_values.get("status"),
    )
    result = conn.execute(insert(transactions).values(**row_values).returning(*transactions.c))
    return dict(result.mappings().one())


def update_transaction_row(conn, transaction_id: int, values: dict, today: date) -> dict | None:
    row_values = dict(values)
    row_values["status"] = derive_status(
        row_values.get("payment_method"),
        row_values["date"],
        today,
        row_values.get("status"),
    )
    result = conn.execute(
        update(transactions)
        .where(transactions.c.id == transaction_id)
        .values(**row_values)
        .returning(*transactions.c)
    )
    row = result.mappings().first()
    return dict(row) if row else None


def patch_recurring_end_date(conn, transaction_id: int, end_date: date) -> None:
    # Computed field only, status is left as stored.
    conn.execute(
        update(transactions)
        .where(transactions.c.id == transaction_id)
        .values(recurring_end_date=end_date)
    )


def master_from_row(row: dict) -> MasterTransaction:
    return MasterTransaction(
        id=row["id"],
        item=row["item"],
        date=row["date"],
        value=row["value"],
        type=row["type"],
        wallet_id=row["wallet_id"],
        recurring_type=row["recurring_type"],
        is_recurring=bool(row["is_recurring"]),
        installments=row["installments"],
        recurring_end_date=row["recurring_end_date"],
        expense_type=row["expense_type"],
        payment_method=row["payment_method"],
        status=row["status"],
    )


def copy_values(copy: TransactionCopy) -> dict:
    return {
        "item": copy.item,
        "date": copy.date,
        "value": copy.value,
        "type": copy.type,
        "expense_type": copy.expense_type,
        "payment_method": copy.payment_method,
        "status": copy.status,
        "is_recurring": copy.is_recurring,
        "recurring_type": copy.recurring_type,
        "installments": copy.installments,
        "recurring_end_date": copy.recurring_end_date,
        "wallet_id": copy.wallet_id,
    }


def expand_master(conn, master_row: dict, today: date) -> int:
    master = master_from_row(master_row)
    if master.installments:
        plan = expand_installments(master)
        for copy in plan.copies:
            create_transaction_row(conn, copy_values(copy), today)
        if plan.end_date is not None:
            patch_recurring_end_date(conn, master_row["id"], plan.end_date)
            master_row["recurring_end_date"] = plan.end_date
        created = len(plan.copies)
    else:
        copies = expand_until(master)
        for copy in copies:
            create_transaction_row(conn, copy_values(copy), today)
        created = len(copies)
    logger.info(
        "Expanded recurring transaction %s into %s copies", master_row["id"], created
    )
    return created


def latest_copy_date(conn, master_row: dict) -> date | None:
    return conn.execute(
        select(func.max(transactions.c.date)).where(
            transactions.c.item == master_row["item"],
            transactions.c.wallet_id == master_row["wallet_id"],
            transactions.c.is_recurring.is_(False),
            transactions.c.date > master_row["date"],
        )
    ).scalar_one_or_none()


def sync_missing_occurrences(conn, master_row: dict, today: date) -> int:
    master = master_from_row(master_row)
    # Installment copies carry a "(i/N)" suffix and cannot be matched by item.
    if master.installments:
        return 0
    copies = missing_occurrences(master, latest_copy_date(conn, master_row))
    for copy in copies:
        create_transaction_row(conn, copy_values(copy), today)
    logger.info(
        "Created %s missing occurrences for recurring transaction %s",
        len(copies),
        master_row["id"],
    )
    return len(copies)


def wallet_embed(row) -> WalletEmbed:
    return WalletEmbed(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        budget=coerce_decimal(row["budget"]),
    )


def transaction_response(row: dict, wallet_row=None) -> TransactionResponse:
    return TransactionResponse(
        id=row["id"],
        item=row["item"],
        date=row["date"],
        value=row["value"],
        type=row["type"],
        expense_type=row["expense_type"],
        payment_method=row["payment_method"],
        status=row["status"],
        status_label=StatusTransaction.label(row["status"]),
        is_recurring=bool(row["is_recurring"]),
        recurring_type=row["recurring_type"],
        installments=row["installments"],
        recurring_end_date=row["recurring_end_date"],
        wallet_id=row["wallet_id"],
        wallet=wallet_embed(wallet_row) if wallet_row else None,
        created_at=row["created_at"],
    )


def fetch_transaction(conn, transaction_id: int) -> dict | None:
    row = conn.execute(
        select(transactions).where(transactions.c.id == transaction_id)
    ).mappings().first()
    return dict(row) if row else None


def fetch_wallet(conn, wallet_id: int):
    return conn.execute(select(wallets).where(wallets.c.id == wallet_id)).mappings().first()


def ledger_entries(conn, wallet_id: int) -> list[LedgerEntry]:
    rows = conn.execute(
        select(
            transactions.c.value,
            transactions.c.type,
            transactions.c.status,
            transactions.c.date,
        ).where(transactions.c.wallet_id == wallet_id)
    ).mappings().all()
    return [
        LedgerEntry(
            value=coerce_decimal(row["value"]),
            type=row["type"],
            status=row["status"],
            date=row["date"],
        )
        for row in rows
    ]


def report_entries(conn) -> list[ReportEntry]:
    rows = conn.execute(
        select(
            transactions.c.id,
            transactions.c.item,
            transactions.c.value,
            transactions.c.type,
            transactions.c.date,
            transactions.c.wallet_id,
        )
    ).mappings().all()
    return [
        ReportEntry(
            id=row["id"],
            item=row["item"],
            value=coerce_decimal(row["value"]),
            type=row["type"],
            date=row["date"],
            wallet_id=row["wallet_id"],
        )
        for row in rows
    ]


def wallet_response(conn, row, today: date) -> WalletResponse:
    entries = ledger_entries(conn, row["id"])
    budget = coerce_decimal(row["budget"])
    return WalletResponse(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        budget=budget,
        total_value=total_value(entries),
        remaining_budget=remaining_budget(budget, entries, today),
        created_at=row["created_at"],
    )


def user_response(row) -> UserResponse:
    return UserResponse(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        role=row["role"],
        role_label=UserRole.label(row["role"]),
        created_at=row["created_at"],
    )


def company_response(row) -> CompanyResponse:
    return CompanyResponse(
        id=row["id"],
        name=row["name"],
        cnpj=row["cnpj"],
        formatted_cnpj=format_cnpj(row["cnpj"]),
        razao_social=row["razao_social"],
        inscricao_estadual=row["inscricao_estadual"],
        telefone=row["telefone"],
        endereco=row["endereco"],
        email=row["email"],
        pessoa_responsavel=row["pessoa_responsavel"],
        website=row["website"],
        created_at=row["created_at"],
    )


@app.get("/health")
def health() -> JSONResponse:
    checks = {}
    status = "ok"
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy"}
    except SQLAlchemyError as exc:
        checks["database"] = {"status": "unhealthy", "error": str(exc)}
        status = "unhealthy"
    payload = {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
    if status != "ok":
        logger.warning("Health check failed: %s", payload)
        return JSONResponse(status_code=503, content=payload)
    return JSONResponse(content=payload)


@app.post("/auth/signup", response_model=UserResponse)
def signup(payload: UserPayload) -> UserResponse:
    """Bootstraps the first account, which always becomes the super admin."""
    try:
        payload = UserPayload.validate_payload(payload, creating=True)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    with engine.begin() as conn:
        existing = conn.execute(select(users.c.id).limit(1)).first()
        if existing:
            raise HTTPException(status_code=403, detail="Cadastro inicial já realizado.")
        row = conn.execute(
            insert(users)
            .values(
                name=payload.name,
                email=payload.email,
                hashed_password=hash_password(payload.password),
                role=UserRole.SUPER_ADMIN,
            )
            .returning(*users.c)
        ).mappings().first()
    return user_response(row)


@app.post("/auth/login", response_model=UserResponse)
def login(payload: CredentialsPayload) -> UserResponse:
    email = payload.email.strip().lower()
    with engine.begin() as conn:
        row = conn.execute(select(users).where(users.c.email == email)).mappings().first()

    if not row or not verify_password(payload.password, row["hashed_password"]):
        raise HTTPException(status_code=401, detail="Invalid credentials.")
    return user_response(row)


@app.get("/users", response_model=list[UserResponse])
def list_users(x_user_id: str | None = Header(None, alias="x-user-id")) -> list[UserResponse]:
    user = get_current_user(x_user_id)
    authorize(user, "user", "view")
    with engine.begin() as conn:
        rows = conn.execute(select(users).order_by(users.c.name.asc())).mappings().all()
    return [user_response(row) for row in rows]


@app.post("/users", response_model=UserResponse)
def create_user(
    payload: UserPayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> UserResponse:
    user = get_current_user(x_user_id)
    authorize(user, "user", "create")
    try:
        payload = UserPayload.validate_payload(payload, creating=True)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    stmt = (
        insert(users)
        .values(
            name=payload.name,
            email=payload.email,
            hashed_password=hash_password(payload.password),
            role=payload.role,
        )
        .returning(*users.c)
    )
    try:
        with engine.begin() as conn:
            row = conn.execute(stmt).mappings().first()
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="E-mail já cadastrado.") from exc
    return user_response(row)


@app.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    payload: UserPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> UserResponse:
    user = get_current_user(x_user_id)
    authorize(user, "user", "update", target_id=user_id)
    try:
        payload = UserPayload.validate_payload(payload, creating=False)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    values = {"name": payload.name, "email": payload.email, "role": payload.role}
    if payload.password:
        values["hashed_password"] = hash_password(payload.password)
    stmt = update(users).where(users.c.id == user_id).values(**values).returning(*users.c)
    try:
        with engine.begin() as conn:
            row = conn.execute(stmt).mappings().first()
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="E-mail já cadastrado.") from exc
    if not row:
        raise HTTPException(status_code=404, detail="Usuário não encontrado.")
    return user_response(row)


@app.delete("/users/{user_id}")
def delete_user(user_id: int, x_user_id: str | None = Header(None, alias="x-user-id")) -> dict:
    user = get_current_user(x_user_id)
    authorize(user, "user", "delete", target_id=user_id)
    with engine.begin() as conn:
        result = conn.execute(users.delete().where(users.c.id == user_id))
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Usuário não encontrado.")
    return {"status": "deleted"}


@app.get("/wallets", response_model=list[WalletResponse])
def list_wallets(
    x_user_id: str | None = Header(None, alias="x-user-id"),
    today: date = Depends(get_today),
) -> list[WalletResponse]:
    user = get_current_user(x_user_id)
    authorize(user, "wallet", "view")
    with engine.begin() as conn:
        rows = conn.execute(select(wallets).order_by(wallets.c.name.asc())).mappings().all()
        return [wallet_response(conn, row, today) for row in rows]


@app.post("/wallets", response_model=WalletResponse)
def create_wallet(
    payload: WalletPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
    today: date = Depends(get_today),
) -> WalletResponse:
    user = get_current_user(x_user_id)
    authorize(user, "wallet", "create")
    try:
        payload = WalletPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    stmt = (
        insert(wallets)
        .values(name=payload.name, description=payload.description, budget=payload.budget)
        .returning(*wallets.c)
    )
    try:
        with engine.begin() as conn:
            row = conn.execute(stmt).mappings().first()
            return wallet_response(conn, row, today)
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Já existe uma carteira com este nome.") from exc


@app.get("/wallets/{wallet_id}", response_model=WalletResponse)
def get_wallet(
    wallet_id: int,
    x_user_id: str | None = Header(None, alias="x-user-id"),
    today: date = Depends(get_today),
) -> WalletResponse:
    user = get_current_user(x_user_id)
    authorize(user, "wallet", "view")
    with engine.begin() as conn:
        row = fetch_wallet(conn, wallet_id)
        if not row:
            raise HTTPException(status_code=404, detail="Carteira não encontrada.")
        return wallet_response(conn, row, today)


@app.put("/wallets/{wallet_id}", response_model=WalletResponse)
def update_wallet(
    wallet_id: int,
    payload: WalletPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
    today: date = Depends(get_today),
) -> WalletResponse:
    user = get_current_user(x_user_id)
    authorize(user, "wallet", "update")
    try:
        payload = WalletPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    stmt = (
        update(wallets)
        .where(wallets.c.id == wallet_id)
        .values(name=payload.name, description=payload.description, budget=payload.budget)
        .returning(*wallets.c)
    )
    try:
        with engine.begin() as conn:
            row = conn.execute(stmt).mappings().first()
            if not row:
                raise HTTPException(status_code=404, detail="Carteira não encontrada.")
            return wallet_response(conn, row, today)
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Já existe uma carteira com este nome.") from exc


@app.delete("/wallets/{wallet_id}")
def delete_wallet(wallet_id: int, x_user_id: str | None = Header(None, alias="x-user-id")) -> dict:
    user = get_current_user(x_user_id)
    authorize(user, "wallet", "delete")
    with engine.begin() as conn:
        in_use = conn.execute(
            select(transactions.c.id).where(transactions.c.wallet_id == wallet_id).limit(1)
        ).first()
        if in_use:
            raise HTTPException(
                status_code=409,
                detail="Não é possível excluir uma carteira que possui transações.",
            )
        result = conn.execute(wallets.delete().where(wallets.c.id == wallet_id))
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Carteira não encontrada.")
    return {"status": "deleted"}


@app.get("/wallets/{wallet_id}/summary", response_model=WalletSummaryResponse)
def wallet_summary(
    wallet_id: int,
    month: str | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
    today: date = Depends(get_today),
) -> WalletSummaryResponse:
    user = get_current_user(x_user_id)
    authorize(user, "wallet", "view")
    year = month_number = None
    if month:
        try:
            year, month_number = parse_month_value(month)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    with engine.begin() as conn:
        row = fetch_wallet(conn, wallet_id)
        if not row:
            raise HTTPException(status_code=404, detail="Carteira não encontrada.")
        entries = ledger_entries(conn, wallet_id)
    summary = evaluate_wallet(row["budget"], entries, today, year, month_number)
    return WalletSummaryResponse(
        wallet_id=wallet_id,
        budget=summary.budget,
        year=summary.year,
        month=summary.month,
        total_value=summary.total_value,
        open_transactions_value=summary.open_transactions_value,
        open_transactions_value_current_month=summary.open_transactions_value_current_month,
        open_transactions_value_for_month=summary.open_transactions_value_for_month,
        paid_transactions_value=summary.paid_transactions_value,
        expense_transactions_value=summary.expense_transactions_value,
        remaining_budget=summary.remaining_budget,
        remaining_budget_for_month=summary.remaining_budget_for_month,
    )


@app.get("/company", response_model=CompanyResponse)
def get_company(x_user_id: str | None = Header(None, alias="x-user-id")) -> CompanyResponse:
    user = get_current_user(x_user_id)
    authorize(user, "company", "view")
    with engine.begin() as conn:
        row = conn.execute(
            select(companies).order_by(companies.c.id.asc()).limit(1)
        ).mappings().first()
        if not row:
            row = conn.execute(
                insert(companies).values(name=DEFAULT_COMPANY_NAME).returning(*companies.c)
            ).mappings().first()
    return company_response(row)


@app.post("/company", response_model=CompanyResponse)
def create_company(
    payload: CompanyPayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> CompanyResponse:
    user = get_current_user(x_user_id)
    authorize(user, "company", "create")
    try:
        payload = CompanyPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    with engine.begin() as conn:
        existing = conn.execute(select(companies.c.id).limit(1)).first()
        if existing:
            raise HTTPException(status_code=409, detail="Empresa já cadastrada.")
        row = conn.execute(
            insert(companies).values(**payload.model_dump()).returning(*companies.c)
        ).mappings().first()
    return company_response(row)


@app.put("/company/{company_id}", response_model=CompanyResponse)
def update_company(
    company_id: int,
    payload: CompanyPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> CompanyResponse:
    user = get_current_user(x_user_id)
    authorize(user, "company", "update")
    try:
        payload = CompanyPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    with engine.begin() as conn:
        row = conn.execute(
            update(companies)
            .where(companies.c.id == company_id)
            .values(**payload.model_dump())
            .returning(*companies.c)
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Empresa não encontrada.")
    return company_response(row)


@app.delete("/company/{company_id}")
def delete_company(
    company_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
) -> dict:
    user = get_current_user(x_user_id)
    authorize(user, "company", "delete")
    with engine.begin() as conn:
        result = conn.execute(companies.delete().where(companies.c.id == company_id))
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Empresa não encontrada.")
    return {"status": "deleted"}


@app.get("/transactions", response_model=TransactionListEnvelope)
def list_transactions(
    wallet_id: int | None = None,
    status: str | None = None,
    type_: str | None = Query(None, alias="type"),
    month: str | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    user = get_current_user(x_user_id)
    authorize(user, "transaction", "view")
    conditions = []
    errors: dict[str, list[str]] = {}
    if wallet_id is not None:
        conditions.append(transactions.c.wallet_id == wallet_id)
    if status:
        try:
            conditions.append(transactions.c.status == StatusTransaction.validate(status))
        except ValueError as exc:
            errors["status"] = [str(exc)]
    if type_:
        try:
            conditions.append(transactions.c.type == TransactionType.validate(type_))
        except ValueError as exc:
            errors["type"] = [str(exc)]
    if month:
        try:
            year, month_number = parse_month_value(month)
            start_date = date(year, month_number, 1)
            end_date = date(year + month_number // 12, month_number % 12 + 1, 1)
            conditions.append(transactions.c.date >= start_date)
            conditions.append(transactions.c.date < end_date)
        except ValueError as exc:
            errors["month"] = [str(exc)]
    if errors:
        return validation_failed(errors)

    try:
        with engine.begin() as conn:
            rows = conn.execute(
                select(transactions)
                .where(*conditions)
                .order_by(transactions.c.date.desc(), transactions.c.id.desc())
            ).mappings().all()
            wallet_rows = {
                row["id"]: row for row in conn.execute(select(wallets)).mappings().all()
            }
    except Exception as exc:
        return server_error("Erro ao recuperar transações", exc)
    return TransactionListEnvelope(
        success=True,
        data=[transaction_response(dict(row), wallet_rows.get(row["wallet_id"])) for row in rows],
        message="Transações recuperadas com sucesso",
    )


@app.post("/transactions", response_model=TransactionEnvelope, status_code=201)
def create_transaction(
    payload: TransactionPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
    today: date = Depends(get_today),
):
    user = get_current_user(x_user_id)
    authorize(user, "transaction", "create")
    values, errors = normalize_transaction_values(payload.model_dump())
    try:
        with engine.begin() as conn:
            if values["wallet_id"] is not None and not wallet_exists(conn, values["wallet_id"]):
                errors.setdefault("wallet_id", []).append("A carteira selecionada não existe.")
            if errors:
                return validation_failed(errors)
            row = create_transaction_row(conn, values, today)
            if row["is_recurring"]:
                expand_master(conn, row, today)
            wallet_row = fetch_wallet(conn, row["wallet_id"])
    except Exception as exc:
        return server_error("Erro ao criar transação", exc)
    return TransactionEnvelope(
        success=True,
        data=transaction_response(row, wallet_row),
        message="Transação criada com sucesso",
    )


@app.get("/transactions/{transaction_id}", response_model=TransactionEnvelope)
def get_transaction(
    transaction_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
):
    user = get_current_user(x_user_id)
    authorize(user, "transaction", "view")
    try:
        with engine.begin() as conn:
            row = fetch_transaction(conn, transaction_id)
            if not row:
                return transaction_not_found()
            wallet_row = fetch_wallet(conn, row["wallet_id"])
    except Exception as exc:
        return server_error("Erro ao recuperar transação", exc)
    return TransactionEnvelope(
        success=True,
        data=transaction_response(row, wallet_row),
        message="Transação recuperada com sucesso",
    )


@app.put("/transactions/{transaction_id}", response_model=TransactionEnvelope)
def update_transaction(
    transaction_id: int,
    payload: TransactionPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
    today: date = Depends(get_today),
):
    user = get_current_user(x_user_id)
    authorize(user, "transaction", "update")
    try:
        with engine.begin() as conn:
            existing = fetch_transaction(conn, transaction_id)
            if not existing:
                return transaction_not_found()
            merged = {
                column.name: existing[column.name]
                for column in transactions.c
                if column.name not in {"id", "created_at"}
            }
            merged.update(payload.model_dump(exclude_unset=True))
            values, errors = normalize_transaction_values(merged)
            if values["wallet_id"] is not None and not wallet_exists(conn, values["wallet_id"]):
                errors.setdefault("wallet_id", []).append("A carteira selecionada não existe.")
            if errors:
                return validation_failed(errors)
            row = update_transaction_row(conn, transaction_id, values, today)
            wallet_row = fetch_wallet(conn, row["wallet_id"])
    except Exception as exc:
        return server_error("Erro ao atualizar transação", exc)
    return TransactionEnvelope(
        success=True,
        data=transaction_response(row, wallet_row),
        message="Transação atualizada com sucesso",
    )


@app.delete("/transactions/{transaction_id}", response_model=MessageEnvelope)
def delete_transaction(
    transaction_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
):
    user = get_current_user(x_user_id)
    authorize(user, "transaction", "delete")
    try:
        with engine.begin() as conn:
            result = conn.execute(
                transactions.delete().where(transactions.c.id == transaction_id)
            )
            if result.rowcount == 0:
                return transaction_not_found()
    except Exception as exc:
        return server_error("Erro ao excluir transação", exc)
    return MessageEnvelope(success=True, message="Transação excluída com sucesso")


@app.post("/transactions/{transaction_id}/sync-recurring", response_model=SyncRecurringEnvelope)
def sync_recurring_transaction(
    transaction_id: int,
    x_user_id: str | None = Header(None, alias="x-user-id"),
    today: date = Depends(get_today),
):
    user = get_current_user(x_user_id)
    authorize(user, "transaction", "create")
    try:
        with engine.begin() as conn:
            master_row = fetch_transaction(conn, transaction_id)
            if not master_row:
                return transaction_not_found()
            created = 0
            if master_row["is_recurring"]:
                created = sync_missing_occurrences(conn, master_row, today)
    except Exception as exc:
        return server_error("Erro ao gerar transações recorrentes", exc)
    return SyncRecurringEnvelope(
        success=True,
        data={"transaction_id": transaction_id, "created": created},
        message="Transações recorrentes sincronizadas com sucesso",
    )


@app.get("/dashboard/summary", response_model=FinancialSummaryResponse)
def dashboard_summary(
    x_user_id: str | None = Header(None, alias="x-user-id"),
    today: date = Depends(get_today),
) -> FinancialSummaryResponse:
    user = get_current_user(x_user_id)
    authorize(user, "transaction", "view")
    with engine.begin() as conn:
        entries = report_entries(conn)
        total_wallets = conn.execute(select(func.count()).select_from(wallets)).scalar_one()
    summary = financial_summary(entries, today)
    return FinancialSummaryResponse(
        current_month=MonthTotalsResponse(**asdict(summary.current)),
        previous_month=MonthTotalsResponse(**asdict(summary.previous)),
        revenue_change=summary.revenue_change,
        expense_change=summary.expense_change,
        balance_change=summary.balance_change,
        revenue_description=summary.revenue_description,
        expense_description=summary.expense_description,
        balance_description=summary.balance_description,
        total_wallets=total_wallets,
        total_transactions=len(entries),
    )


@app.get("/dashboard/expense-vs-revenue", response_model=ExpenseVsRevenueResponse)
def dashboard_expense_vs_revenue(
    period: str = Query("month"),
    x_user_id: str | None = Header(None, alias="x-user-id"),
    today: date = Depends(get_today),
) -> ExpenseVsRevenueResponse:
    user = get_current_user(x_user_id)
    authorize(user, "transaction", "view")
    with engine.begin() as conn:
        entries = report_entries(conn)
    try:
        result = expense_vs_revenue(entries, period, today)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ExpenseVsRevenueResponse(**asdict(result))


@app.get("/dashboard/most-expensive", response_model=list[MostExpensiveEntry])
def dashboard_most_expensive(
    limit: int = Query(10, ge=1, le=100),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[MostExpensiveEntry]:
    user = get_current_user(x_user_id)
    authorize(user, "transaction", "view")
    with engine.begin() as conn:
        entries = report_entries(conn)
        wallet_names = dict(conn.execute(select(wallets.c.id, wallets.c.name)).all())
    return [
        MostExpensiveEntry(
            id=entry.id,
            item=entry.item,
            date=entry.date,
            value=entry.value,
            wallet_id=entry.wallet_id,
            wallet_name=wallet_names.get(entry.wallet_id),
        )
        for entry in most_expensive(entries, limit)
    ]
