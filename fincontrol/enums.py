from __future__ import annotations


class _Choice:
    values: tuple[str, ...] = ()
    labels: dict[str, str] = {}
    colors: dict[str, str] = {}
    error_message = "Invalid value."

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in cls.values:
            raise ValueError(cls.error_message)
        return normalized

    @classmethod
    def label(cls, value: str) -> str:
        return cls.labels[cls.validate(value)]

    @classmethod
    def color(cls, value: str) -> str:
        return cls.colors[cls.validate(value)]

    @classmethod
    def options(cls) -> dict[str, str]:
        return {value: cls.labels[value] for value in cls.values}


class TransactionType(_Choice):
    EXPENSE = "expense"
    INCOME = "income"

    values = (EXPENSE, INCOME)
    labels = {EXPENSE: "Despesa", INCOME: "Receita"}
    colors = {EXPENSE: "danger", INCOME: "success"}
    error_message = "Invalid transaction type."


class ExpenseType(_Choice):
    FIXED = "fixed"
    VARIABLE = "variable"

    values = (FIXED, VARIABLE)
    labels = {FIXED: "Fixa", VARIABLE: "Variável"}
    colors = {FIXED: "primary", VARIABLE: "warning"}
    error_message = "Invalid expense type."


class PaymentMethod(_Choice):
    DEBIT = "debit"
    CREDIT_CARD = "credit_card"
    PIX = "pix"
    BANK_SLIP = "bank_slip"

    values = (DEBIT, CREDIT_CARD, PIX, BANK_SLIP)
    labels = {
        DEBIT: "Débito",
        CREDIT_CARD: "Cartão de Crédito",
        PIX: "PIX",
        BANK_SLIP: "Boleto Bancário",
    }
    colors = {
        DEBIT: "primary",
        CREDIT_CARD: "warning",
        PIX: "success",
        BANK_SLIP: "info",
    }
    error_message = "Invalid payment method."


class StatusTransaction(_Choice):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"

    values = (PENDING, PAID, OVERDUE)
    labels = {PENDING: "Em Aberto", PAID: "Paga", OVERDUE: "Atrasada"}
    colors = {PENDING: "warning", PAID: "success", OVERDUE: "danger"}
    error_message = "Invalid transaction status."

    # Statuses that still count against a wallet's budget.
    OPEN = frozenset({PENDING, OVERDUE})


class RecurringType(_Choice):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    values = (WEEKLY, MONTHLY, YEARLY)
    labels = {WEEKLY: "Semanal", MONTHLY: "Mensal", YEARLY: "Anual"}
    colors = {WEEKLY: "info", MONTHLY: "primary", YEARLY: "warning"}
    error_message = "Invalid recurring type."


class UserRole(_Choice):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    EDITOR = "editor"

    values = (SUPER_ADMIN, ADMIN, EDITOR)
    labels = {SUPER_ADMIN: "Super Admin", ADMIN: "Admin", EDITOR: "Editor"}
    colors = {SUPER_ADMIN: "danger", ADMIN: "warning", EDITOR: "info"}
    error_message = "Invalid user role."
