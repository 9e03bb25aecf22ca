import unittest

from fincontrol.enums import (
    ExpenseType,
    PaymentMethod,
    RecurringType,
    StatusTransaction,
    TransactionType,
    UserRole,
)


class EnumTests(unittest.TestCase):
    def test_labels_and_colors(self) -> None:
        self.assertEqual(TransactionType.label("expense"), "Despesa")
        self.assertEqual(TransactionType.color("income"), "success")
        self.assertEqual(ExpenseType.label("variable"), "Variável")
        self.assertEqual(PaymentMethod.label("credit_card"), "Cartão de Crédito")
        self.assertEqual(PaymentMethod.color("bank_slip"), "info")
        self.assertEqual(StatusTransaction.color("overdue"), "danger")
        self.assertEqual(RecurringType.label("yearly"), "Anual")
        self.assertEqual(UserRole.label("super_admin"), "Super Admin")

    def test_validate_normalizes_case_and_whitespace(self) -> None:
        self.assertEqual(PaymentMethod.validate("  PIX "), "pix")

    def test_validate_rejects_unknown_values(self) -> None:
        with self.assertRaises(ValueError):
            RecurringType.validate("daily")

    def test_status_options(self) -> None:
        self.assertEqual(
            StatusTransaction.options(),
            {"pending": "Em Aberto", "paid": "Paga", "overdue": "Atrasada"},
        )


if __name__ == "__main__":
    unittest.main()
