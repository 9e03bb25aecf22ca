import unittest

from fincontrol.cnpj import format_cnpj, is_valid_cnpj, normalize_cnpj


class CnpjTests(unittest.TestCase):
    def test_accepts_valid_cnpj_with_or_without_mask(self) -> None:
        self.assertTrue(is_valid_cnpj("11222333000181"))
        self.assertTrue(is_valid_cnpj("11.222.333/0001-81"))

    def test_rejects_wrong_check_digits(self) -> None:
        self.assertFalse(is_valid_cnpj("11222333000182"))
        self.assertFalse(is_valid_cnpj("11.222.333/0001-91"))

    def test_rejects_wrong_length(self) -> None:
        self.assertFalse(is_valid_cnpj("1122233300018"))

    def test_empty_value_is_allowed(self) -> None:
        self.assertTrue(is_valid_cnpj(None))
        self.assertTrue(is_valid_cnpj(""))
        self.assertIsNone(normalize_cnpj("   "))

    def test_normalize_strips_mask(self) -> None:
        self.assertEqual(normalize_cnpj("11.222.333/0001-81"), "11222333000181")

    def test_normalize_rejects_invalid(self) -> None:
        with self.assertRaises(ValueError):
            normalize_cnpj("11.222.333/0001-00")

    def test_format(self) -> None:
        self.assertEqual(format_cnpj("11222333000181"), "11.222.333/0001-81")
        self.assertEqual(format_cnpj("123"), "123")
        self.assertIsNone(format_cnpj(None))


if __name__ == "__main__":
    unittest.main()
