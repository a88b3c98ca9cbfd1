import unittest

from goldbook.errors import FormulaEvaluationError
from goldbook.services.expression_service import (
    evaluate_expression,
    identifiers,
    parse_expression,
    tokenize,
)


class ExpressionEvaluationTests(unittest.TestCase):
    def test_arithmetic_precedence(self):
        self.assertEqual(evaluate_expression("2 + 3 * 4", {}), 14.0)
        self.assertEqual(evaluate_expression("(2 + 3) * 4", {}), 20.0)
        self.assertEqual(evaluate_expression("-2 * -3", {}), 6.0)

    def test_variables_and_formatted_numbers(self):
        result = evaluate_expression("price * 2", {"price": "1,250,000"})
        self.assertEqual(result, 2500000.0)

    def test_conditional_picks_branch(self):
        expr = "x > 5 ? 10 : 20"
        self.assertEqual(evaluate_expression(expr, {"x": 6}), 10.0)
        self.assertEqual(evaluate_expression(expr, {"x": 5}), 20.0)

    def test_logical_operators(self):
        self.assertEqual(evaluate_expression("a && b", {"a": 1, "b": 0}), 0.0)
        self.assertEqual(evaluate_expression("a || b", {"a": 1, "b": 0}), 1.0)
        self.assertEqual(evaluate_expression("!a", {"a": 0}), 1.0)

    def test_rounding_by_value_type(self):
        self.assertEqual(evaluate_expression("10.5", {}, value_type="price"), 11.0)
        self.assertEqual(evaluate_expression("2.5", {}, value_type="amount"), 3.0)
        self.assertEqual(evaluate_expression("1 / 3", {}, value_type="weight"), 0.3333)
        self.assertEqual(evaluate_expression("1 / 3", {}, value_type="percent"), 0.33)

    def test_unknown_identifier_reads_as_zero(self):
        with self.assertLogs("goldbook.services.expression_service", level="WARNING") as logs:
            result = evaluate_expression("missing + 2", {})
        self.assertEqual(result, 2.0)
        self.assertIn("missing", logs.output[0])

    def test_untaken_branch_is_not_evaluated(self):
        self.assertEqual(evaluate_expression("1 ? 5 : 1 / 0", {}), 5.0)


class ExpressionSafetyTests(unittest.TestCase):
    def test_unsafe_characters_rejected(self):
        with self.assertRaises(FormulaEvaluationError):
            tokenize("__import__('os').system('ls')")

    def test_unsafe_expression_degrades_to_zero(self):
        with self.assertLogs("goldbook.services.expression_service", level="ERROR"):
            result = evaluate_expression("a; b", {"a": 1, "b": 2})
        self.assertEqual(result, 0.0)

    def test_strict_mode_raises(self):
        with self.assertRaises(FormulaEvaluationError):
            evaluate_expression("a; b", {"a": 1, "b": 2}, strict=True)

    def test_division_by_zero(self):
        with self.assertLogs("goldbook.services.expression_service", level="ERROR"):
            self.assertEqual(evaluate_expression("1 / x", {"x": 0}), 0.0)
        with self.assertRaises(FormulaEvaluationError):
            evaluate_expression("1 / x", {"x": 0}, strict=True)

    def test_syntax_errors(self):
        for expr in ("", "1 +", "(1 + 2", "1 ? 2", "2 3"):
            with self.subTest(expr=expr):
                with self.assertRaises(FormulaEvaluationError):
                    parse_expression(expr)

    def test_nesting_within_limit_evaluates(self):
        expr = "(" * 30 + "2" + ")" * 30
        self.assertEqual(evaluate_expression(expr, {}), 2.0)
        self.assertEqual(evaluate_expression("-" * 20 + "3", {}), 3.0)

    def test_deep_nesting_degrades_to_zero(self):
        expr = "(" * 2000 + "1" + ")" * 2000
        with self.assertLogs("goldbook.services.expression_service", level="ERROR"):
            self.assertEqual(evaluate_expression(expr, {}), 0.0)
        with self.assertRaises(FormulaEvaluationError):
            evaluate_expression(expr, {}, strict=True)
        with self.assertRaises(FormulaEvaluationError):
            parse_expression("!" * 500 + "1")

    def test_overlong_operator_chain_degrades_to_zero(self):
        expr = "1" + " + 1" * 5000
        with self.assertLogs("goldbook.services.expression_service", level="ERROR"):
            self.assertEqual(evaluate_expression(expr, {}), 0.0)
        with self.assertRaises(FormulaEvaluationError):
            evaluate_expression(expr, {}, strict=True)

    def test_identifiers(self):
        self.assertEqual(
            identifiers("weight_grams * carat / 750 * unit_price"),
            {"weight_grams", "carat", "unit_price"},
        )


if __name__ == "__main__":
    unittest.main()
