"""Unit tests for ExpressionEvaluator."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from pipeline_studio.dsl.context import ExecutionContext
from pipeline_studio.dsl.expressions.evaluator import ExpressionEvaluator
from pipeline_studio.dsl.values import UNDEFINED

MakeContext = Callable[..., ExecutionContext]


@pytest.fixture
def ctx(make_context: MakeContext) -> ExecutionContext:
    return make_context(
        parameters={
            "env": "prod",
            "count": 3,
            "enabled": True,
            "list": ["a", "b"],
            "config": {"region": "westus", "tags": {"team": "core"}},
        },
        variables={"Build.Reason": "Manual", "flag": "false"},
        resources=[],
        locals={"item": {"name": "web"}, "itemIndex": 1},
    )


class TestIdentifierResolution:
    """Tests for identifier lookup order."""

    def test_keywords_are_case_insensitive(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test TRUE, False and NULL are keywords."""
        assert evaluator.evaluate("TRUE", ctx) is True
        assert evaluator.evaluate("False", ctx) is False
        assert evaluator.evaluate("NULL", ctx) is None
        assert evaluator.evaluate("undefined", ctx) is UNDEFINED

    def test_locals_shadow_parameters(
        self, evaluator: ExpressionEvaluator, make_context: MakeContext
    ) -> None:
        """Test a loop local wins over a parameter of the same name."""
        ctx = make_context(parameters={"env": "param"}, locals={"env": "local"})
        assert evaluator.evaluate("env", ctx) == "local"

    def test_bare_parameter_name(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test parameters are reachable without the root."""
        assert evaluator.evaluate("env", ctx) == "prod"

    def test_parameters_root(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test nested member access through the parameters root."""
        assert evaluator.evaluate("parameters.config.tags.team", ctx) == "core"

    def test_variables_with_dotted_name(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test bracket access reaches variables whose names contain dots."""
        assert evaluator.evaluate("variables['Build.Reason']", ctx) == "Manual"

    def test_unknown_identifier_is_undefined(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test an unknown name resolves to UNDEFINED without raising."""
        assert evaluator.evaluate("missing", ctx) is UNDEFINED
        assert evaluator.evaluate("parameters.missing.deeper", ctx) is UNDEFINED


class TestFallbacks:
    """Tests for the path and bare-word fallbacks."""

    def test_numeric_path_segment(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test parameters.list.1 resolves through the path fallback."""
        assert evaluator.evaluate("parameters.list.1", ctx) == "b"

    def test_unparseable_text_is_returned_verbatim(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test text that is neither an expression nor a path is the value."""
        assert evaluator.evaluate("Hosted Ubuntu 1604", ctx) == "Hosted Ubuntu 1604"

    def test_unresolved_context_path_is_undefined(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test a path-looking miss is UNDEFINED rather than text."""
        assert evaluator.evaluate("parameters.nothing.0", ctx) is UNDEFINED

    def test_empty_text_is_undefined(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test blank expressions."""
        assert evaluator.evaluate("  ", ctx) is UNDEFINED
        assert evaluator.evaluate(None, ctx) is UNDEFINED


class TestOperators:
    """Tests for operator semantics."""

    def test_plus_concatenates_strings(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test + with a string operand concatenates."""
        assert evaluator.evaluate("'v' + count", ctx) == "v3"

    def test_plus_adds_numbers(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test + with numeric operands adds."""
        assert evaluator.evaluate("count + 2", ctx) == 5

    def test_non_numbers_count_as_zero(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test arithmetic with an unresolved operand."""
        assert evaluator.evaluate("missing * 4 + 1", ctx) == 1

    def test_division_results_are_normalized(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test 6 / 3 is the int 2 and 7 / 2 is 3.5."""
        assert evaluator.evaluate("6 / 3", ctx) == 2
        assert isinstance(evaluator.evaluate("6 / 3", ctx), int)
        assert evaluator.evaluate("7 / 2", ctx) == 3.5

    def test_division_by_zero_is_null(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test / and % by zero yield None."""
        assert evaluator.evaluate("1 / 0", ctx) is None
        assert evaluator.evaluate("5 % 0", ctx) is None

    def test_remainder(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test % keeps the sign of the dividend."""
        assert evaluator.evaluate("7 % 3", ctx) == 1
        assert evaluator.evaluate("-7 % 3", ctx) == -1

    def test_equality_uses_loose_comparison(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test == coerces numeric and boolean strings."""
        assert evaluator.evaluate("count == '3'", ctx) is True
        assert evaluator.evaluate("variables.flag == false", ctx) is True
        assert evaluator.evaluate("env != 'dev'", ctx) is True

    def test_relational(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test < and >= on numbers."""
        assert evaluator.evaluate("count < 10", ctx) is True
        assert evaluator.evaluate("count >= 4", ctx) is False

    def test_logical_operators_return_deciding_operand(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test && and || return operands, not booleans."""
        assert evaluator.evaluate("env && 'yes'", ctx) == "yes"
        assert evaluator.evaluate("missing || 'fallback'", ctx) == "fallback"
        assert evaluator.evaluate("'' && 'never'", ctx) == ""

    def test_nullish_coalescing_keeps_falsy_values(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test ?? only skips null and undefined."""
        assert evaluator.evaluate("missing ?? 'd'", ctx) == "d"
        assert evaluator.evaluate("0 ?? 'd'", ctx) == 0

    def test_not_uses_pipeline_truthiness(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test the string 'false' is falsy."""
        assert evaluator.evaluate("!variables.flag", ctx) is True

    def test_conditional(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test the ternary picks a branch by truthiness."""
        assert evaluator.evaluate("enabled ? 'on' : 'off'", ctx) == "on"

    def test_array_and_object_literals(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test literals evaluate their elements in context."""
        assert evaluator.evaluate("[env, count]", ctx) == ["prod", 3]
        assert evaluator.evaluate("{ name: env }", ctx) == {"name": "prod"}


class TestCalls:
    """Tests for function call dispatch."""

    def test_builtin_is_case_insensitive(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test EQ and eq are the same builtin."""
        assert evaluator.evaluate("EQ(parameters.env, 'prod')", ctx) is True

    def test_unknown_function_is_null(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test an unknown function evaluates to None."""
        assert evaluator.evaluate("nosuch(1)", ctx) is None

    def test_member_call_falls_back_to_builtin(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test item.upper() dispatches to the builtin named by the property."""
        assert evaluator.evaluate("env.upper('x')", ctx) == "X"

    def test_context_callable_wins(
        self, evaluator: ExpressionEvaluator, make_context: MakeContext
    ) -> None:
        """Test a callable local is invoked instead of the builtin."""
        ctx = make_context(locals={"eq": lambda a, b: "custom"})
        assert evaluator.evaluate("eq(1, 2)", ctx) == "custom"

    def test_failing_callable_is_undefined(
        self, evaluator: ExpressionEvaluator, make_context: MakeContext
    ) -> None:
        """Test exceptions from caller callables are contained."""

        def boom() -> None:
            raise RuntimeError("boom")

        ctx = make_context(locals={"boom": boom})
        assert evaluator.evaluate("boom()", ctx) is UNDEFINED

    def test_resources_repositories_by_alias(
        self, evaluator: ExpressionEvaluator, make_context: MakeContext
    ) -> None:
        """Test repository entries are reachable by index and by alias."""
        ctx = make_context(
            resources={
                "repositories": [
                    {"repository": "templates", "type": "git", "name": "org/t"}
                ]
            }
        )
        assert evaluator.evaluate("resources.repositories[0].name", ctx) == "org/t"
        assert evaluator.evaluate("resources.repositories.templates.type", ctx) == "git"


class TestSubstitute:
    """Tests for embedded expression substitution."""

    def test_replaces_each_expression(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test several expressions in one string."""
        text = "deploy-${{ parameters.env }}-${{ itemIndex }}"
        assert evaluator.substitute(text, ctx) == "deploy-prod-1"

    def test_null_and_undefined_become_empty(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test unresolved values vanish from the text."""
        assert evaluator.substitute("[${{ missing }}][${{ null }}]", ctx) == "[][]"

    def test_booleans_and_containers(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test booleans render lower-case and containers as compact JSON."""
        assert evaluator.substitute("on=${{ enabled }}", ctx) == "on=true"
        assert evaluator.substitute("${{ parameters.list }}!", ctx) == '["a","b"]!'

    def test_runtime_syntax_is_untouched(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test $(var) macros and $[ ] runtime expressions pass through."""
        text = "echo $(Build.BuildId) $[ variables.x ]"
        assert evaluator.substitute(text, ctx) == text

    def test_non_strings_pass_through(
        self, evaluator: ExpressionEvaluator, ctx: ExecutionContext
    ) -> None:
        """Test numbers are returned unchanged."""
        assert evaluator.substitute(5, ctx) == 5


class TestCache:
    """Tests for AST memoization."""

    def test_parse_failures_are_cached(self, ctx: ExecutionContext) -> None:
        """Test a failed parse is remembered as None."""
        cache: dict[str, object] = {}
        evaluator = ExpressionEvaluator(cache=cache)  # type: ignore[arg-type]
        evaluator.evaluate("Hosted Ubuntu 1604", ctx)
        evaluator.evaluate("env", ctx)
        assert cache["Hosted Ubuntu 1604"] is None
        assert cache["env"] is not None
