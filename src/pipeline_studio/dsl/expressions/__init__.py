"""Compile-time expression language for pipeline documents.

Expressions are written inside ``${{ }}`` delimiters and are evaluated while
the document is expanded, before any agent runs the pipeline.

Expression Syntax
-----------------
- Context access: ``${{ parameters.env }}``, ``${{ variables['Build.Reason'] }}``
- Loop locals: ``${{ item.name }}``, ``${{ itemIndex }}``
- Function calls: ``${{ eq(parameters.env, 'prod') }}``, ``${{ join(',', parameters.list) }}``
- Operators: ``${{ parameters.count + 1 }}``, ``${{ a && b }}``, ``${{ a ?? 'default' }}``
- Literals: ``${{ 'text' }}``, ``${{ 42 }}``, ``${{ true }}``, ``${{ [1, 2] }}``

Module Structure
----------------
- ast.py: Immutable AST nodes
- parser.py: Lark grammar front end (grammar.lark)
- functions.py: Builtin functions and the shared comparison rule
- evaluator.py: Fail-soft evaluation and string substitution
- errors.py: Expression-specific error types
"""

from __future__ import annotations

from pipeline_studio.dsl.expressions.errors import (
    ExpressionError,
    ExpressionSyntaxError,
)
from pipeline_studio.dsl.expressions.evaluator import ExpressionEvaluator
from pipeline_studio.dsl.expressions.functions import (
    FunctionLibrary,
    compare_values,
    format_datetime,
)
from pipeline_studio.dsl.expressions.parser import EMBEDDED_EXPRESSION, parse_expression

__all__ = [
    "EMBEDDED_EXPRESSION",
    "ExpressionError",
    "ExpressionEvaluator",
    "ExpressionSyntaxError",
    "FunctionLibrary",
    "compare_values",
    "format_datetime",
    "parse_expression",
]
