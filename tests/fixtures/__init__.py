"""Shared test fixtures for the pipeline-studio test suite.

Available Fixtures
==================

Pipelines (from tests/fixtures/pipelines.py)
--------------------------------------------

    engine: A fresh PipelineExpander.
    evaluator: A fresh ExpressionEvaluator.
    make_context: Factory building an ExecutionContext from keyword
        arguments.
    write_file: Factory writing a text file under ``tmp_path`` (parent
        directories created) and returning its path.
    template_workspace: A pipeline directory with a local template folder
        and a sibling "templates" repository checkout.
"""
