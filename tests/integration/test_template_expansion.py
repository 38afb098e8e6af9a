"""End-to-end expansion of pipelines that use local and repository templates."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any

import pytest

from pipeline_studio.dsl.engine import PipelineExpander
from pipeline_studio.dsl.errors import (
    RepositoryLocationError,
    TemplateNotFoundError,
    TemplateRecursionError,
)
from tests.fixtures.pipelines import TemplateWorkspace, WriteFile


def _expand(
    engine: PipelineExpander,
    workspace: TemplateWorkspace,
    source: str,
    **overrides: Any,
) -> Any:
    options = {"baseDir": str(workspace.pipeline_dir), **overrides}
    return engine.expand(textwrap.dedent(source), options)


def _repository(workspace: TemplateWorkspace, **fields: Any) -> dict[str, Any]:
    return {
        "repositories": [
            {"repository": "templates", "location": str(workspace.repository_dir), **fields}
        ]
    }


class TestLocalTemplates:
    """Templates referenced relative to the pipeline."""

    def test_step_template_with_parameters(
        self, engine: PipelineExpander, template_workspace: TemplateWorkspace
    ) -> None:
        """Test template steps are spliced in place of the reference."""
        result = _expand(
            engine,
            template_workspace,
            """
            steps:
              - script: before
              - template: steps/build.yml
                parameters:
                  name: api
              - script: after
            """,
        )
        assert result == {
            "steps": [
                {"script": "before"},
                {"script": "echo building api"},
                {"script": "echo done"},
                {"script": "after"},
            ]
        }

    def test_defaults_apply_when_parameter_is_unresolved(
        self, engine: PipelineExpander, template_workspace: TemplateWorkspace
    ) -> None:
        """Test an undefined caller value does not replace the default."""
        result = _expand(
            engine,
            template_workspace,
            """
            steps:
              - template: steps/build.yml
                parameters:
                  name: ${{ parameters.notDeclared }}
            """,
        )
        assert result["steps"][0] == {"script": "echo building world"}

    def test_mapping_parameters_section(
        self, engine: PipelineExpander, template_workspace: TemplateWorkspace
    ) -> None:
        """Test a job template declaring parameters as a mapping."""
        result = _expand(
            engine,
            template_workspace,
            """
            jobs:
              - template: jobs/test.yml
              - template: jobs/test.yml
                parameters:
                  flavor: integration
            """,
        )
        assert [job["job"] for job in result["jobs"]] == ["test_unit", "test_integration"]
        assert result["jobs"][1]["steps"] == [{"script": "pytest -m integration"}]

    def test_template_path_from_expression(
        self, engine: PipelineExpander, template_workspace: TemplateWorkspace
    ) -> None:
        """Test the template path itself may contain expressions."""
        result = _expand(
            engine,
            template_workspace,
            """
            steps:
              - template: steps/${{ parameters.kind }}.yml
            """,
            parameters={"kind": "build"},
        )
        assert len(result["steps"]) == 2

    def test_each_over_templates(
        self, engine: PipelineExpander, template_workspace: TemplateWorkspace
    ) -> None:
        """Test a template reference inside an each body."""
        result = _expand(
            engine,
            template_workspace,
            """
            parameters:
              - name: services
                type: object
                default: [api, web]
            steps:
              - ${{ each service in parameters.services }}:
                  - template: steps/build.yml
                    parameters:
                      name: ${{ service }}
            """,
        )
        scripts = [step["script"] for step in result["steps"]]
        assert scripts == ["echo building api", "echo done", "echo building web", "echo done"]

    def test_step_list_parameter_with_template_references(
        self,
        engine: PipelineExpander,
        template_workspace: TemplateWorkspace,
        write_file: WriteFile,
    ) -> None:
        """Test template references passed as parameters expand in the receiver."""
        write_file(
            "app/jobs/wrapper.yml",
            """
            parameters:
              - name: preSteps
                type: stepList
                default: []
            jobs:
              - job: wrapped
                steps:
                  - ${{ each step in parameters.preSteps }}:
                      - ${{ step }}
                  - script: main
            """,
        )
        result = _expand(
            engine,
            template_workspace,
            """
            jobs:
              - template: jobs/wrapper.yml
                parameters:
                  preSteps:
                    - template: steps/build.yml
                      parameters:
                        name: pre
                    - script: inline
            """,
        )
        assert result == {
            "jobs": [
                {
                    "job": "wrapped",
                    "steps": [
                        {"script": "echo building pre"},
                        {"script": "echo done"},
                        {"script": "inline"},
                        {"script": "main"},
                    ],
                }
            ]
        }

    def test_conditional_template_insertion(
        self, engine: PipelineExpander, template_workspace: TemplateWorkspace
    ) -> None:
        """Test a template chosen by an if/else chain."""
        source = """
            steps:
              - ${{ if eq(parameters.release, true) }}:
                  - template: steps/build.yml
              - ${{ else }}:
                  - script: skipped
            """
        released = _expand(engine, template_workspace, source, parameters={"release": "True"})
        assert len(released["steps"]) == 2

        skipped = _expand(engine, template_workspace, source, parameters={"release": False})
        assert skipped == {"steps": [{"script": "skipped"}]}


class TestRepositoryTemplates:
    """Templates referenced with ``@alias``."""

    def test_nested_relative_template_in_repository(
        self, engine: PipelineExpander, template_workspace: TemplateWorkspace
    ) -> None:
        """Test a repository template including a template next to itself."""
        result = _expand(
            engine,
            template_workspace,
            """
            jobs:
              - template: jobs/deploy.yml@templates
                parameters:
                  environment: prod
            """,
            resources=_repository(template_workspace),
        )
        assert result["jobs"] == [
            {"job": "deploy_prod", "steps": [{"script": "./deploy.sh prod"}]}
        ]

    def test_resource_locations_option(
        self, engine: PipelineExpander, template_workspace: TemplateWorkspace
    ) -> None:
        """Test a declared repository located through resourceLocations."""
        result = _expand(
            engine,
            template_workspace,
            """
            resources:
              repositories:
                - repository: templates
                  type: git
                  name: org/templates
            steps:
              - template: steps/greet.yml@templates
                parameters:
                  who: ${{ resources.repositories.templates.name }}
            """,
            resourceLocations={"templates": str(template_workspace.repository_dir)},
        )
        assert result["steps"] == [{"script": "echo hello org/templates"}]

    def test_matching_criteria_merge_location(
        self, engine: PipelineExpander, template_workspace: TemplateWorkspace
    ) -> None:
        """Test an override whose criteria match supplies the location."""
        source = """
            resources:
              repositories:
                - repository: templates
                  name: org/templates
            steps:
              - template: steps/greet.yml@templates
            """
        result = _expand(
            engine,
            template_workspace,
            source,
            resources=_repository(template_workspace, matchCriteria={"name": "org/templates"}),
        )
        assert result["steps"] == [{"script": "echo hello nobody"}]

    def test_mismatched_criteria_leave_repository_unmapped(
        self, engine: PipelineExpander, template_workspace: TemplateWorkspace
    ) -> None:
        """Test an override for a different repository name is ignored."""
        source = """
            resources:
              repositories:
                - repository: templates
                  name: org/templates
            steps:
              - template: steps/greet.yml@templates
            """
        with pytest.raises(RepositoryLocationError):
            _expand(
                engine,
                template_workspace,
                source,
                resources=_repository(template_workspace, matchCriteria={"name": "org/other"}),
            )

    def test_self_reference_inside_repository(
        self,
        engine: PipelineExpander,
        template_workspace: TemplateWorkspace,
        write_file: WriteFile,
    ) -> None:
        """Test @self inside a repository template stays in that repository."""
        write_file(
            "shared/jobs/greeter.yml",
            """
            jobs:
              - job: greet
                steps:
                  - template: steps/greet.yml@self
                    parameters:
                      who: self
            """,
        )
        result = _expand(
            engine,
            template_workspace,
            """
            jobs:
              - template: jobs/greeter.yml@templates
            """,
            resources=_repository(template_workspace),
        )
        assert result["jobs"][0]["steps"] == [{"script": "echo hello self"}]

    def test_missing_repository_template(
        self, engine: PipelineExpander, template_workspace: TemplateWorkspace
    ) -> None:
        """Test a missing file inside a mapped repository."""
        with pytest.raises(TemplateNotFoundError, match="nope.yml@templates"):
            _expand(
                engine,
                template_workspace,
                "steps:\n- template: nope.yml@templates\n",
                resources=_repository(template_workspace),
            )


class TestRecursion:
    """Template cycles and nesting limits."""

    def test_self_including_template(
        self,
        engine: PipelineExpander,
        template_workspace: TemplateWorkspace,
        write_file: WriteFile,
    ) -> None:
        """Test a template that includes itself is rejected."""
        write_file("app/loop.yml", "steps:\n  - template: loop.yml\n")
        with pytest.raises(TemplateRecursionError, match="Recursive template reference"):
            _expand(engine, template_workspace, "steps:\n- template: loop.yml\n")

    def test_nesting_limit(
        self, template_workspace: TemplateWorkspace, write_file: WriteFile
    ) -> None:
        """Test a chain longer than max_template_depth is rejected."""
        write_file("app/one.yml", "steps:\n  - template: two.yml\n")
        write_file("app/two.yml", "steps:\n  - template: three.yml\n")
        write_file("app/three.yml", "steps:\n  - script: deep\n")

        shallow = PipelineExpander(max_template_depth=2)
        with pytest.raises(TemplateRecursionError) as exc_info:
            _expand(shallow, template_workspace, "steps:\n- template: one.yml\n")
        assert exc_info.value.max_depth == 2

        deep = PipelineExpander(max_template_depth=3)
        assert _expand(deep, template_workspace, "steps:\n- template: one.yml\n") == {
            "steps": [{"script": "deep"}]
        }

    def test_same_template_twice_is_not_recursion(
        self, engine: PipelineExpander, template_workspace: TemplateWorkspace
    ) -> None:
        """Test sibling uses of one template are fine."""
        result = _expand(
            engine,
            template_workspace,
            """
            steps:
              - template: steps/build.yml
              - template: steps/build.yml
            """,
        )
        assert len(result["steps"]) == 4


class TestRendering:
    """Full pipeline rendering."""

    def test_runtime_syntax_survives(self, engine: PipelineExpander, tmp_path: Path) -> None:
        """Test macro and runtime expressions are left for the server."""
        source = textwrap.dedent(
            """
            variables:
              configuration: Release
            steps:
              - script: |
                  echo $(configuration)
                  echo ${{ variables.configuration }}
                condition: $[ eq(variables['Build.Reason'], 'Manual') ]
            """
        )
        text = engine.expand_to_string(source, {"baseDir": str(tmp_path)})
        assert text == (
            "variables:\n"
            "  configuration: Release\n"
            "steps:\n"
            "  - script: |\n"
            "      echo $(configuration)\n"
            "      echo Release\n"
            "    condition: $[ eq(variables['Build.Reason'], 'Manual') ]\n"
        )
