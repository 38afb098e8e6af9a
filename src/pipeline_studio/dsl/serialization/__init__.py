"""YAML loading and dumping for pipeline documents."""

from __future__ import annotations

from pipeline_studio.dsl.serialization.parser import (
    PipelineLoader,
    load_pipeline_yaml,
    protect_expressions,
    restore_expressions,
)
from pipeline_studio.dsl.serialization.writer import PipelineDumper, dump_yaml

__all__ = [
    "PipelineDumper",
    "PipelineLoader",
    "dump_yaml",
    "load_pipeline_yaml",
    "protect_expressions",
    "restore_expressions",
]
