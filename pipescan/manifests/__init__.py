"""Typed pipeline manifest documents and their YAML decoders."""

from __future__ import annotations

from .azure import (
    AzurePipeline,
    AzurePipelineJob,
    AzurePipelinePr,
    AzurePipelineStage,
    AzurePipelineStep,
    AzureStepLines,
    decode_pipeline,
)
from .errors import ManifestDecodeError
from .github_actions import (
    DocumentLines,
    GithubActionsJob,
    GithubActionsMetadata,
    GithubActionsStep,
    GithubActionsWorkflow,
    JobLines,
    StepLines,
    decode_metadata,
    decode_workflow,
)
from .gitlab import GitlabciConfig, GitlabciJob, decode_config, parse_config
from .nodes import NodeShape, compose_first, dispatch
from .package import PackageInsights
from .tekton import PipelineAsCodeTekton, TektonStepLines, decode_pipeline_run

__all__ = [
    "AzurePipeline",
    "AzurePipelineJob",
    "AzurePipelinePr",
    "AzurePipelineStage",
    "AzurePipelineStep",
    "AzureStepLines",
    "DocumentLines",
    "GithubActionsJob",
    "GithubActionsMetadata",
    "GithubActionsStep",
    "GithubActionsWorkflow",
    "GitlabciConfig",
    "GitlabciJob",
    "JobLines",
    "ManifestDecodeError",
    "NodeShape",
    "PackageInsights",
    "PipelineAsCodeTekton",
    "StepLines",
    "TektonStepLines",
    "compose_first",
    "decode_config",
    "decode_metadata",
    "decode_pipeline",
    "decode_pipeline_run",
    "decode_workflow",
    "dispatch",
    "parse_config",
]
