"""Azure Pipelines documents.

Azure accepts three equivalent nestings: a full ``stages -> jobs -> steps``
tree, a single-stage ``jobs`` list, or a bare single-job ``steps`` list.
All three decode to the same stage tree.
"""

from __future__ import annotations

import typing as typ

import msgspec

from .errors import ManifestDecodeError
from .github_actions import DocumentLines
from .nodes import (
    NodeShape,
    decode_bool,
    decode_string,
    decode_string_list,
    dispatch,
    get,
    is_null,
    line_of,
    mapping_items,
    scalar_text,
    shape_of,
)

if typ.TYPE_CHECKING:
    from ruamel.yaml.nodes import Node

STEP_KINDS: tuple[str, ...] = (
    "task",
    "script",
    "powershell",
    "pwsh",
    "bash",
    "checkout",
)


class AzureStepLines(msgspec.Struct, kw_only=True, omit_defaults=True):
    """Source lines of a step and of whichever task kind it declares."""

    start: int
    task: int | None = None
    script: int | None = None
    powershell: int | None = None
    pwsh: int | None = None
    bash: int | None = None
    checkout: int | None = None


class AzurePipelineStep(msgspec.Struct, kw_only=True):
    """A step; exactly one task kind is normally set."""

    task: str = ""
    script: str = ""
    powershell: str = ""
    pwsh: str = ""
    bash: str = ""
    checkout: str = ""
    lines: AzureStepLines

    @property
    def kind(self) -> str:
        """Return the first task kind present, or ``""`` for unknown steps."""
        return next((kind for kind in STEP_KINDS if getattr(self, kind)), "")


class AzurePipelineJob(msgspec.Struct, kw_only=True):
    """A job and its steps."""

    job: str = ""
    steps: list[AzurePipelineStep] = msgspec.field(default_factory=list)


class AzurePipelineStage(msgspec.Struct, kw_only=True):
    """A stage and its jobs."""

    stage: str = ""
    jobs: list[AzurePipelineJob] = msgspec.field(default_factory=list)


class AzurePipelineTriggerIncludeExclude(msgspec.Struct, kw_only=True):
    """Include/exclude filter lists."""

    include: list[str] = msgspec.field(default_factory=list)
    exclude: list[str] = msgspec.field(default_factory=list)


class AzurePipelinePr(msgspec.Struct, kw_only=True):
    """Pull-request trigger."""

    disabled: bool = False
    branches: AzurePipelineTriggerIncludeExclude = msgspec.field(
        default_factory=AzurePipelineTriggerIncludeExclude
    )
    paths: AzurePipelineTriggerIncludeExclude = msgspec.field(
        default_factory=AzurePipelineTriggerIncludeExclude
    )
    tags: AzurePipelineTriggerIncludeExclude = msgspec.field(
        default_factory=AzurePipelineTriggerIncludeExclude
    )
    drafts: bool = True


class AzurePipeline(msgspec.Struct, kw_only=True):
    """An ``azure-pipelines.yml`` file normalized to the stage tree."""

    path: str
    stages: list[AzurePipelineStage] = msgspec.field(default_factory=list)
    pr: AzurePipelinePr = msgspec.field(default_factory=AzurePipelinePr)
    variables: dict[str, str] = msgspec.field(default_factory=dict)
    lines: DocumentLines = msgspec.field(default_factory=DocumentLines)

    def is_valid(self) -> bool:
        """Return True when the first stage has at least one job."""
        return bool(self.stages) and bool(self.stages[0].jobs)


def _sequence(node: Node | None, *, field: str) -> list[Node]:
    if node is None or is_null(node):
        return []
    if shape_of(node) is not NodeShape.SEQUENCE:
        raise ManifestDecodeError.unexpected_shape(
            field, shape_of(node), line=line_of(node)
        )
    return list(node.value)


def _mapping(node: Node, *, field: str) -> None:
    if shape_of(node) is not NodeShape.MAPPING:
        raise ManifestDecodeError.unexpected_shape(
            field, shape_of(node), line=line_of(node)
        )


def decode_step(node: Node) -> AzurePipelineStep:
    """Decode one step and the line of each task kind it declares."""
    _mapping(node, field="steps")
    step = AzurePipelineStep(lines=AzureStepLines(start=line_of(node)))
    for key, key_node, value in mapping_items(node, field="step"):
        if key in STEP_KINDS:
            setattr(step, key, decode_string(value, field=f"step.{key}"))
            setattr(step.lines, key, line_of(key_node))
    return step


def decode_job(node: Node) -> AzurePipelineJob:
    """Decode a job mapping."""
    _mapping(node, field="jobs")
    return AzurePipelineJob(
        job=decode_string(get(node, "job", field="job"), field="job"),
        steps=[
            decode_step(item)
            for item in _sequence(get(node, "steps", field="job"), field="steps")
        ],
    )


def decode_stage(node: Node) -> AzurePipelineStage:
    """Decode a stage mapping."""
    _mapping(node, field="stages")
    return AzurePipelineStage(
        stage=decode_string(get(node, "stage", field="stage"), field="stage"),
        jobs=[
            decode_job(item)
            for item in _sequence(get(node, "jobs", field="stage"), field="jobs")
        ],
    )


def _include_exclude(
    node: Node | None, *, field: str
) -> AzurePipelineTriggerIncludeExclude:
    filters = AzurePipelineTriggerIncludeExclude()
    if node is None or is_null(node):
        return filters
    _mapping(node, field=field)
    filters.include = decode_string_list(
        get(node, "include", field=field), field=f"{field}.include"
    )
    filters.exclude = decode_string_list(
        get(node, "exclude", field=field), field=f"{field}.exclude"
    )
    return filters


def _pr_keyword(node: Node) -> AzurePipelinePr:
    keyword = scalar_text(node, field="pr")
    if keyword != "none":
        raise ManifestDecodeError.invalid_value(
            "pr",
            f"expected 'none', a branch list or a mapping, got {keyword!r}",
            line=line_of(node),
        )
    return AzurePipelinePr(disabled=True)


def _pr_branches(node: Node) -> AzurePipelinePr:
    return AzurePipelinePr(
        branches=AzurePipelineTriggerIncludeExclude(
            include=decode_string_list(node, field="pr")
        )
    )


def _pr_filters(node: Node) -> AzurePipelinePr:
    return AzurePipelinePr(
        branches=_include_exclude(
            get(node, "branches", field="pr"), field="pr.branches"
        ),
        paths=_include_exclude(get(node, "paths", field="pr"), field="pr.paths"),
        tags=_include_exclude(get(node, "tags", field="pr"), field="pr.tags"),
        drafts=decode_bool(
            get(node, "drafts", field="pr"), field="pr.drafts", default=True
        ),
    )


def decode_pr(node: Node | None) -> AzurePipelinePr:
    """Decode ``pr``: ``none``, a branch list, or a filter mapping."""
    if node is None or is_null(node):
        return AzurePipelinePr()
    return dispatch(
        node,
        {
            NodeShape.SCALAR: _pr_keyword,
            NodeShape.SEQUENCE: _pr_branches,
            NodeShape.MAPPING: _pr_filters,
        },
        field="pr",
    )


def _variables_list(node: Node) -> dict[str, str]:
    variables: dict[str, str] = {}
    for item in node.value:
        _mapping(item, field="variables")
        name = decode_string(get(item, "name", field="variables"), field="name")
        if name:
            variables[name] = decode_string(
                get(item, "value", field="variables"), field=f"variables.{name}"
            )
    return variables


def decode_variables(node: Node | None) -> dict[str, str]:
    """Decode ``variables``: a mapping or a list of ``{name, value}``.

    List entries without a name (``group:`` or ``template:`` references)
    are skipped.
    """
    if node is None or is_null(node):
        return {}
    return dispatch(
        node,
        {
            NodeShape.MAPPING: lambda mapping: {
                name: scalar_text(value, field=f"variables.{name}")
                for name, _, value in mapping_items(mapping, field="variables")
            },
            NodeShape.SEQUENCE: _variables_list,
        },
        field="variables",
    )


def decode_pipeline(root: Node | None, path: str) -> AzurePipeline:
    """Decode a pipeline, lifting the single-stage and single-job shorthands.

    Raises
    ------
    ManifestDecodeError
        If the root or any stage, job or step has an invalid shape.

    """
    pipeline = AzurePipeline(path=path)
    if root is None or is_null(root):
        return pipeline
    _mapping(root, field="pipeline")
    pipeline.lines = DocumentLines(start=line_of(root))
    pipeline.stages = [
        decode_stage(item)
        for item in _sequence(get(root, "stages", field="pipeline"), field="stages")
    ]
    if not pipeline.stages:
        stage = decode_stage(root)
        if not stage.jobs:
            stage.jobs = [decode_job(root)]
        pipeline.stages = [stage]
    pipeline.pr = decode_pr(get(root, "pr", field="pipeline"))
    pipeline.variables = decode_variables(get(root, "variables", field="pipeline"))
    return pipeline
