"""Tekton ``PipelineRun`` documents used by Pipelines-as-Code."""

from __future__ import annotations

import typing as typ

import msgspec

from .errors import ManifestDecodeError
from .github_actions import DocumentLines
from .nodes import (
    NodeShape,
    decode_string,
    dispatch,
    get,
    get_entry,
    is_null,
    line_of,
    mapping_items,
    scalar_text,
    shape_of,
)

if typ.TYPE_CHECKING:
    from ruamel.yaml.nodes import Node


class TektonMetadata(msgspec.Struct, kw_only=True):
    """Object metadata; annotations carry the Pipelines-as-Code triggers."""

    name: str = ""
    annotations: dict[str, str] = msgspec.field(default_factory=dict)


class TektonStepLines(msgspec.Struct, kw_only=True, omit_defaults=True):
    start: int
    script: int | None = None


class TektonStep(msgspec.Struct, kw_only=True):
    name: str = ""
    image: str = ""
    script: str = ""
    lines: TektonStepLines


class TektonTaskSpec(msgspec.Struct, kw_only=True):
    steps: list[TektonStep] = msgspec.field(default_factory=list)


class TektonTask(msgspec.Struct, kw_only=True):
    name: str = ""
    task_ref: str = ""
    task_spec: TektonTaskSpec = msgspec.field(default_factory=TektonTaskSpec)


class TektonPipelineSpec(msgspec.Struct, kw_only=True):
    tasks: list[TektonTask] = msgspec.field(default_factory=list)
    finally_: list[TektonTask] = msgspec.field(default_factory=list, name="finally")


class TektonSpec(msgspec.Struct, kw_only=True):
    pipeline_ref: str = ""
    pipeline_spec: TektonPipelineSpec = msgspec.field(
        default_factory=TektonPipelineSpec
    )


class PipelineAsCodeTekton(msgspec.Struct, kw_only=True):
    """A Tekton pipeline run stored under ``.tekton/``."""

    path: str
    api_version: str = ""
    kind: str = ""
    metadata: TektonMetadata = msgspec.field(default_factory=TektonMetadata)
    spec: TektonSpec = msgspec.field(default_factory=TektonSpec)
    lines: DocumentLines = msgspec.field(default_factory=DocumentLines)

    def is_valid(self) -> bool:
        """Return True when both ``apiVersion`` and ``kind`` are set."""
        return bool(self.api_version and self.kind)


def _mapping(node: Node | None, *, field: str) -> Node | None:
    if node is None or is_null(node):
        return None
    if shape_of(node) is not NodeShape.MAPPING:
        raise ManifestDecodeError.unexpected_shape(
            field, shape_of(node), line=line_of(node)
        )
    return node


def _sequence(node: Node | None, *, field: str) -> list[Node]:
    if node is None or is_null(node):
        return []
    if shape_of(node) is not NodeShape.SEQUENCE:
        raise ManifestDecodeError.unexpected_shape(
            field, shape_of(node), line=line_of(node)
        )
    return list(node.value)


def _ref_name(node: Node | None, *, field: str) -> str:
    """Return a ``*Ref`` name; both ``{name: x}`` and a bare string appear."""
    if node is None or is_null(node):
        return ""
    return dispatch(
        node,
        {
            NodeShape.SCALAR: lambda scalar: scalar_text(scalar, field=field),
            NodeShape.MAPPING: lambda mapping: decode_string(
                get(mapping, "name", field=field), field=f"{field}.name"
            ),
        },
        field=field,
    )


def decode_step(node: Node) -> TektonStep:
    mapping = _mapping(node, field="steps")
    step = TektonStep(lines=TektonStepLines(start=line_of(node)))
    if mapping is None:
        return step
    step.name = decode_string(get(mapping, "name", field="step"), field="step.name")
    step.image = decode_string(get(mapping, "image", field="step"), field="step.image")
    entry = get_entry(mapping, "script", field="step")
    if entry is not None:
        key_node, value = entry
        step.script = decode_string(value, field="step.script")
        step.lines.script = line_of(key_node)
    return step


def decode_task(node: Node) -> TektonTask:
    mapping = _mapping(node, field="tasks")
    if mapping is None:
        return TektonTask()
    task_spec = _mapping(get(mapping, "taskSpec", field="task"), field="taskSpec")
    steps = (
        []
        if task_spec is None
        else [
            decode_step(item)
            for item in _sequence(
                get(task_spec, "steps", field="taskSpec"), field="steps"
            )
        ]
    )
    return TektonTask(
        name=decode_string(get(mapping, "name", field="task"), field="task.name"),
        task_ref=_ref_name(get(mapping, "taskRef", field="task"), field="taskRef"),
        task_spec=TektonTaskSpec(steps=steps),
    )


def decode_spec(node: Node | None) -> TektonSpec:
    mapping = _mapping(node, field="spec")
    if mapping is None:
        return TektonSpec()
    pipeline_spec = _mapping(
        get(mapping, "pipelineSpec", field="spec"), field="pipelineSpec"
    )
    tasks: list[TektonTask] = []
    final: list[TektonTask] = []
    if pipeline_spec is not None:
        tasks = [
            decode_task(item)
            for item in _sequence(
                get(pipeline_spec, "tasks", field="pipelineSpec"), field="tasks"
            )
        ]
        final = [
            decode_task(item)
            for item in _sequence(
                get(pipeline_spec, "finally", field="pipelineSpec"), field="finally"
            )
        ]
    return TektonSpec(
        pipeline_ref=_ref_name(
            get(mapping, "pipelineRef", field="spec"), field="pipelineRef"
        ),
        pipeline_spec=TektonPipelineSpec(tasks=tasks, finally_=final),
    )


def decode_metadata(node: Node | None) -> TektonMetadata:
    mapping = _mapping(node, field="metadata")
    if mapping is None:
        return TektonMetadata()
    annotations = _mapping(
        get(mapping, "annotations", field="metadata"), field="annotations"
    )
    return TektonMetadata(
        name=decode_string(get(mapping, "name", field="metadata"), field="name"),
        annotations={}
        if annotations is None
        else {
            key: scalar_text(value, field=f"annotations.{key}")
            for key, _, value in mapping_items(annotations, field="annotations")
        },
    )


def decode_pipeline_run(root: Node | None, path: str) -> PipelineAsCodeTekton:
    """Decode a Tekton document.

    Raises
    ------
    ManifestDecodeError
        If the root or a nested section has an invalid shape.

    """
    pipeline = PipelineAsCodeTekton(path=path)
    mapping = _mapping(root, field="pipelinerun")
    if mapping is None:
        return pipeline
    pipeline.lines = DocumentLines(start=line_of(mapping))
    pipeline.api_version = decode_string(
        get(mapping, "apiVersion", field="pipelinerun"), field="apiVersion"
    )
    pipeline.kind = decode_string(
        get(mapping, "kind", field="pipelinerun"), field="kind"
    )
    pipeline.metadata = decode_metadata(get(mapping, "metadata", field="pipelinerun"))
    pipeline.spec = decode_spec(get(mapping, "spec", field="pipelinerun"))
    return pipeline
