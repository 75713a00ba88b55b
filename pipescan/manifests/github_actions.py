"""GitHub Actions workflow and action metadata documents.

Workflows (``.github/workflows/*.yml``) and action metadata files
(``action.yml``) are decoded from composed YAML nodes. Every field that
GitHub accepts in more than one shape is decoded by a named rule per shape,
selected through :func:`~pipescan.manifests.nodes.dispatch`.
"""

from __future__ import annotations

import typing as typ

import msgspec

from .errors import ManifestDecodeError
from .nodes import (
    NodeShape,
    convert_node,
    decode_string,
    decode_string_list,
    dispatch,
    get,
    is_null,
    line_of,
    mapping_items,
    scalar_text,
    shape_of,
    to_builtins,
)

if typ.TYPE_CHECKING:
    from ruamel.yaml.nodes import Node

ALL_SECRETS = "*ALL"
INHERIT = "inherit"

PERMISSION_SCOPES: tuple[str, ...] = (
    "metadata",
    "actions",
    "attestations",
    "checks",
    "contents",
    "deployments",
    "id-token",
    "issues",
    "discussions",
    "packages",
    "pages",
    "pull-requests",
    "repository-projects",
    "security-events",
    "statuses",
)
PERMISSION_SHORTHANDS: dict[str, str] = {"read-all": "read", "write-all": "write"}


class DocumentLines(msgspec.Struct, kw_only=True, omit_defaults=True):
    """Source location of a whole document."""

    start: int = 1


class GithubActionsInput(msgspec.Struct, kw_only=True):
    """Declared input of a workflow trigger, reusable workflow or action."""

    name: str = ""
    description: str = ""
    required: bool = False
    type: str = ""


class GithubActionsOutput(msgspec.Struct, kw_only=True):
    """Declared output of a reusable workflow or action."""

    name: str = ""
    description: str = ""
    value: str = ""


class GithubActionsEnv(msgspec.Struct, kw_only=True):
    """Name/value pair from ``env``, ``with`` or ``outputs`` blocks.

    A bare expression such as ``env: ${{ fromJSON(x) }}`` yields a single
    entry with an empty name.
    """

    name: str = ""
    value: str = ""


class GithubActionsPermission(msgspec.Struct, kw_only=True):
    """A single ``scope: level`` token permission grant."""

    scope: str
    permission: str


class GithubActionsEvent(msgspec.Struct, kw_only=True):
    """A workflow trigger and its filters."""

    name: str
    types: list[str] = msgspec.field(default_factory=list)
    branches: list[str] = msgspec.field(default_factory=list)
    branches_ignore: list[str] = msgspec.field(default_factory=list)
    paths: list[str] = msgspec.field(default_factory=list)
    paths_ignore: list[str] = msgspec.field(default_factory=list)
    tags: list[str] = msgspec.field(default_factory=list)
    tags_ignore: list[str] = msgspec.field(default_factory=list)
    cron: list[str] = msgspec.field(default_factory=list)
    inputs: list[GithubActionsInput] = msgspec.field(default_factory=list)
    outputs: list[GithubActionsOutput] = msgspec.field(default_factory=list)
    secrets: list[GithubActionsInput] = msgspec.field(default_factory=list)
    workflows: list[str] = msgspec.field(default_factory=list)


class StepLines(msgspec.Struct, kw_only=True, omit_defaults=True):
    """Source lines of a step and of its finding-relevant keys."""

    start: int
    uses: int | None = None
    run: int | None = None
    if_: int | None = msgspec.field(default=None, name="if")
    with_ref: int | None = None
    with_script: int | None = None


class GithubActionsStep(msgspec.Struct, kw_only=True):
    """A job or composite-action step."""

    id: str = ""
    name: str = ""
    if_: str = msgspec.field(default="", name="if")
    env: list[GithubActionsEnv] = msgspec.field(default_factory=list)
    uses: str = ""
    shell: str = ""
    run: str = ""
    working_directory: str = ""
    with_: list[GithubActionsEnv] = msgspec.field(default_factory=list, name="with")
    with_ref: str = ""
    with_script: str = ""
    action: str = ""
    lines: StepLines


class JobLines(msgspec.Struct, kw_only=True, omit_defaults=True):
    """Source lines of a job and of its finding-relevant keys."""

    start: int
    runs_on: int | None = None
    if_: int | None = msgspec.field(default=None, name="if")


class GithubActionsJobContainer(msgspec.Struct, kw_only=True):
    """Container a job runs in."""

    image: str = ""


class GithubActionsJobEnvironment(msgspec.Struct, kw_only=True):
    """Deployment environment targeted by a job."""

    name: str = ""
    url: str = ""


class GithubActionsJobSecret(msgspec.Struct, kw_only=True):
    """Secret passed to a reusable workflow call."""

    name: str
    value: str = ""


class GithubActionsMatrix(msgspec.Struct, kw_only=True, omit_defaults=True):
    """``strategy.matrix`` dimensions.

    Mapping items (``include``/``exclude`` entries) are kept as JSON text;
    a matrix given as one expression is kept verbatim in ``expression``.
    """

    dimensions: dict[str, list[str]] = msgspec.field(default_factory=dict)
    expression: str = ""


class GithubActionsJob(msgspec.Struct, kw_only=True):
    """A workflow job."""

    id: str
    name: str = ""
    uses: str = ""
    secrets: list[GithubActionsJobSecret] = msgspec.field(default_factory=list)
    with_: list[GithubActionsEnv] = msgspec.field(default_factory=list, name="with")
    permissions: list[GithubActionsPermission] = msgspec.field(default_factory=list)
    needs: list[str] = msgspec.field(default_factory=list)
    if_: str = msgspec.field(default="", name="if")
    runs_on: list[str] = msgspec.field(default_factory=list)
    container: GithubActionsJobContainer | None = None
    environment: list[GithubActionsJobEnvironment] = msgspec.field(
        default_factory=list
    )
    outputs: list[GithubActionsEnv] = msgspec.field(default_factory=list)
    env: list[GithubActionsEnv] = msgspec.field(default_factory=list)
    steps: list[GithubActionsStep] = msgspec.field(default_factory=list)
    matrix: GithubActionsMatrix = msgspec.field(default_factory=GithubActionsMatrix)
    lines: JobLines


class GithubActionsWorkflow(msgspec.Struct, kw_only=True):
    """A ``.github/workflows`` file."""

    path: str
    name: str = ""
    events: list[GithubActionsEvent] = msgspec.field(default_factory=list)
    permissions: list[GithubActionsPermission] = msgspec.field(default_factory=list)
    env: list[GithubActionsEnv] = msgspec.field(default_factory=list)
    jobs: list[GithubActionsJob] = msgspec.field(default_factory=list)
    lines: DocumentLines = msgspec.field(default_factory=DocumentLines)

    def is_valid(self) -> bool:
        """Return True when the workflow has at least one job and one trigger."""
        return bool(self.jobs) and bool(self.events)


class GithubActionsRuns(msgspec.Struct, kw_only=True):
    """``runs`` recipe of an action: JavaScript, Docker or composite."""

    using: str = ""
    main: str = ""
    pre: str = ""
    pre_if: str = ""
    post: str = ""
    post_if: str = ""
    steps: list[GithubActionsStep] = msgspec.field(default_factory=list)
    image: str = ""
    entrypoint: str = ""
    pre_entrypoint: str = ""
    post_entrypoint: str = ""
    args: list[str] = msgspec.field(default_factory=list)


class GithubActionsMetadata(msgspec.Struct, kw_only=True):
    """An ``action.yml`` metadata file."""

    path: str
    name: str = ""
    author: str = ""
    description: str = ""
    inputs: list[GithubActionsInput] = msgspec.field(default_factory=list)
    outputs: list[GithubActionsOutput] = msgspec.field(default_factory=list)
    runs: GithubActionsRuns = msgspec.field(default_factory=GithubActionsRuns)
    lines: DocumentLines = msgspec.field(default_factory=DocumentLines)

    def is_valid(self) -> bool:
        """Return True when the action declares how it runs."""
        return self.runs.using != ""


# -- shared rules -----------------------------------------------------------


def _require_shape(node: Node, shape: NodeShape, *, field: str) -> None:
    actual = shape_of(node)
    if actual is not shape:
        raise ManifestDecodeError.unexpected_shape(field, actual, line=line_of(node))


def _convert_named[T: (GithubActionsInput, GithubActionsOutput)](
    name: str, node: Node, type_: type[T], *, field: str
) -> T:
    if not is_null(node):
        _require_shape(node, NodeShape.MAPPING, field=field)
    item = convert_node(node, type_, field=field)
    item.name = name
    return item


def decode_inputs(
    node: Node | None, *, field: str = "inputs"
) -> list[GithubActionsInput]:
    """Decode a ``name: {description, required, type}`` mapping."""
    if node is None or is_null(node):
        return []
    return [
        _convert_named(name, value, GithubActionsInput, field=f"{field}.{name}")
        for name, _, value in mapping_items(node, field=field)
    ]


def decode_outputs(
    node: Node | None, *, field: str = "outputs"
) -> list[GithubActionsOutput]:
    """Decode outputs given either as bare values or as objects."""
    if node is None or is_null(node):
        return []

    def output(name: str, value: Node) -> GithubActionsOutput:
        return dispatch(
            value,
            {
                NodeShape.SCALAR: lambda scalar: GithubActionsOutput(
                    name=name, value=scalar_text(scalar, field=field)
                ),
                NodeShape.MAPPING: lambda mapping: _convert_named(
                    name, mapping, GithubActionsOutput, field=f"{field}.{name}"
                ),
            },
            field=f"{field}.{name}",
        )

    return [output(name, value) for name, _, value in mapping_items(node, field=field)]


def _env_expression(node: Node, *, field: str) -> list[GithubActionsEnv]:
    value = scalar_text(node, field=field)
    if not value.startswith("$"):
        raise ManifestDecodeError.invalid_value(
            field,
            f"expected a mapping or an expression, got {value!r}",
            line=line_of(node),
        )
    return [GithubActionsEnv(value=value)]


def _env_mapping(node: Node, *, field: str) -> list[GithubActionsEnv]:
    return [
        GithubActionsEnv(name=name, value=scalar_text(value, field=f"{field}.{name}"))
        for name, _, value in mapping_items(node, field=field)
    ]


def decode_envs(node: Node | None, *, field: str) -> list[GithubActionsEnv]:
    """Decode ``env``/``with``/``outputs``: an expression or a mapping."""
    if node is None or is_null(node):
        return []
    return dispatch(
        node,
        {
            NodeShape.SCALAR: lambda scalar: _env_expression(scalar, field=field),
            NodeShape.MAPPING: lambda mapping: _env_mapping(mapping, field=field),
        },
        field=field,
    )


def _permission_shorthand(node: Node) -> list[GithubActionsPermission]:
    keyword = scalar_text(node, field="permissions")
    level = PERMISSION_SHORTHANDS.get(keyword)
    if level is None:
        raise ManifestDecodeError.invalid_value(
            "permissions", f"unknown shorthand {keyword!r}", line=line_of(node)
        )
    return [
        GithubActionsPermission(scope=scope, permission=level)
        for scope in PERMISSION_SCOPES
    ]


def _permission_grants(node: Node) -> list[GithubActionsPermission]:
    return [
        GithubActionsPermission(
            scope=scope, permission=scalar_text(value, field=f"permissions.{scope}")
        )
        for scope, _, value in mapping_items(node, field="permissions")
    ]


def decode_permissions(node: Node | None) -> list[GithubActionsPermission]:
    """Decode ``permissions``: ``read-all``/``write-all`` or a scope map."""
    if node is None or is_null(node):
        return []
    return dispatch(
        node,
        {
            NodeShape.SCALAR: _permission_shorthand,
            NodeShape.MAPPING: _permission_grants,
        },
        field="permissions",
    )


# -- events -----------------------------------------------------------------


def _decode_schedule(node: Node) -> GithubActionsEvent:
    _require_shape(node, NodeShape.SEQUENCE, field="on.schedule")
    crons: list[str] = []
    for item in node.value:
        cron = decode_string(get(item, "cron", field="on.schedule"), field="cron")
        if not cron:
            raise ManifestDecodeError.invalid_value(
                "on.schedule", "cron must be non-empty", line=line_of(item)
            )
        crons.append(cron)
    return GithubActionsEvent(name="schedule", cron=crons)


_EVENT_FILTERS: dict[str, str] = {
    "types": "types",
    "branches": "branches",
    "branches-ignore": "branches_ignore",
    "paths": "paths",
    "paths-ignore": "paths_ignore",
    "tags": "tags",
    "tags-ignore": "tags_ignore",
    "workflows": "workflows",
}


def _decode_event_body(name: str, node: Node) -> GithubActionsEvent:
    event = GithubActionsEvent(name=name)
    if is_null(node):
        return event
    field = f"on.{name}"
    _require_shape(node, NodeShape.MAPPING, field=field)
    for key, _, value in mapping_items(node, field=field):
        if key in _EVENT_FILTERS:
            values = decode_string_list(value, field=f"{field}.{key}")
            setattr(event, _EVENT_FILTERS[key], values)
        elif key == "inputs":
            event.inputs = decode_inputs(value, field=f"{field}.inputs")
        elif key == "secrets":
            event.secrets = decode_inputs(value, field=f"{field}.secrets")
        elif key == "outputs":
            event.outputs = decode_outputs(value, field=f"{field}.outputs")
    return event


def _events_mapping(node: Node) -> list[GithubActionsEvent]:
    events: list[GithubActionsEvent] = []
    for name, _, value in mapping_items(node, field="on"):
        if name == "schedule":
            events.append(_decode_schedule(value))
        else:
            events.append(_decode_event_body(name, value))
    return events


def decode_events(node: Node | None) -> list[GithubActionsEvent]:
    """Decode ``on``: one event name, a list of names, or a filter mapping."""
    if node is None or is_null(node):
        return []
    return dispatch(
        node,
        {
            NodeShape.SCALAR: lambda scalar: [
                GithubActionsEvent(name=scalar_text(scalar, field="on"))
            ],
            NodeShape.SEQUENCE: lambda seq: [
                GithubActionsEvent(name=scalar_text(item, field="on"))
                for item in seq.value
            ],
            NodeShape.MAPPING: _events_mapping,
        },
        field="on",
    )


# -- steps ------------------------------------------------------------------

_STEP_STRINGS: dict[str, str] = {
    "id": "id",
    "name": "name",
    "if": "if_",
    "uses": "uses",
    "shell": "shell",
    "run": "run",
    "working-directory": "working_directory",
}
_STEP_LINES: dict[str, str] = {"uses": "uses", "run": "run", "if": "if_"}


def decode_step(node: Node) -> GithubActionsStep:
    """Decode one step mapping, recording lines of its significant keys."""
    _require_shape(node, NodeShape.MAPPING, field="steps")
    step = GithubActionsStep(lines=StepLines(start=line_of(node)))
    for key, key_node, value in mapping_items(node, field="step"):
        if key in _STEP_STRINGS:
            setattr(step, _STEP_STRINGS[key], decode_string(value, field=key))
            if key in _STEP_LINES:
                setattr(step.lines, _STEP_LINES[key], line_of(key_node))
        elif key == "env":
            step.env = decode_envs(value, field="step.env")
        elif key == "with":
            step.with_ = decode_envs(value, field="step.with")
            _lift_with_inputs(step, value)
    step.action = step.uses.split("@", 1)[0]
    return step


def _lift_with_inputs(step: GithubActionsStep, node: Node) -> None:
    if shape_of(node) is not NodeShape.MAPPING:
        return
    for key, key_node, value in mapping_items(node, field="step.with"):
        if key == "ref":
            step.with_ref = scalar_text(value, field="step.with.ref")
            step.lines.with_ref = line_of(key_node)
        elif key == "script":
            step.with_script = scalar_text(value, field="step.with.script")
            step.lines.with_script = line_of(key_node)


def decode_steps(node: Node | None) -> list[GithubActionsStep]:
    """Decode a list of steps."""
    if node is None or is_null(node):
        return []
    _require_shape(node, NodeShape.SEQUENCE, field="steps")
    return [decode_step(item) for item in node.value]


# -- jobs -------------------------------------------------------------------


def _runs_on_group(node: Node) -> list[str]:
    labels: list[str] = []
    group = get(node, "group", field="runs-on")
    if group is not None:
        name = decode_string(group, field="runs-on.group")
        if not name:
            raise ManifestDecodeError.invalid_value(
                "runs-on.group", "must be non-empty", line=line_of(group)
            )
        labels.append(f"group:{name}")
    labels_node = get(node, "labels", field="runs-on")
    if labels_node is not None:
        values = decode_string_list(labels_node, field="runs-on.labels")
        if not values:
            raise ManifestDecodeError.invalid_value(
                "runs-on.labels", "must be non-empty", line=line_of(labels_node)
            )
        labels.extend(f"label:{label}" for label in values)
    if not labels:
        raise ManifestDecodeError.invalid_value(
            "runs-on", "expected group or labels", line=line_of(node)
        )
    return labels


def decode_runs_on(node: Node | None) -> list[str]:
    """Decode ``runs-on``: a label, a label list, or a group/labels object."""
    if node is None or is_null(node):
        return []
    return dispatch(
        node,
        {
            NodeShape.SCALAR: lambda scalar: [scalar_text(scalar, field="runs-on")],
            NodeShape.SEQUENCE: lambda seq: decode_string_list(seq, field="runs-on"),
            NodeShape.MAPPING: _runs_on_group,
        },
        field="runs-on",
    )


def _inherit_or_fail(node: Node) -> list[GithubActionsJobSecret]:
    value = scalar_text(node, field="secrets")
    if value != INHERIT:
        raise ManifestDecodeError.invalid_value(
            "secrets",
            f"expected 'inherit' or a mapping, got {value!r}",
            line=line_of(node),
        )
    return [GithubActionsJobSecret(name=ALL_SECRETS, value=INHERIT)]


def decode_job_secrets(node: Node | None) -> list[GithubActionsJobSecret]:
    """Decode reusable-workflow ``secrets``: ``inherit`` or a mapping."""
    if node is None or is_null(node):
        return []
    return dispatch(
        node,
        {
            NodeShape.SCALAR: _inherit_or_fail,
            NodeShape.MAPPING: lambda mapping: [
                GithubActionsJobSecret(
                    name=name, value=scalar_text(value, field=f"secrets.{name}")
                )
                for name, _, value in mapping_items(mapping, field="secrets")
            ],
        },
        field="secrets",
    )


def decode_container(node: Node | None) -> GithubActionsJobContainer | None:
    """Decode ``container``: an image name or an object with ``image``."""
    if node is None or is_null(node):
        return None
    return dispatch(
        node,
        {
            NodeShape.SCALAR: lambda scalar: GithubActionsJobContainer(
                image=scalar_text(scalar, field="container")
            ),
            NodeShape.MAPPING: lambda mapping: GithubActionsJobContainer(
                image=decode_string(
                    get(mapping, "image", field="container"), field="container.image"
                )
            ),
        },
        field="container",
    )


def decode_environment(node: Node | None) -> list[GithubActionsJobEnvironment]:
    """Decode ``environment``: a name or a ``{name, url}`` object."""
    if node is None or is_null(node):
        return []
    return dispatch(
        node,
        {
            NodeShape.SCALAR: lambda scalar: [
                GithubActionsJobEnvironment(
                    name=scalar_text(scalar, field="environment")
                )
            ],
            NodeShape.MAPPING: lambda mapping: [
                convert_node(mapping, GithubActionsJobEnvironment, field="environment")
            ],
        },
        field="environment",
    )


def _matrix_item(node: Node, *, field: str) -> str:
    if shape_of(node) is NodeShape.SCALAR:
        return scalar_text(node, field=field)
    return msgspec.json.encode(to_builtins(node), order="sorted").decode()


def _matrix_dimensions(node: Node) -> GithubActionsMatrix:
    dimensions: dict[str, list[str]] = {}
    for name, _, value in mapping_items(node, field="strategy.matrix"):
        field = f"strategy.matrix.{name}"
        dimensions[name] = dispatch(
            value,
            {
                NodeShape.SEQUENCE: lambda seq, field=field: [
                    _matrix_item(item, field=field) for item in seq.value
                ],
                NodeShape.SCALAR: lambda scalar, field=field: [
                    scalar_text(scalar, field=field)
                ],
            },
            field=field,
        )
    return GithubActionsMatrix(dimensions=dimensions)


def decode_matrix(strategy: Node | None) -> GithubActionsMatrix:
    """Decode ``strategy.matrix`` into dimensions or a single expression."""
    if strategy is None or is_null(strategy):
        return GithubActionsMatrix()
    matrix = get(strategy, "matrix", field="strategy")
    if matrix is None or is_null(matrix):
        return GithubActionsMatrix()
    return dispatch(
        matrix,
        {
            NodeShape.SCALAR: lambda scalar: GithubActionsMatrix(
                expression=scalar_text(scalar, field="strategy.matrix")
            ),
            NodeShape.MAPPING: _matrix_dimensions,
        },
        field="strategy.matrix",
    )


def decode_job(job_id: str, key_node: Node, node: Node) -> GithubActionsJob:
    """Decode the job stored under ``job_id``."""
    job = GithubActionsJob(id=job_id, lines=JobLines(start=line_of(key_node)))
    if is_null(node):
        return job
    field = f"jobs.{job_id}"
    _require_shape(node, NodeShape.MAPPING, field=field)
    for key, entry_key, value in mapping_items(node, field=field):
        match key:
            case "name":
                job.name = decode_string(value, field=f"{field}.name")
            case "uses":
                job.uses = decode_string(value, field=f"{field}.uses")
            case "if":
                job.if_ = decode_string(value, field=f"{field}.if")
                job.lines.if_ = line_of(entry_key)
            case "runs-on":
                job.runs_on = decode_runs_on(value)
                job.lines.runs_on = line_of(entry_key)
            case "secrets":
                job.secrets = decode_job_secrets(value)
            case "with":
                job.with_ = decode_envs(value, field=f"{field}.with")
            case "permissions":
                job.permissions = decode_permissions(value)
            case "needs":
                job.needs = decode_string_list(value, field=f"{field}.needs")
            case "container":
                job.container = decode_container(value)
            case "environment":
                job.environment = decode_environment(value)
            case "outputs":
                job.outputs = decode_envs(value, field=f"{field}.outputs")
            case "env":
                job.env = decode_envs(value, field=f"{field}.env")
            case "steps":
                job.steps = decode_steps(value)
            case "strategy":
                job.matrix = decode_matrix(value)
    return job


def _decode_jobs(node: Node | None) -> list[GithubActionsJob]:
    if node is None or is_null(node):
        return []
    _require_shape(node, NodeShape.MAPPING, field="jobs")
    return [
        decode_job(job_id, key_node, value)
        for job_id, key_node, value in mapping_items(node, field="jobs")
    ]


# -- documents --------------------------------------------------------------


def decode_workflow(root: Node | None, path: str) -> GithubActionsWorkflow:
    """Decode a workflow document rooted at ``root``.

    Raises
    ------
    ManifestDecodeError
        If any field has a shape the workflow schema does not allow.

    """
    workflow = GithubActionsWorkflow(path=path)
    if root is None or is_null(root):
        return workflow
    _require_shape(root, NodeShape.MAPPING, field="workflow")
    workflow.lines = DocumentLines(start=line_of(root))
    workflow.name = decode_string(get(root, "name", field="workflow"), field="name")
    workflow.events = decode_events(get(root, "on", field="workflow"))
    workflow.permissions = decode_permissions(
        get(root, "permissions", field="workflow")
    )
    workflow.env = decode_envs(get(root, "env", field="workflow"), field="env")
    workflow.jobs = _decode_jobs(get(root, "jobs", field="workflow"))
    return workflow


_RUNS_STRINGS: dict[str, str] = {
    "using": "using",
    "main": "main",
    "pre": "pre",
    "pre-if": "pre_if",
    "post": "post",
    "post-if": "post_if",
    "image": "image",
    "entrypoint": "entrypoint",
    "pre-entrypoint": "pre_entrypoint",
    "post-entrypoint": "post_entrypoint",
}


def _decode_runs(node: Node | None) -> GithubActionsRuns:
    runs = GithubActionsRuns()
    if node is None or is_null(node):
        return runs
    _require_shape(node, NodeShape.MAPPING, field="runs")
    for key, _, value in mapping_items(node, field="runs"):
        if key in _RUNS_STRINGS:
            setattr(runs, _RUNS_STRINGS[key], decode_string(value, field=f"runs.{key}"))
        elif key == "steps":
            runs.steps = decode_steps(value)
        elif key == "args":
            runs.args = decode_string_list(value, field="runs.args")
    return runs


def decode_metadata(root: Node | None, path: str) -> GithubActionsMetadata:
    """Decode an ``action.yml`` document rooted at ``root``."""
    metadata = GithubActionsMetadata(path=path)
    if root is None or is_null(root):
        return metadata
    _require_shape(root, NodeShape.MAPPING, field="action")
    metadata.lines = DocumentLines(start=line_of(root))
    metadata.name = decode_string(get(root, "name", field="action"), field="name")
    metadata.author = decode_string(get(root, "author", field="action"), field="author")
    metadata.description = decode_string(
        get(root, "description", field="action"), field="description"
    )
    metadata.inputs = decode_inputs(get(root, "inputs", field="action"))
    metadata.outputs = decode_outputs(get(root, "outputs", field="action"))
    metadata.runs = _decode_runs(get(root, "runs", field="action"))
    return metadata
