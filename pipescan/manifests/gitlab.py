"""GitLab CI configuration documents.

A ``.gitlab-ci.yml`` file mixes reserved keywords with arbitrary job names
at the top level. Decoding flattens every non-reserved key into a job,
seeds the default job from the legacy top-level keywords, and keeps
``!reference`` tags as opaque markers instead of resolving them.
"""

from __future__ import annotations

import copy
import typing as typ

import msgspec

from pipescan.logging import get_logger, log_debug

from .errors import ManifestDecodeError
from .github_actions import DocumentLines
from .nodes import (
    NodeShape,
    compose_documents,
    convert_node,
    decode_string,
    decode_string_list,
    dispatch,
    get,
    is_null,
    is_reference,
    line_of,
    mapping_items,
    reference_marker,
    scalar_text,
    shape_of,
    to_builtins,
)

if typ.TYPE_CHECKING:
    from ruamel.yaml.nodes import Node

logger = get_logger(__name__)

RESERVED_KEYS: frozenset[str] = frozenset(
    {
        "image",
        "services",
        "stages",
        "types",
        "before_script",
        "after_script",
        "variables",
        "cache",
        "include",
        "workflow",
        "true",
        "false",
        "nil",
    }
)
_DEFAULT_KEYS = ("image", "services", "before_script", "after_script")


class GitlabciImageDocker(msgspec.Struct, kw_only=True):
    """Docker executor options of an image."""

    platform: str = ""
    user: str = ""


class GitlabciImage(msgspec.Struct, kw_only=True):
    """Container image used by a job."""

    name: str = ""
    entrypoint: list[str] = msgspec.field(default_factory=list)
    docker: GitlabciImageDocker | None = None


class GitlabciService(msgspec.Struct, kw_only=True):
    """Service container attached to a job."""

    name: str = ""
    alias: str = ""
    entrypoint: list[str] = msgspec.field(default_factory=list)
    command: list[str] = msgspec.field(default_factory=list)


class GitlabciScript(msgspec.Struct, kw_only=True):
    """One script line and where it was declared."""

    run: str
    line: int


class GitlabciJobVariable(msgspec.Struct, kw_only=True):
    """Job-level variable."""

    name: str = ""
    value: str = ""
    expand: bool | None = None


class GitlabciGlobalVariable(msgspec.Struct, kw_only=True):
    """Pipeline-level variable, optionally offered as a run-form choice."""

    name: str = ""
    value: str = ""
    description: str = ""
    options: list[str] = msgspec.field(default_factory=list)
    expand: bool | None = None


class GitlabciConfigInput(msgspec.Struct, kw_only=True):
    """Typed input declared in a ``spec:`` header document."""

    name: str = ""
    default: str = ""
    description: str = ""
    options: list[str] = msgspec.field(default_factory=list)
    regex: str = ""


class GitlabciSpec(msgspec.Struct, kw_only=True):
    """``spec:`` header of a configuration or component."""

    inputs: list[GitlabciConfigInput] = msgspec.field(default_factory=list)


class GitlabciIncludeItem(msgspec.Struct, kw_only=True, omit_defaults=True):
    """One ``include:`` entry.

    Only ``local`` entries are followed by the parser; the others are kept
    so rules can name the remote, template, project or component source.
    """

    local: str = ""
    remote: str = ""
    template: str = ""
    project: str = ""
    file: list[str] = msgspec.field(default_factory=list)
    ref: str = ""
    component: str = ""
    inputs: dict[str, object] = msgspec.field(default_factory=dict)


class GitlabciJobHooks(msgspec.Struct, kw_only=True):
    """Job hooks."""

    pre_get_sources_script: list[str] = msgspec.field(default_factory=list)


class GitlabciJob(msgspec.Struct, kw_only=True):
    """A job, a hidden template job (leading ``.``), or the default job."""

    name: str = ""
    hidden: bool = False
    stage: str = ""
    image: GitlabciImage | None = None
    services: list[GitlabciService] = msgspec.field(default_factory=list)
    before_script: list[GitlabciScript] = msgspec.field(default_factory=list)
    after_script: list[GitlabciScript] = msgspec.field(default_factory=list)
    script: list[GitlabciScript] = msgspec.field(default_factory=list)
    variables: list[GitlabciJobVariable] = msgspec.field(default_factory=list)
    hooks: GitlabciJobHooks = msgspec.field(default_factory=GitlabciJobHooks)
    inherit: list[str] = msgspec.field(default_factory=list)
    lines: DocumentLines = msgspec.field(default_factory=DocumentLines)


class GitlabciConfig(msgspec.Struct, kw_only=True):
    """One GitLab CI configuration fragment."""

    path: str = ""
    default: GitlabciJob = msgspec.field(default_factory=GitlabciJob)
    stages: list[str] = msgspec.field(default_factory=list)
    variables: list[GitlabciGlobalVariable] = msgspec.field(default_factory=list)
    include: list[GitlabciIncludeItem] = msgspec.field(default_factory=list)
    jobs: list[GitlabciJob] = msgspec.field(default_factory=list)
    spec: GitlabciSpec = msgspec.field(default_factory=GitlabciSpec)
    lines: DocumentLines = msgspec.field(default_factory=DocumentLines)

    def is_valid(self) -> bool:
        """Return True; any fragment that decodes is kept."""
        return True

    def local_includes(self) -> list[str]:
        """Return the ``local`` include paths in declaration order."""
        return [item.local for item in self.include if item.local]


# -- job fields -------------------------------------------------------------


def _mapping_or_fail(node: Node, *, field: str) -> None:
    if shape_of(node) is not NodeShape.MAPPING:
        raise ManifestDecodeError.unexpected_shape(
            field, shape_of(node), line=line_of(node)
        )


def decode_image(node: Node | None) -> GitlabciImage | None:
    """Decode ``image``: a name or ``{name, entrypoint, docker}``."""
    if node is None or is_null(node):
        return None
    return dispatch(
        node,
        {
            NodeShape.SCALAR: lambda scalar: GitlabciImage(
                name=scalar_text(scalar, field="image")
            ),
            NodeShape.MAPPING: lambda mapping: convert_node(
                mapping, GitlabciImage, field="image"
            ),
        },
        field="image",
    )


def decode_services(node: Node | None) -> list[GitlabciService]:
    """Decode ``services``: each entry a name or a service object."""
    if node is None or is_null(node):
        return []
    if shape_of(node) is not NodeShape.SEQUENCE:
        raise ManifestDecodeError.unexpected_shape(
            "services", shape_of(node), line=line_of(node)
        )
    return [
        dispatch(
            item,
            {
                NodeShape.SCALAR: lambda scalar: GitlabciService(
                    name=scalar_text(scalar, field="services")
                ),
                NodeShape.MAPPING: lambda mapping: convert_node(
                    mapping, GitlabciService, field="services"
                ),
            },
            field="services",
        )
        for item in node.value
    ]


def _script_items(node: Node, *, field: str) -> list[GitlabciScript]:
    scripts: list[GitlabciScript] = []
    for item in node.value:
        if is_reference(item):
            scripts.append(
                GitlabciScript(run=reference_marker(item), line=line_of(item))
            )
        elif shape_of(item) is NodeShape.SEQUENCE:
            scripts.extend(_script_items(item, field=field))
        else:
            scripts.append(
                GitlabciScript(run=scalar_text(item, field=field), line=line_of(item))
            )
    return scripts


def decode_scripts(node: Node | None, *, field: str) -> list[GitlabciScript]:
    """Decode a script block: one command, a list, or nested lists."""
    if node is None or is_null(node):
        return []
    return dispatch(
        node,
        {
            NodeShape.SCALAR: lambda scalar: [
                GitlabciScript(
                    run=scalar_text(scalar, field=field), line=line_of(scalar)
                )
            ],
            NodeShape.SEQUENCE: lambda seq: _script_items(seq, field=field),
        },
        field=field,
    )


def _reference_value(node: Node, *, field: str) -> str:
    if not is_reference(node):
        raise ManifestDecodeError.unexpected_shape(
            field, shape_of(node), line=line_of(node)
        )
    return reference_marker(node)


def _named_variable[T: (GitlabciJobVariable, GitlabciGlobalVariable)](
    name: str, node: Node, type_: type[T], *, field: str
) -> T:
    variable = dispatch(
        node,
        {
            NodeShape.SCALAR: lambda scalar: type_(
                value=scalar_text(scalar, field=field)
            ),
            NodeShape.MAPPING: lambda mapping: convert_node(
                mapping, type_, field=field
            ),
            NodeShape.SEQUENCE: lambda seq: type_(
                value=_reference_value(seq, field=field)
            ),
        },
        field=field,
    )
    variable.name = name
    return variable


def decode_job_variables(node: Node | None) -> list[GitlabciJobVariable]:
    """Decode job ``variables``."""
    if node is None or is_null(node):
        return []
    return [
        _named_variable(name, value, GitlabciJobVariable, field=f"variables.{name}")
        for name, _, value in mapping_items(node, field="variables")
    ]


def decode_global_variables(node: Node | None) -> list[GitlabciGlobalVariable]:
    """Decode top-level ``variables``."""
    if node is None or is_null(node):
        return []
    return [
        _named_variable(name, value, GitlabciGlobalVariable, field=f"variables.{name}")
        for name, _, value in mapping_items(node, field="variables")
    ]


def decode_inherit(node: Node | None) -> list[str]:
    """Decode ``inherit``; a mapping yields its keyword names."""
    if node is None or is_null(node):
        return []
    return dispatch(
        node,
        {
            NodeShape.SCALAR: lambda scalar: [scalar_text(scalar, field="inherit")],
            NodeShape.SEQUENCE: lambda seq: decode_string_list(seq, field="inherit"),
            NodeShape.MAPPING: lambda mapping: [
                name for name, _, _ in mapping_items(mapping, field="inherit")
            ],
        },
        field="inherit",
    )


def decode_hooks(node: Node | None) -> GitlabciJobHooks:
    """Decode ``hooks``."""
    if node is None or is_null(node):
        return GitlabciJobHooks()
    _mapping_or_fail(node, field="hooks")
    return GitlabciJobHooks(
        pre_get_sources_script=decode_string_list(
            get(node, "pre_get_sources_script", field="hooks"),
            field="hooks.pre_get_sources_script",
        )
    )


def decode_job(node: Node, job: GitlabciJob) -> GitlabciJob:
    """Decode job keywords from ``node`` onto ``job`` and return it.

    Raises
    ------
    ManifestDecodeError
        If the job body is not a mapping or a keyword has an invalid shape.

    """
    if is_null(node):
        return job
    field = f"job {job.name}" if job.name else "job"
    _mapping_or_fail(node, field=field)
    for key, _, value in mapping_items(node, field=field):
        apply_job_keyword(job, key, value)
    return job


def apply_job_keyword(job: GitlabciJob, key: str, value: Node) -> None:
    """Decode a single job keyword onto ``job``; unknown keywords are ignored."""
    match key:
        case "stage":
            job.stage = decode_string(value, field="stage")
        case "image":
            job.image = decode_image(value)
        case "services":
            job.services = decode_services(value)
        case "before_script" | "after_script" | "script":
            setattr(job, key, decode_scripts(value, field=key))
        case "variables":
            job.variables = decode_job_variables(value)
        case "hooks":
            job.hooks = decode_hooks(value)
        case "inherit":
            job.inherit = decode_inherit(value)


# -- includes, spec ---------------------------------------------------------


def _include_from_scalar(node: Node) -> GitlabciIncludeItem:
    location = scalar_text(node, field="include")
    if location.startswith(("http:", "https:")):
        return GitlabciIncludeItem(remote=location)
    return GitlabciIncludeItem(local=location)


def _include_from_mapping(node: Node) -> GitlabciIncludeItem:
    raw = to_builtins(node)
    files = get(node, "file", field="include")
    if isinstance(raw, dict):
        raw.pop("file", None)
        raw.pop("rules", None)
    try:
        item = msgspec.convert(raw, type=GitlabciIncludeItem, strict=False)
    except msgspec.ValidationError as exc:
        raise ManifestDecodeError.invalid_value(
            "include", exc, line=line_of(node)
        ) from exc
    item.file = decode_string_list(files, field="include.file")
    return item


_INCLUDE_ITEM_RULES = {
    NodeShape.SCALAR: _include_from_scalar,
    NodeShape.MAPPING: _include_from_mapping,
}


def decode_include(node: Node | None) -> list[GitlabciIncludeItem]:
    """Decode ``include``: a path or URL, one entry object, or a list."""
    if node is None or is_null(node):
        return []
    return dispatch(
        node,
        {
            NodeShape.SCALAR: lambda scalar: [_include_from_scalar(scalar)],
            NodeShape.MAPPING: lambda mapping: [_include_from_mapping(mapping)],
            NodeShape.SEQUENCE: lambda seq: [
                dispatch(item, _INCLUDE_ITEM_RULES, field="include")
                for item in seq.value
            ],
        },
        field="include",
    )


def _input_default(node: Node | None) -> str:
    if node is None or is_null(node):
        return ""
    if shape_of(node) is NodeShape.SCALAR:
        return scalar_text(node, field="spec.inputs.default")
    return msgspec.json.encode(to_builtins(node), order="sorted").decode()


def decode_spec(node: Node | None) -> GitlabciSpec:
    """Decode a ``spec:`` header."""
    if node is None or is_null(node):
        return GitlabciSpec()
    _mapping_or_fail(node, field="spec")
    inputs_node = get(node, "inputs", field="spec")
    if inputs_node is None or is_null(inputs_node):
        return GitlabciSpec()
    inputs: list[GitlabciConfigInput] = []
    for name, _, value in mapping_items(inputs_node, field="spec.inputs"):
        config_input = GitlabciConfigInput(name=name)
        if not is_null(value):
            field = f"spec.inputs.{name}"
            _mapping_or_fail(value, field=field)
            config_input.default = _input_default(get(value, "default", field=field))
            config_input.description = decode_string(
                get(value, "description", field=field), field=f"{field}.description"
            )
            config_input.options = decode_string_list(
                get(value, "options", field=field), field=f"{field}.options"
            )
            config_input.regex = decode_string(
                get(value, "regex", field=field), field=f"{field}.regex"
            )
        inputs.append(config_input)
    return GitlabciSpec(inputs=inputs)


# -- documents --------------------------------------------------------------


def _seed_default(root: Node, config: GitlabciConfig) -> None:
    """Apply legacy top-level job keywords to the default job."""
    for key in _DEFAULT_KEYS:
        value = get(root, key, field="config")
        if value is None:
            continue
        try:
            apply_job_keyword(config.default, key, value)
        except ManifestDecodeError as exc:
            log_debug(logger, "ignoring top-level %s in %s: %s", key, config.path, exc)


def decode_config(root: Node | None, path: str = "") -> GitlabciConfig:
    """Decode one configuration document rooted at ``root``.

    Raises
    ------
    ManifestDecodeError
        If the root is not a mapping or a pipeline-level keyword is invalid.
        Individual jobs that fail to decode are skipped instead.

    """
    config = GitlabciConfig(path=path, default=GitlabciJob(name="default"))
    if root is None or is_null(root):
        return config
    _mapping_or_fail(root, field="config")
    config.lines = DocumentLines(start=line_of(root))
    _seed_default(root, config)

    for key, key_node, value in mapping_items(root, field="config"):
        if key in RESERVED_KEYS:
            continue
        if key == "spec":
            try:
                config.spec = decode_spec(value)
            except ManifestDecodeError as exc:
                log_debug(logger, "ignoring invalid spec in %s: %s", path, exc)
            continue
        lines = DocumentLines(start=line_of(key_node))
        if key == "default":
            base = copy.copy(config.default)
            base.lines = lines
        else:
            base = GitlabciJob(name=key, hidden=key.startswith("."), lines=lines)
        try:
            job = decode_job(value, base)
        except ManifestDecodeError as exc:
            log_debug(logger, "skipping job %s in %s: %s", key, path, exc)
            continue
        if key == "default":
            config.default = job
        config.jobs.append(job)

    config.stages = decode_string_list(
        get(root, "stages", field="config"), field="stages"
    )
    config.variables = decode_global_variables(get(root, "variables", field="config"))
    config.include = decode_include(get(root, "include", field="config"))
    return config


def parse_config(data: bytes | str, path: str = "") -> GitlabciConfig:
    """Parse a configuration file, honouring a leading ``spec:`` document.

    When the first document declares ``spec.inputs`` it is a header: the
    configuration proper is the second document, which carries the header inputs.
    """
    documents = compose_documents(data)
    if not documents:
        return GitlabciConfig(path=path)
    config = decode_config(documents[0], path)
    if not config.spec.inputs:
        return config
    if len(documents) < 2:  # noqa: PLR2004
        raise ManifestDecodeError.missing_document(path or "config")
    body = decode_config(documents[1], path)
    body.spec = config.spec
    return body
