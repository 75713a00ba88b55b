"""Rule configuration loaded from ``.pipescan.yml``."""

from __future__ import annotations

import typing as typ
from pathlib import Path

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import ConfigError

YAML_VERSION = (1, 2)
DEFAULT_CONFIG_FILE = ".pipescan.yml"

# A single string is accepted wherever a list of strings is.
StringList = list[str] | str


def _as_list(value: StringList) -> list[str]:
    return [value] if isinstance(value, str) else list(value)


class ConfigSkip(msgspec.Struct, kw_only=True, omit_defaults=True):
    """A finding suppression; every populated field must match."""

    purl: StringList = msgspec.field(default_factory=list)
    path: StringList = msgspec.field(default_factory=list)
    rule: StringList = msgspec.field(default_factory=list)
    osv_id: StringList = msgspec.field(default_factory=list)
    job: StringList = msgspec.field(default_factory=list)
    level: StringList = msgspec.field(default_factory=list)

    def __post_init__(self) -> None:
        """Store every selector as a list."""
        self.purl = _as_list(self.purl)
        self.path = _as_list(self.path)
        self.rule = _as_list(self.rule)
        self.osv_id = _as_list(self.osv_id)
        self.job = _as_list(self.job)
        self.level = _as_list(self.level)

    def has_only_rule(self) -> bool:
        """Return True when the entry disables rules outright."""
        return bool(self.rule) and not (
            self.purl or self.path or self.osv_id or self.job or self.level
        )


class ConfigInclude(msgspec.Struct, kw_only=True):
    """Extra policy paths to load."""

    path: StringList = msgspec.field(default_factory=list)

    def __post_init__(self) -> None:
        """Store ``path`` as a list."""
        self.path = _as_list(self.path)


class Config(msgspec.Struct, kw_only=True):
    """Settings passed to the findings query as ``input.config``."""

    skip: list[ConfigSkip] = msgspec.field(default_factory=list)
    allowed_rules: list[str] = msgspec.field(default_factory=list)
    include: list[ConfigInclude] = msgspec.field(default_factory=list)
    ignore_forks: bool = False
    ignore_archived: bool = False
    quiet: bool = False
    rules_config: dict[str, dict[str, typ.Any]] = msgspec.field(default_factory=dict)

    def include_paths(self) -> list[str]:
        """Return every non-empty ``include`` path in order."""
        return [path for entry in self.include for path in entry.path if path]


def _yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    return yaml


def parse_config(text: str, *, source: str = "<string>") -> Config:
    """Parse configuration YAML.

    Raises
    ------
    ConfigError
        If ``text`` is not valid YAML or does not match the schema.

    """
    try:
        loaded = _yaml().load(text)
    except YAMLError as exc:
        raise ConfigError(source, f"failed to parse YAML: {exc}") from exc

    if loaded is None:
        return Config()
    try:
        return msgspec.convert(loaded, type=Config)
    except msgspec.ValidationError as exc:
        raise ConfigError(source, f"schema validation failed: {exc}") from exc


def load_config(path: Path | str | None = None) -> Config:
    """Load the rule configuration.

    Parameters
    ----------
    path : Path | str | None, optional
        Explicit file to load. When omitted, ``.pipescan.yml`` in the
        working directory is used if it exists.

    Returns
    -------
    Config
        The parsed configuration, or defaults when no file applies.

    Raises
    ------
    ConfigError
        If an explicit file is missing, or any file fails to parse.

    """
    explicit = path is not None
    path_obj = Path(path) if path is not None else Path(DEFAULT_CONFIG_FILE)
    if not explicit and not path_obj.is_file():
        return Config()
    try:
        text = path_obj.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(str(path_obj), f"cannot read file: {exc}") from exc
    return parse_config(text, source=str(path_obj))
