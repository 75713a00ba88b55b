"""Package identity (package URL) construction and normalization."""

from __future__ import annotations

from .errors import MalformedIdentityError
from .purl import (
    DOCKER_TYPE,
    GITHUB_ACTIONS_TYPE,
    GITHUB_TYPE,
    GITLAB_TYPE,
    full_name,
    normalize_purl,
    parse_purl,
    purl_from_docker_image,
    purl_from_github_actions,
    purl_link,
)

__all__ = [
    "DOCKER_TYPE",
    "GITHUB_ACTIONS_TYPE",
    "GITHUB_TYPE",
    "GITLAB_TYPE",
    "MalformedIdentityError",
    "full_name",
    "normalize_purl",
    "parse_purl",
    "purl_from_docker_image",
    "purl_from_github_actions",
    "purl_link",
]
