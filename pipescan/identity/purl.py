"""Package URL helpers for every artifact pipescan names.

Identities are plain :class:`packageurl.PackageURL` values. This module adds
the ecosystem rules pipescan needs on top of the library: GitHub Actions
references are case-folded and re-split so ``owner/repo/sub/dir`` keeps the
extra segments in the subpath, and container images and ``uses:`` strings
get dedicated constructors.
"""

from __future__ import annotations

import typing as typ

from packageurl import PackageURL

from .errors import MalformedIdentityError

GITHUB_ACTIONS_TYPE = "githubactions"
GITHUB_TYPE = "github"
GITLAB_TYPE = "gitlab"
DOCKER_TYPE = "docker"

_DOCKER_SCHEME = "docker://"
_DEFAULT_HOSTS: typ.Final[dict[str, str]] = {
    GITHUB_ACTIONS_TYPE: "github.com",
    GITHUB_TYPE: "github.com",
    GITLAB_TYPE: "gitlab.com",
}


def parse_purl(text: str) -> PackageURL:
    """Parse ``text`` into a :class:`PackageURL`.

    Raises
    ------
    MalformedIdentityError
        If ``text`` is empty or not a valid package URL.

    """
    if not text:
        raise MalformedIdentityError.unparseable(text, "empty string")
    try:
        return PackageURL.from_string(text)
    except ValueError as exc:
        raise MalformedIdentityError.unparseable(text, exc) from exc


def _build(
    type_: str,
    *,
    namespace: str | None,
    name: str,
    version: str | None = None,
    qualifiers: dict[str, str] | None = None,
    subpath: str | None = None,
) -> PackageURL:
    try:
        return PackageURL(
            type=type_,
            namespace=namespace or None,
            name=name,
            version=version or None,
            qualifiers=qualifiers or None,
            subpath=subpath or None,
        )
    except ValueError as exc:
        raise MalformedIdentityError.unparseable(f"pkg:{type_}/{name}", exc) from exc


def normalize_purl(purl: PackageURL) -> PackageURL:
    """Return the canonical form of ``purl``.

    Only ``githubactions`` identities are rewritten: owner and repository are
    lower-cased and any path segment after them moves into the subpath.
    Applying the function to its own output returns an equal value.
    """
    if purl.type != GITHUB_ACTIONS_TYPE:
        return purl

    parts = f"{purl.namespace or ''}/{purl.name}".split("/", 2)
    subpath = parts[2] if len(parts) == 3 else purl.subpath  # noqa: PLR2004
    return _build(
        GITHUB_ACTIONS_TYPE,
        namespace=parts[0].lower(),
        name=parts[1].lower(),
        version=purl.version,
        qualifiers=dict(purl.qualifiers or {}),
        subpath=subpath,
    )


def full_name(purl: PackageURL) -> str:
    """Return ``namespace/name``, or just the name when there is no namespace."""
    if purl.namespace:
        return f"{purl.namespace}/{purl.name}"
    return purl.name


def purl_link(purl: PackageURL) -> str:
    """Return the web page for ``purl`` or ``""`` when none is known.

    Self-hosted instances are honoured through the ``repository_url``
    qualifier, e.g. ``pkg:githubactions/actions/checkout?repository_url=
    github.example.com`` links to ``https://github.example.com/actions/checkout``.
    """
    default_host = _DEFAULT_HOSTS.get(purl.type)
    if default_host is None:
        return ""
    host = (purl.qualifiers or {}).get("repository_url") or default_host
    return f"https://{host}/{full_name(purl)}"


def purl_from_docker_image(image: str) -> PackageURL:
    """Build a ``pkg:docker`` identity from an image reference.

    The tag or digest becomes the version and any registry or path prefix
    becomes the namespace, so ``ghcr.io/org/tool@sha256:abc`` yields
    namespace ``ghcr.io/org``, name ``tool`` and version ``sha256:abc``.
    """
    reference = image.strip()
    if not reference:
        raise MalformedIdentityError.unparseable(image, "empty image reference")

    repository, _, digest = reference.partition("@")
    version: str | None = digest or None
    namespace, _, name = repository.rpartition("/")
    if version is None and ":" in name:
        name, _, version = name.partition(":")
    if not name:
        raise MalformedIdentityError.unparseable(image, "missing image name")
    return _build(DOCKER_TYPE, namespace=namespace, name=name, version=version)


def purl_from_github_actions(
    uses: str, source_git_repo: str = "", source_git_ref: str = ""
) -> PackageURL:
    """Build the identity for a workflow ``uses:`` value.

    Parameters
    ----------
    uses : str
        Raw reference: ``owner/repo[/path]@ref``, ``docker://image`` or a
        repository-local ``./path``.
    source_git_repo : str, optional
        ``owner/repo`` of the repository holding the workflow; required to
        resolve local references.
    source_git_ref : str, optional
        Ref of the scanned checkout, used as the version of local references.

    Returns
    -------
    PackageURL
        A normalized ``githubactions`` identity, or a ``docker`` identity for
        ``docker://`` references.

    Raises
    ------
    MalformedIdentityError
        For empty references, references containing ``..``, local
        references with no source repository, and references that do not
        contain exactly one ``@``.

    """
    if not uses:
        raise MalformedIdentityError.empty_reference()
    if ".." in uses:
        raise MalformedIdentityError.path_traversal(uses)

    if uses.startswith("."):
        if not source_git_repo:
            raise MalformedIdentityError.unresolved_local(uses)
        owner, _, repo = source_git_repo.partition("/")
        return normalize_purl(
            _build(
                GITHUB_ACTIONS_TYPE,
                namespace=owner if repo else None,
                name=repo or owner,
                version=source_git_ref,
                subpath=uses[2:],
            )
        )

    if uses.startswith(_DOCKER_SCHEME):
        return purl_from_docker_image(uses.removeprefix(_DOCKER_SCHEME))

    parts = uses.split("@")
    if len(parts) != 2:  # noqa: PLR2004
        raise MalformedIdentityError.missing_version(uses)
    path, version = parts
    owner, _, rest = path.partition("/")
    return normalize_purl(
        _build(
            GITHUB_ACTIONS_TYPE,
            namespace=owner if rest else None,
            name=rest or owner,
            version=version,
        )
    )
