"""Policy engine protocol and the Open Policy Agent REST adapter."""

from __future__ import annotations

import dataclasses
import os
import typing as typ

import httpx
import msgspec

from .errors import PolicyConfigError, PolicyEngineError

_HTTP_ERROR_STATUS_THRESHOLD = 400
_DATA_PREFIX = "data."

INVENTORY_QUERY = "data.pipescan.queries.inventory.result"
FINDINGS_QUERY = "data.pipescan.queries.findings.result"


class PolicyEngine(typ.Protocol):
    """Evaluates named queries against an input document."""

    async def evaluate(self, query: str, input_: typ.Any) -> typ.Any:  # noqa: ANN401
        """Evaluate ``query`` with ``input_`` and return the raw result."""
        ...


async def evaluate_as[T](
    engine: PolicyEngine, query: str, input_: object, type_: type[T]
) -> T:
    """Evaluate ``query`` and convert the result to ``type_``.

    Raises
    ------
    PolicyEngineError
        If evaluation fails or the result does not fit ``type_``.

    """
    raw = await engine.evaluate(query, msgspec.to_builtins(input_))
    try:
        return msgspec.convert(raw, type=type_, strict=False)
    except msgspec.ValidationError as exc:
        raise PolicyEngineError.invalid_result(query, exc) from exc


def query_path(query: str) -> str:
    """Map ``data.a.b.c`` to the REST data path ``a/b/c``."""
    if not query.startswith(_DATA_PREFIX) or len(query) == len(_DATA_PREFIX):
        raise PolicyEngineError.invalid_query(query)
    return query.removeprefix(_DATA_PREFIX).replace(".", "/")


@dataclasses.dataclass(frozen=True, slots=True)
class OpaServerConfig:
    """Configuration for an Open Policy Agent server."""

    endpoint: str
    token: str = ""
    timeout_s: float = 30.0
    user_agent: str = "pipescan/0.1"

    @classmethod
    def from_env(cls) -> OpaServerConfig:
        """Build configuration from ``PIPESCAN_OPA_URL`` and ``PIPESCAN_OPA_TOKEN``."""
        endpoint = os.environ.get("PIPESCAN_OPA_URL", "").strip()
        if not endpoint:
            raise PolicyConfigError.missing_endpoint()
        token = os.environ.get("PIPESCAN_OPA_TOKEN", "").strip()
        return cls(endpoint=endpoint, token=token)


class OpaServerEngine:
    """:class:`PolicyEngine` backed by the OPA ``/v1/data`` API.

    Examples
    --------
    >>> engine = OpaServerEngine(OpaServerConfig(endpoint="http://localhost:8181"))
    >>> await engine.evaluate(INVENTORY_QUERY, {"packages": []})  # doctest: +SKIP

    """

    def __init__(
        self,
        config: OpaServerConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the engine with the server configuration."""
        if not config.endpoint.strip():
            raise PolicyConfigError.missing_endpoint()

        self._config = config
        self._owns_client = http_client is None
        headers = {"User-Agent": config.user_agent, "Accept": "application/json"}
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s, headers=headers
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    def url_for(self, query: str) -> str:
        """Return the data API URL serving ``query``."""
        return f"{self._config.endpoint.rstrip('/')}/v1/data/{query_path(query)}"

    async def evaluate(self, query: str, input_: typ.Any) -> typ.Any:  # noqa: ANN401
        """POST ``{"input": input_}`` and return the ``result`` member.

        Raises
        ------
        PolicyEngineError
            On transport failures, error statuses, non-JSON bodies, or a
            response without ``result`` (an undefined query).

        """
        try:
            response = await self._client.post(
                self.url_for(query), json={"input": input_}
            )
        except httpx.HTTPError as exc:
            raise PolicyEngineError.transport_error(query, exc) from exc
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise PolicyEngineError.http_error(query, response.status_code)
        try:
            payload = response.json()
        except ValueError as exc:
            raise PolicyEngineError.invalid_result(query, exc) from exc
        if not isinstance(payload, dict) or "result" not in payload:
            raise PolicyEngineError.missing_result(query)
        return payload["result"]
