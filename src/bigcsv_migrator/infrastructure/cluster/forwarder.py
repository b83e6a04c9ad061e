"""HTTP forwarding of task-scoped management calls to the owning node."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, cast

import httpx

from bigcsv_migrator.domain.errors import ClusterForwardError

logger = logging.getLogger(__name__)

FORWARDED_HEADER = "X-Bigcsv-Forwarded-By"


@dataclass(slots=True, frozen=True)
class ForwardedResponse:
    """Status and decoded body returned by the owning node."""

    status_code: int
    payload: Any


class ClusterForwarder:
    """Relay requests to peer nodes listed in the cluster map."""

    def __init__(
        self,
        node_id: str,
        nodes: Mapping[str, str],
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._node_id = node_id
        self._nodes = {key: self._normalize_base_url(url) for key, url in nodes.items()}
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def node_id(self) -> str:
        """Return this node's id."""

        return self._node_id

    def is_local(self, node_id: str) -> bool:
        """Return whether `node_id` is this node."""

        return node_id == self._node_id

    def base_url_for(self, node_id: str) -> str:
        """Return the management base URL of a peer node."""

        base_url = self._nodes.get(node_id)
        if base_url is None:
            raise ClusterForwardError(f"Node '{node_id}' is not part of the cluster map.")
        return base_url

    async def forward(
        self,
        node_id: str,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
    ) -> ForwardedResponse:
        """Send one request to `node_id` and return its response unchanged."""

        url = f"{self.base_url_for(node_id)}{path}"
        logger.info("Forwarding %s %s to node '%s'.", method, path, node_id)
        async_transport = cast(httpx.AsyncBaseTransport | None, self._transport)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=async_transport,
            ) as http_client:
                response = await http_client.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    headers={FORWARDED_HEADER: self._node_id},
                )
        except httpx.HTTPError as exc:
            raise ClusterForwardError(f"{method} {url} failed: {exc}") from exc
        return ForwardedResponse(
            status_code=response.status_code,
            payload=self._payload_from_response(response),
        )

    def _payload_from_response(self, response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return {"detail": response.text.strip()}

    def _normalize_base_url(self, base_url: str) -> str:
        normalized = base_url.strip().rstrip("/")
        if not normalized:
            raise ClusterForwardError("Cluster node URL cannot be empty.")
        return normalized


__all__ = ["FORWARDED_HEADER", "ClusterForwarder", "ForwardedResponse"]
