"""Agora Conversational AI REST client used by the proxy."""
import logging
from typing import Any, Dict, List, Optional

import httpx

from vettriage.core.errors import CredentialUnavailable, UpstreamError

logger = logging.getLogger(__name__)


def _payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"error": response.text}


class ConvoAIClient:
    """Create, stop and inspect hosted agents with REST key/secret auth."""

    def __init__(
        self,
        app_id: Optional[str],
        rest_key: Optional[str],
        rest_secret: Optional[str],
        api_base: str = "https://api.agora.io/api/conversational-ai-agent/v2",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self.app_id = app_id
        self.rest_key = rest_key
        self.rest_secret = rest_secret
        self.api_base = api_base.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def configured(self) -> bool:
        return bool(self.app_id and self.rest_key and self.rest_secret)

    @property
    def project_url(self) -> str:
        return f"{self.api_base}/projects/{self.app_id}"

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        if not self.configured:
            raise CredentialUnavailable("Server misconfigured: missing Agora credentials")
        url = f"{self.project_url}{path}"
        try:
            response = await self._client.request(
                method,
                url,
                auth=httpx.BasicAuth(self.rest_key, self.rest_secret),
                headers={"Content-Type": "application/json"},
                **kwargs,
            )
        except httpx.HTTPError as e:
            logger.error(f"[CONVO AI] {method} {path} failed: {type(e).__name__}: {e}")
            raise UpstreamError(500, {"error": str(e)}) from e

        payload = _payload(response)
        if response.status_code >= 400:
            logger.error(f"[CONVO AI] {method} {path} returned {response.status_code}: {payload}")
            raise UpstreamError(response.status_code, payload)
        return payload if isinstance(payload, dict) else {"data": payload}

    async def join(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Start an agent in the channel named by ``body``."""
        channel = (body.get("properties") or {}).get("channel")
        logger.info(f"[CONVO AI] Starting agent for channel {channel}")
        result = await self._request("POST", "/join", json=body)
        logger.info(f"[CONVO AI] Agent started: {result.get('agent_id')}")
        return result

    async def leave(self, agent_id: str) -> Dict[str, Any]:
        logger.info(f"[CONVO AI] Stopping agent {agent_id}")
        return await self._request("POST", f"/agents/{agent_id}/leave", json={})

    async def status(self, agent_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/agents/{agent_id}")

    async def list_agents(self, channel_id: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"channel": channel_id} if channel_id else None
        result = await self._request("GET", "/agents", params=params)
        agents = result.get("agents")
        if agents is None:
            agents = (result.get("data") or {}).get("list", [])
        return [a for a in agents if isinstance(a, dict)]

    async def cleanup_channel(self, channel_id: str) -> Dict[str, Any]:
        """Stop a stale agent left in ``channel_id``; best effort."""
        logger.info(f"[CONVO AI] Cleaning up stale agents for channel {channel_id}")
        try:
            agents = await self.list_agents(channel_id)
        except UpstreamError as e:
            logger.info(f"[CONVO AI] No agents to clean up: {e}")
            return {"cleaned": False}

        stale = next(
            (a for a in agents if a.get("channel", channel_id) == channel_id and a.get("agent_id")),
            None,
        )
        if stale is None:
            logger.info("[CONVO AI] No stale agent found")
            return {"cleaned": False}

        try:
            await self.leave(stale["agent_id"])
        except UpstreamError as e:
            logger.warning(f"[CONVO AI] Failed to stop stale agent {stale['agent_id']}: {e}")
            return {"cleaned": False, "error": str(e)}
        logger.info(f"[CONVO AI] Stale agent {stale['agent_id']} stopped")
        return {"cleaned": True, "agent_id": stale["agent_id"]}
