"""HTTP client for the triage proxy server."""
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vettriage.core.errors import (
    AgentConflict,
    AgentStartFailed,
    AnalysisUnavailable,
    ConfigUnavailable,
    CredentialUnavailable,
    TeardownError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

VALID_ROLES = ("publisher", "subscriber")


class ClientConfig(BaseModel):
    """Connection parameters served by ``/config``."""

    model_config = ConfigDict(populate_by_name=True)

    app_id: Optional[str] = Field(default=None, alias="AGORA_APPID")
    static_token: Optional[str] = Field(default=None, alias="AGORA_TOKEN")
    openai_key: Optional[str] = Field(default=None, alias="OPENAI_KEY")
    groq_key: Optional[str] = Field(default=None, alias="GROQ_KEY")
    tts_minimax_key: Optional[str] = Field(default=None, alias="TTS_MINIMAX_KEY")
    tts_minimax_group_id: Optional[str] = Field(default=None, alias="TTS_MINIMAX_GROUPID")
    avatar_akool_key: Optional[str] = Field(default=None, alias="AVATAR_AKOOL_KEY")


def validate_token_request(channel_id: str, participant_id: int, role: str) -> None:
    """Validate a (channel, participant, role) token request."""
    if not channel_id:
        raise ValueError("channel_id is required")
    if isinstance(participant_id, bool) or not isinstance(participant_id, int) or participant_id < 0:
        raise ValueError("participant_id must be a non-negative integer")
    if role not in VALID_ROLES:
        raise ValueError(f"role must be one of {VALID_ROLES}")


def _error_payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class ProxyClient:
    """Talks to the proxy endpoints on behalf of the orchestration core."""

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ProxyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def load_config(self) -> ClientConfig:
        """Fetch non-secret connection parameters."""
        try:
            response = await self._client.get("/config")
            response.raise_for_status()
            config = ClientConfig.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.error(f"[PROXY] Could not load client config: {type(e).__name__}: {e}")
            raise ConfigUnavailable(f"Failed to fetch /config: {e}") from e
        logger.info("[PROXY] Client config loaded successfully")
        return config

    async def acquire_token(
        self, channel_id: str, participant_id: int, role: str = "publisher"
    ) -> str:
        """Mint a join token scoped to the channel/participant/role triple."""
        validate_token_request(channel_id, participant_id, role)
        params = {"channelName": channel_id, "uid": participant_id, "role": role}
        try:
            response = await self._client.get("/api/token", params=params)
        except httpx.HTTPError as e:
            raise ConfigUnavailable(f"Token request failed: {e}") from e

        if response.status_code >= 500:
            raise CredentialUnavailable(
                f"Token signing failed: {_error_payload(response)}"
            )
        if response.status_code != 200:
            raise ConfigUnavailable(
                f"Token request rejected ({response.status_code}): {_error_payload(response)}"
            )
        payload = _error_payload(response)
        token = payload.get("token") if isinstance(payload, dict) else None
        if not token:
            raise CredentialUnavailable("Token response did not contain a token")
        logger.info(f"[PROXY] Token acquired for channel {channel_id}, uid {participant_id}")
        return token

    async def start_agent(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Create the hosted agent. Raises AgentConflict on HTTP 409."""
        try:
            response = await self._client.post("/api/convo-ai/start", json=body)
        except httpx.HTTPError as e:
            raise AgentStartFailed(f"Agent start request failed: {e}") from e

        if response.status_code == 409:
            payload = _error_payload(response)
            agent_id = payload.get("agent_id") if isinstance(payload, dict) else None
            raise AgentConflict(f"Agent already exists for channel: {payload}", agent_id=agent_id)
        if response.status_code >= 400:
            raise AgentStartFailed(
                f"Agent start failed ({response.status_code}): {_error_payload(response)}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise AgentStartFailed(f"Agent start returned a non-JSON body: {response.text[:200]}") from e

    async def stop_agent(self, agent_id: str) -> Dict[str, Any]:
        """Ask the hosted agent to leave."""
        try:
            response = await self._client.post(f"/api/convo-ai/agents/{agent_id}/leave")
        except httpx.HTTPError as e:
            raise TeardownError(f"Agent leave request failed: {e}") from e
        if response.status_code >= 400:
            raise TeardownError(
                f"Agent leave failed ({response.status_code}): {_error_payload(response)}"
            )
        payload = _error_payload(response)
        return payload if isinstance(payload, dict) else {}

    async def agent_status(self, agent_id: str) -> Dict[str, Any]:
        response = await self._client.get(f"/api/convo-ai/agents/{agent_id}/status")
        if response.status_code >= 400:
            raise UpstreamError(response.status_code, _error_payload(response))
        return response.json()

    async def cleanup_channel(self, channel_id: str) -> Dict[str, Any]:
        """Best-effort stale agent teardown; never raises."""
        try:
            response = await self._client.post(f"/api/convo-ai/cleanup/{channel_id}")
            payload = _error_payload(response)
        except httpx.HTTPError as e:
            logger.warning(f"[PROXY] Cleanup request for {channel_id} failed: {e}")
            return {"cleaned": False}
        if not isinstance(payload, dict):
            return {"cleaned": False}
        return payload

    async def analyze_triage(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post("/api/analyze-triage", json=payload)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise AnalysisUnavailable(f"Triage analysis failed: {e}") from e

    async def synthesize_speech(
        self,
        text: str,
        voice: str = "nova",
        model: str = "tts-1",
        response_format: str = "mp3",
    ) -> bytes:
        response = await self._client.post(
            "/api/openai-tts",
            json={"text": text, "voice": voice, "model": model, "format": response_format},
        )
        if response.status_code >= 400:
            raise UpstreamError(response.status_code, _error_payload(response))
        return response.content
