"""Hosted conversational agent lifecycle."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from vettriage.core.errors import AgentConflict, AgentStartFailed, UpstreamError
from vettriage.services.agent.properties import (
    AgentPipeline,
    AgentPromptSpec,
    build_agent_request,
)
from vettriage.services.agent.retry import RetryPolicy
from vettriage.services.proxy.client import ClientConfig, ProxyClient
from vettriage.services.session.models import Session
from vettriage.services.session.stages import SessionState

logger = logging.getLogger(__name__)


class AgentController:
    """Starts, stops and polls the hosted agent for one session at a time."""

    def __init__(
        self,
        proxy: ProxyClient,
        pipeline: AgentPipeline,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.proxy = proxy
        self.pipeline = pipeline
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    async def start(
        self, session: Session, prompt: AgentPromptSpec, config: ClientConfig
    ) -> str:
        """Start the agent and move the session to Active.

        A channel conflict is cleared and retried within the retry policy;
        any other failure, or conflicts beyond it, raise AgentStartFailed.
        Token errors propagate unchanged.
        """
        session.transition(SessionState.STARTING_AGENT, "agent start")

        agent_token = await self.proxy.acquire_token(
            session.channel_id, session.agent_participant_id, "publisher"
        )
        body = build_agent_request(session, agent_token, prompt, config, self.pipeline)

        attempts = self.retry_policy.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                result = await self.proxy.start_agent(body)
            except AgentConflict as e:
                logger.warning(
                    f"[AGENT] Conflict starting agent on {session.channel_id} "
                    f"(attempt {attempt}/{attempts}): {e}"
                )
                if attempt >= attempts:
                    raise AgentStartFailed(
                        f"Agent still conflicting on {session.channel_id} after {attempts} attempts"
                    ) from e
                await self._clear_conflict(session, e.agent_id)
                await self._sleep(self.retry_policy.backoff_seconds)
                continue

            agent_id = result.get("agent_id") if isinstance(result, dict) else None
            if not agent_id:
                raise AgentStartFailed(f"Agent start response had no agent_id: {result}")

            session.record_agent_handle(agent_id)
            session.mark_started()
            session.transition(SessionState.ACTIVE, "agent started")
            logger.info(f"[AGENT] Agent {agent_id} active on {session.channel_id}")
            return agent_id

        raise AgentStartFailed(f"Agent start on {session.channel_id} exhausted its retries")

    async def _clear_conflict(self, session: Session, conflicting_id: Optional[str]) -> None:
        if conflicting_id:
            try:
                await self.proxy.stop_agent(conflicting_id)
                logger.info(f"[AGENT] Stopped conflicting agent {conflicting_id}")
            except Exception as e:
                logger.warning(f"[AGENT] Could not stop conflicting agent {conflicting_id}: {e}")
        cleanup = await self.proxy.cleanup_channel(session.channel_id)
        logger.info(f"[AGENT] Channel cleanup for {session.channel_id}: {cleanup}")

    async def stop(self, session: Session) -> bool:
        """Stop the running agent; failures are logged, never raised."""
        handle = session.agent_handle
        if not handle:
            return False
        try:
            await self.proxy.stop_agent(handle)
        except Exception as e:
            logger.error(f"[AGENT] Failed to stop agent {handle}: {type(e).__name__}: {e}")
            return False
        session.clear_agent_handle()
        logger.info(f"[AGENT] Agent {handle} stopped")
        return True

    def stop_in_background(self, session: Session) -> Optional["asyncio.Task[bool]"]:
        """Fire-and-forget stop for process shutdown."""
        if not session.agent_handle:
            return None
        return asyncio.ensure_future(self.stop(session))

    async def status(self, session: Session) -> Optional[Dict[str, Any]]:
        if not session.agent_handle:
            return None
        try:
            return await self.proxy.agent_status(session.agent_handle)
        except (UpstreamError, httpx.HTTPError) as e:
            logger.warning(f"[AGENT] Status poll for {session.agent_handle} failed: {e}")
            return None
