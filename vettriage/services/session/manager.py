"""Triage session orchestration."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from vettriage.core.errors import InvalidStateTransition
from vettriage.services.agent.controller import AgentController
from vettriage.services.agent.properties import AgentPipeline
from vettriage.services.agent.retry import RetryPolicy
from vettriage.services.intake.driver import HostedAgentDriver, IntakeDriver
from vettriage.services.media.base import MediaDeviceProvider
from vettriage.services.media.publisher import MediaPublisher
from vettriage.services.persistence.sessions import SessionRecord, SessionRecordStore
from vettriage.services.proxy.client import ClientConfig, ProxyClient
from vettriage.services.rtc.base import RtcTransport
from vettriage.services.session.channel import ChannelSession
from vettriage.services.session.finalizer import SessionFinalizer
from vettriage.services.session.models import (
    DEFAULT_AGENT_PARTICIPANT_ID,
    IntakeTurn,
    Session,
    Subject,
    TriageSummary,
)
from vettriage.services.session.stages import SessionState
from vettriage.services.summary.summarizer import TriageSummarizer

logger = logging.getLogger(__name__)


class TriageSessionManager:
    """Runs one triage session from configuration to the saved record.

    Startup acquires, in order: client config, a join token, the channel,
    local media and the hosted agent. If any step fails everything already
    acquired is released, the session is marked failed and the original
    error is raised to the caller.
    """

    def __init__(
        self,
        proxy: ProxyClient,
        transport: RtcTransport,
        devices: MediaDeviceProvider,
        driver: IntakeDriver,
        store: SessionRecordStore,
        pipeline: AgentPipeline,
        summarizer: Optional[TriageSummarizer] = None,
        retry_policy: Optional[RetryPolicy] = None,
        agent_participant_id: int = DEFAULT_AGENT_PARTICIPANT_ID,
        enable_video: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.proxy = proxy
        self.transport = transport
        self.devices = devices
        self.driver = driver
        self.store = store
        self.summarizer = summarizer or TriageSummarizer(proxy)
        self.agent = AgentController(proxy, pipeline, retry_policy, sleep=sleep)
        self.agent_participant_id = agent_participant_id
        self.enable_video = enable_video

        self.session: Optional[Session] = None
        self.config: Optional[ClientConfig] = None
        self.publisher: Optional[MediaPublisher] = None
        self.channel: Optional[ChannelSession] = None
        self.finalizer: Optional[SessionFinalizer] = None
        self.pending_stop: Optional["asyncio.Task[bool]"] = None

    def _require_session(self) -> Session:
        if self.session is None:
            raise InvalidStateTransition("No session has been started")
        return self.session

    async def start(
        self,
        channel_id: str,
        subject: Optional[Subject] = None,
        participant_id: int = 0,
    ) -> Session:
        """Bring the session up to Active."""
        if self.session is not None and not self.session.is_terminal:
            raise InvalidStateTransition(
                f"Session {self.session.channel_id} is still {self.session.state.value}"
            )

        session = Session(
            channel_id,
            subject=subject,
            local_participant_id=participant_id,
            agent_participant_id=self.agent_participant_id,
        )
        self.session = session
        self.publisher = MediaPublisher(self.devices, self.transport, self.enable_video)
        self.channel = ChannelSession(session, self.transport, self.publisher)
        self.finalizer = SessionFinalizer(self.agent, self.channel, self.store, self.driver)

        try:
            session.transition(SessionState.CONFIGURING, "start")
            self.config = await self.proxy.load_config()
            self.channel.app_id = self.config.app_id

            token = await self.proxy.acquire_token(channel_id, participant_id, "publisher")
            await self.channel.join(channel_id, participant_id, token)
            session.transition(SessionState.PUBLISHING, "joined")

            await self.publisher.publish()
            await self.agent.start(session, self.driver.prompt_spec(session), self.config)
        except Exception as e:
            logger.error(
                f"[SESSION] Startup failed for {channel_id} in {session.state.value}: "
                f"{type(e).__name__}: {e}"
            )
            session.fail(f"{type(e).__name__}: {e}")
            await self.finalizer.end(session)
            raise

        logger.info(f"[SESSION] {channel_id} active with agent {session.agent_handle}")
        return session

    async def run_intake(self) -> Optional[TriageSummary]:
        """Drive the questions, then summarize. Returns None if the session ended first."""
        session = self._require_session()
        if session.state != SessionState.ACTIVE:
            raise InvalidStateTransition(
                f"Intake needs an active session, {session.channel_id} is {session.state.value}"
            )

        await self.driver.run(session)
        if session.is_ending:
            logger.info(f"[SESSION] {session.channel_id} ended during intake")
            return None

        self.driver.fill_unanswered(session)
        summary = await self.summarizer.generate_summary(session.turns, session.subject)
        if session.summary is None:
            session.attach_summary(summary)
        await self.driver.deliver_summary(session, summary)
        return summary

    def forward_utterance(self, text: str) -> Optional[IntakeTurn]:
        """Hand a caller utterance from the hosted agent to the driver."""
        session = self._require_session()
        if not isinstance(self.driver, HostedAgentDriver):
            return None
        return self.driver.record_utterance(session, text)

    async def end(self) -> Optional[SessionRecord]:
        session = self._require_session()
        return await self.finalizer.end(session)

    def end_abruptly(self) -> Optional["asyncio.Task[bool]"]:
        if self.session is None or self.finalizer is None:
            return None
        return self.finalizer.end_abruptly(self.session)

    async def run(
        self,
        channel_id: str,
        subject: Optional[Subject] = None,
        participant_id: int = 0,
    ) -> Optional[SessionRecord]:
        """Start, run the intake and always finish.

        If the run is cancelled or interrupted, local media is released at
        once and the agent stop is left running in the background.
        """
        await self.start(channel_id, subject, participant_id)
        try:
            await self.run_intake()
        except (asyncio.CancelledError, KeyboardInterrupt):
            logger.warning(f"[SESSION] {channel_id} interrupted, ending abruptly")
            self.pending_stop = self.end_abruptly()
            raise
        except Exception:
            await self.end()
            raise
        return await self.end()
