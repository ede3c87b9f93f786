"""Session teardown and record keeping."""
import asyncio
import logging
from typing import Optional

from vettriage.core.errors import TeardownError
from vettriage.services.agent.controller import AgentController
from vettriage.services.intake.driver import IntakeDriver
from vettriage.services.persistence.sessions import SessionRecord, SessionRecordStore
from vettriage.services.session.channel import ChannelSession
from vettriage.services.session.models import Session
from vettriage.services.session.stages import SessionState
from vettriage.services.summary.summarizer import fallback_summary

logger = logging.getLogger(__name__)


class SessionFinalizer:
    """Tears a session down in reverse acquisition order and saves its record.

    Order: stop the agent, release local media and leave the channel, then
    persist. Every step is best effort. Calling ``end`` again returns the
    first result without repeating any step.
    """

    def __init__(
        self,
        agent: AgentController,
        channel: ChannelSession,
        store: SessionRecordStore,
        driver: Optional[IntakeDriver] = None,
    ):
        self.agent = agent
        self.channel = channel
        self.store = store
        self.driver = driver
        self._lock = asyncio.Lock()
        self._finished = False
        self._record: Optional[SessionRecord] = None

    @property
    def finished(self) -> bool:
        return self._finished

    async def end(self, session: Session) -> Optional[SessionRecord]:
        """Finish the session; returns the saved record, or None after a failed start."""
        async with self._lock:
            if self._finished:
                return self._record

            reached_active = session.started_at is not None
            agent_handle = session.agent_handle
            if not session.is_terminal and session.state != SessionState.ENDING:
                session.transition(SessionState.ENDING, "end requested")

            await self.agent.stop(session)
            try:
                await self.channel.leave()
            except TeardownError as e:
                logger.error(f"[FINALIZER] {e}")
            session.mark_ended()

            if reached_active and session.state == SessionState.ENDING:
                self._record = await self._persist(session, agent_handle)
            else:
                logger.info(
                    f"[FINALIZER] {session.channel_id} never became active; nothing to persist"
                )

            if session.state == SessionState.ENDING:
                session.transition(SessionState.ENDED, "finalized")
            self._finished = True
            return self._record

    async def _persist(self, session: Session, agent_handle: Optional[str]) -> SessionRecord:
        if self.driver is not None:
            self.driver.fill_unanswered(session)
        summary = session.summary
        if summary is None:
            summary = fallback_summary()
            session.attach_summary(summary)

        record = SessionRecord.from_session(session, summary, agent_handle)
        try:
            record = await self.store.save(record)
        except Exception as e:
            logger.error(
                f"[FINALIZER] Failed to persist {session.channel_id}: {type(e).__name__}: {e}",
                exc_info=True,
            )
            return record
        logger.info(
            f"[FINALIZER] Session {session.channel_id} saved: urgency "
            f"{record.summary.urgency.value}, {record.duration_seconds}s"
        )
        return record

    def end_abruptly(self, session: Session) -> Optional["asyncio.Task[bool]"]:
        """Process is going away: free media now and stop the agent in the background."""
        if self.channel.publisher is not None:
            self.channel.publisher.release()
        return self.agent.stop_in_background(session)
