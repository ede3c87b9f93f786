"""Wire a session manager from settings."""
import logging
from typing import Optional

from vettriage.core.config import Settings, settings
from vettriage.services.agent.properties import AgentPipeline
from vettriage.services.intake.factory import build_intake_driver
from vettriage.services.intake.voice import AudioPlayer, ProxyVoiceOutput
from vettriage.services.media.base import MediaDeviceProvider
from vettriage.services.media.sounddevice_tracks import SoundDevicePlayer, SoundDeviceProvider
from vettriage.services.persistence.sessions import SessionRecordStore
from vettriage.services.proxy.client import ProxyClient
from vettriage.services.rtc.base import RtcTransport
from vettriage.services.session.manager import TriageSessionManager

logger = logging.getLogger(__name__)


def pipeline_from_settings(config: Settings) -> AgentPipeline:
    return AgentPipeline(
        llm_url=config.llm_url,
        llm_model=config.llm_model,
        idle_timeout=config.agent_idle_timeout,
        silence_timeout_ms=config.silence_timeout_ms,
    )


def build_session_manager(
    transport: RtcTransport,
    store: SessionRecordStore,
    proxy: Optional[ProxyClient] = None,
    devices: Optional[MediaDeviceProvider] = None,
    player: Optional[AudioPlayer] = None,
    config: Settings = settings,
) -> TriageSessionManager:
    """Build a manager for ``config.intake_mode``.

    Host audio devices are used unless ``devices`` and ``player`` are given.
    In local mode the sequencer listens to the manager's live microphone.
    """
    proxy = proxy or ProxyClient(config.proxy_base_url)
    devices = devices or SoundDeviceProvider()
    manager: Optional[TriageSessionManager] = None

    def microphone_level() -> float:
        if manager is None or manager.publisher is None:
            return 0.0
        return manager.publisher.input_level()

    voice = ProxyVoiceOutput(proxy, player or SoundDevicePlayer())
    driver = build_intake_driver(config.intake_mode, voice=voice, level_reader=microphone_level)
    manager = TriageSessionManager(
        proxy,
        transport,
        devices,
        driver,
        store,
        pipeline_from_settings(config),
        agent_participant_id=config.agent_uid,
    )
    logger.info(f"[SESSION] Manager ready in {config.intake_mode} intake mode")
    return manager
