"""Build the hosted agent's start request."""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from vettriage.services.agent.constants import (
    ASR_LANGUAGE,
    IDLE_TIMEOUT_SECONDS,
    LLM_FAILURE_MESSAGE,
    SILENCE_ACTION,
    SILENCE_CONTENT,
    SILENCE_TIMEOUT_MS,
    TTS_MODEL,
    TTS_SAMPLE_RATE,
    TTS_SKIP_PATTERNS,
    TTS_URL,
    TTS_VENDOR,
    TTS_VOICE_SETTING,
)
from vettriage.services.proxy.client import ClientConfig
from vettriage.services.session.models import Session


@dataclass(frozen=True)
class AgentPromptSpec:
    """What the agent should say, independent of any vendor."""

    system_instruction: str
    greeting: str
    enable_greeting: bool = True
    failure_message: str = LLM_FAILURE_MESSAGE


@dataclass(frozen=True)
class AgentPipeline:
    """Vendor endpoints and tunables for the agent's LLM and voice."""

    llm_url: str
    llm_model: str
    idle_timeout: int = IDLE_TIMEOUT_SECONDS
    silence_timeout_ms: int = SILENCE_TIMEOUT_MS
    asr_language: str = ASR_LANGUAGE


def remote_participant_ids(session: Session) -> List[str]:
    # "0" lets the agent pick up whichever uid the caller was assigned
    return [str(session.local_participant_id or 0)]


def build_agent_request(
    session: Session,
    agent_token: Optional[str],
    prompt: AgentPromptSpec,
    config: ClientConfig,
    pipeline: AgentPipeline,
) -> Dict[str, Any]:
    """Request body for ``POST /api/convo-ai/start``."""
    return {
        "name": session.channel_id,
        "properties": {
            "channel": session.channel_id,
            "token": agent_token,
            "agent_rtc_uid": str(session.agent_participant_id),
            "remote_rtc_uids": remote_participant_ids(session),
            "idle_timeout": pipeline.idle_timeout,
            "advanced_features": {
                "enable_aivad": True,
                "enable_mllm": False,
                "enable_rtm": False,
            },
            "asr": {"language": pipeline.asr_language},
            "llm": {
                "url": pipeline.llm_url,
                "api_key": config.groq_key,
                "system_messages": [
                    {"role": "system", "content": prompt.system_instruction}
                ],
                "greeting_message": prompt.greeting,
                "max_idle_time": pipeline.idle_timeout,
                "enable_greeting": prompt.enable_greeting,
                "failure_message": prompt.failure_message,
                "params": {"model": pipeline.llm_model},
            },
            "tts": {
                "vendor": TTS_VENDOR,
                "params": {
                    "url": TTS_URL,
                    "group_id": config.tts_minimax_group_id,
                    "key": config.tts_minimax_key,
                    "model": TTS_MODEL,
                    "voice_setting": dict(TTS_VOICE_SETTING),
                    "audio_setting": {"sample_rate": TTS_SAMPLE_RATE},
                },
                "skip_patterns": list(TTS_SKIP_PATTERNS),
            },
            # Audio-only; the avatar block stays so it can be switched on
            "avatar": {"vendor": "akool", "enable": False, "params": {}},
            "parameters": {
                "silence_config": {
                    "timeout_ms": pipeline.silence_timeout_ms,
                    "action": SILENCE_ACTION,
                    "content": SILENCE_CONTENT,
                }
            },
        },
    }
