"""Constants for the hosted triage agent and the spoken protocol."""

# Participant id reserved for the AI agent
AGENT_UID = 10001

# Seconds without activity before the hosted agent may end itself
IDLE_TIMEOUT_SECONDS = 120

# Silence policy: nudge the caller instead of ending the turn
SILENCE_TIMEOUT_MS = 15000
SILENCE_ACTION = "think"
SILENCE_CONTENT = "gently prompt user to continue"

ASR_LANGUAGE = "en-US"

LLM_FAILURE_MESSAGE = (
    "I'm sorry, I'm having technical difficulties. "
    "Please try again or consult a veterinarian directly."
)

# Calm, slightly slower voice for a medical context
TTS_VENDOR = "minimax"
TTS_URL = "wss://api.minimax.io/ws/v1/t2a_v2"
TTS_MODEL = "speech-2.6-turbo"
TTS_VOICE_SETTING = {
    "voice_id": "English_Calm_Female_8",
    "speed": 0.95,
    "vol": 1,
    "pitch": 0,
    "emotion": "calm",
}
TTS_SAMPLE_RATE = 16000
TTS_SKIP_PATTERNS = [3, 4]

# Local voice loop
LOCAL_TTS_VOICE = "nova"
LOCAL_TTS_MODEL = "tts-1"
ACKNOWLEDGMENT = "Thank you."
