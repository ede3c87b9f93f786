"""Shared test fixtures and configuration."""
import pytest
import os
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import Mock, AsyncMock

import httpx
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AGORA_APPID", "test-app-id")
os.environ.setdefault("AGORA_APPCERTIFICATE", "test-certificate")
os.environ.setdefault("AGORA_REST_KEY", "test-rest-key")
os.environ.setdefault("AGORA_REST_SECRET", "test-rest-secret")

from vettriage.main import app
from vettriage.core.dependencies import (
    get_convo_ai_client,
    get_record_store,
    get_token_broker,
    get_triage_analyzer,
    get_tts_service,
)
from vettriage.db.models import Base
from vettriage.services.analysis.analyzer import TriageAnalyzer
from vettriage.services.convo_ai.client import ConvoAIClient
from vettriage.services.persistence.sessions import (
    DatabaseSessionRecordStore,
    InMemorySessionRecordStore,
)
from vettriage.services.proxy.client import ProxyClient
from vettriage.services.intake.listening import ListeningConfig, ListeningWindow
from vettriage.services.intake.questions import render_questions
from vettriage.services.intake.sequencer import (
    LocalQuestionSequencer,
    SequencerTimings,
    TranscriptBuffer,
)
from vettriage.services.intake.voice import RecordingVoiceOutput
from vettriage.services.speech.tts import TextToSpeechService
from vettriage.services.tokens.broker import TokenBroker


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

AGORA_API_BASE = "https://agora.test/api/conversational-ai-agent/v2"

VALID_ANALYSIS = {
    "urgencyLevel": "High",
    "urgencyReason": "Labored breathing reported",
    "keyFindings": ["Breathing difficulty since this morning"],
    "recommendations": ["Go to an emergency clinic now"],
    "followUpActions": ["Call ahead to the clinic"],
    "spokenSummary": "Max needs to be seen right away. Please head to an emergency clinic.",
}


class FakeProxy:
    """Serves canned proxy responses over httpx.MockTransport and records requests.

    Responses for a route are consumed in order; the last one repeats.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], List[Tuple[int, Any]]] = {}

    def add(self, method: str, path: str, status: int = 200, body: Any = None) -> "FakeProxy":
        self.routes.setdefault((method.upper(), path), []).append((status, body))
        return self

    def replace(self, method: str, path: str, status: int = 200, body: Any = None) -> "FakeProxy":
        self.routes[(method.upper(), path)] = [(status, body)]
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"error": "no route"})
        status, body = queue[0] if len(queue) == 1 else queue.pop(0)
        if isinstance(body, Exception):
            raise body
        if isinstance(body, bytes):
            return httpx.Response(status, content=body)
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body if body is not None else {})

    def count(self, method: str, path: str) -> int:
        return sum(
            1 for r in self.requests if r.method == method.upper() and r.url.path == path
        )

    def client(self) -> ProxyClient:
        http = httpx.AsyncClient(
            base_url="http://proxy.test", transport=httpx.MockTransport(self.handler)
        )
        return ProxyClient("http://proxy.test", client=http)

    def happy_path(self, agent_id: str = "agent-1") -> "FakeProxy":
        self.add("GET", "/config", body={"AGORA_APPID": "test-app-id", "GROQ_KEY": "gsk-test"})
        self.add("GET", "/api/token", body={"token": "rtc-token"})
        self.add("POST", "/api/convo-ai/start", body={"agent_id": agent_id, "status": "RUNNING"})
        self.add("POST", f"/api/convo-ai/agents/{agent_id}/leave", body={})
        self.add("POST", "/api/analyze-triage", body=VALID_ANALYSIS)
        self.add("POST", "/api/openai-tts", body=b"ID3fake-mp3")
        return self


@pytest.fixture
def fake_proxy():
    """Proxy fake with the happy-path routes installed."""
    return FakeProxy().happy_path()


@pytest.fixture
def proxy_client(fake_proxy):
    return fake_proxy.client()


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    return async_sessionmaker(test_db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(test_session_factory):
    """Create test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def db_record_store(test_session_factory):
    return DatabaseSessionRecordStore(test_session_factory)


@pytest.fixture
def memory_record_store():
    return InMemorySessionRecordStore()


@pytest.fixture
def fake_signer():
    """Deterministic token signer that records its arguments."""
    calls = []

    def _sign(app_id, certificate, channel, uid, role, expires_ts):
        calls.append((app_id, certificate, channel, uid, role, expires_ts))
        return f"tok:{channel}:{uid}:{role}:{expires_ts}"

    _sign.calls = calls
    return _sign


@pytest.fixture
def token_broker(fake_signer):
    return TokenBroker("test-app-id", "test-certificate", lifetime_seconds=3600, signer=fake_signer)


class FakeAgora:
    """Agora Conversational AI REST upstream served by httpx.MockTransport."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.responses: Dict[Tuple[str, str], Tuple[int, Any]] = {}

    def set(self, method: str, path: str, status: int, body: Any) -> None:
        self.responses[(method, f"/api/conversational-ai-agent/v2/projects/test-app-id{path}")] = (
            status,
            body,
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.responses.get(
            (request.method, request.url.path), (404, {"detail": "not found"})
        )
        return httpx.Response(status, json=body)

    def client(self, app_id: Optional[str] = "test-app-id") -> ConvoAIClient:
        return ConvoAIClient(
            app_id,
            "test-rest-key",
            "test-rest-secret",
            api_base=AGORA_API_BASE,
            client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)),
        )


@pytest.fixture
def fake_agora():
    return FakeAgora()


@pytest.fixture
def mock_openai():
    """Mock OpenAI API client."""
    mock_client = Mock()
    mock_completion = Mock()
    mock_completion.choices = [
        Mock(message=Mock(content='{"urgencyLevel": "low", "urgencyReason": "Mild itching"}'))
    ]
    mock_client.chat.completions.create = AsyncMock(return_value=mock_completion)
    mock_client.audio.speech.create = AsyncMock(return_value=Mock(content=b"ID3audio"))
    return mock_client


@pytest.fixture
def test_client(token_broker, fake_agora, mock_openai, memory_record_store):
    """Create FastAPI test client with overrides."""
    app.dependency_overrides[get_token_broker] = lambda: token_broker
    app.dependency_overrides[get_convo_ai_client] = lambda: fake_agora.client()
    app.dependency_overrides[get_triage_analyzer] = lambda: TriageAnalyzer(None, client=mock_openai)
    app.dependency_overrides[get_tts_service] = lambda: TextToSpeechService(None, client=mock_openai)
    app.dependency_overrides[get_record_store] = lambda: memory_record_store

    client = TestClient(app)

    yield client

    app.dependency_overrides.clear()


class ScriptedCaller:
    """Pet owner who answers each spoken intake question.

    ``answers`` holds, per question in order, the transcript text to push
    (a str), ``True`` for voice with no transcript, or ``None`` to stay
    silent. Voice lasts ``voice_polls`` level reads, then goes quiet.
    """

    def __init__(self, answers, transcripts=None, voice_polls: int = 3):
        self.answers = list(answers)
        self.transcripts = transcripts
        self.voice_polls = voice_polls
        self.asked = 0
        self._remaining = 0
        self._pending_text = None

    def question_asked(self) -> None:
        answer = self.answers[self.asked] if self.asked < len(self.answers) else None
        self.asked += 1
        self._remaining = self.voice_polls if answer is not None else 0
        self._pending_text = answer if isinstance(answer, str) else None

    def level(self) -> float:
        if self._pending_text and self.transcripts is not None:
            self.transcripts.push(self._pending_text)
            self._pending_text = None
        if self._remaining > 0:
            self._remaining -= 1
            return 80.0
        return 0.0


class CallerVoice(RecordingVoiceOutput):
    """Recording voice that cues the scripted caller when a question is spoken."""

    def __init__(self, caller: ScriptedCaller, prompts: List[str]):
        super().__init__()
        self.caller = caller
        self.prompts = set(prompts)

    async def speak(self, text, cancelled=None) -> bool:
        spoken = await super().speak(text, cancelled)
        if spoken and text in self.prompts:
            self.caller.question_asked()
        return spoken


FAST_LISTENING = ListeningConfig(silence_seconds=0.03, timeout_seconds=0.3, poll_interval=0.01)
NO_PAUSES = SequencerTimings(intro_pause=0, before_listen=0, after_answer=0)


def build_local_sequencer(subject, answers):
    """Local sequencer wired to a scripted caller with fast timings."""
    transcripts = TranscriptBuffer()
    caller = ScriptedCaller(answers, transcripts)
    voice = CallerVoice(caller, render_questions(subject))
    sequencer = LocalQuestionSequencer(
        voice,
        ListeningWindow(caller.level, FAST_LISTENING),
        timings=NO_PAUSES,
        transcripts=transcripts,
    )
    return sequencer, voice, caller


@pytest.fixture
def local_intake():
    """Factory for a local sequencer driven by a scripted caller."""
    return build_local_sequencer
