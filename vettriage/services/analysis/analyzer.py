"""LLM-backed triage analysis for the proxy."""
import json
import logging
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI
from pydantic import ValidationError

from vettriage.core.errors import UpstreamError
from vettriage.services.agent.prompt import ANALYSIS_SYSTEM_PROMPT, get_analysis_prompt
from vettriage.services.session.models import TriageSummary

logger = logging.getLogger(__name__)


class TriageAnalyzer:
    """Classifies urgency from the intake answers.

    Raises UpstreamError(503) when no key is configured and
    UpstreamError(502) when the model call fails or returns something
    that is not a valid summary.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        model: str = "llama-3.3-70b-versatile",
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.client = client
        if self.client is None and api_key:
            self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def analyze(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self.client is None:
            raise UpstreamError(503, {"error": "Analysis LLM key not configured"})

        responses: List[Dict[str, Any]] = payload.get("responses") or []
        pet_info: Dict[str, Any] = payload.get("petInfo") or {}
        user_prompt = payload.get("prompt") or get_analysis_prompt(pet_info, responses)

        logger.info(f"[ANALYSIS] Analyzing {len(responses)} response(s) with {self.model}")
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=0.2,
                response_format={"type": "json_object"},
            )
            content = response.choices[0].message.content
        except Exception as e:
            logger.error(f"[ANALYSIS] LLM call failed: {type(e).__name__}: {e}")
            raise UpstreamError(502, {"error": "Triage analysis failed", "details": str(e)}) from e

        try:
            summary = TriageSummary.model_validate(json.loads(content or ""))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"[ANALYSIS] Malformed LLM output: {content!r}")
            raise UpstreamError(502, {"error": "Malformed analysis result"}) from e

        logger.info(f"[ANALYSIS] Urgency {summary.urgency.value}: {summary.reasoning}")
        return summary.to_wire()
