"""Turn the intake answers into a triage summary."""
import logging
from typing import Any, Dict, Optional, Sequence

from pydantic import ValidationError

from vettriage.core.errors import AnalysisUnavailable
from vettriage.services.agent.prompt import get_analysis_prompt
from vettriage.services.proxy.client import ProxyClient
from vettriage.services.session.models import IntakeTurn, Subject, TriageSummary, Urgency

logger = logging.getLogger(__name__)

FALLBACK_REASON = "Unable to analyze - recommend veterinary consultation"
FALLBACK_SPOKEN = (
    "I have collected your information but cannot provide a detailed analysis "
    "at this time. I recommend contacting your veterinarian for a proper "
    "assessment of your pet's condition."
)


def fallback_summary() -> TriageSummary:
    """Deterministic summary used whenever analysis is unavailable."""
    return TriageSummary(
        urgency=Urgency.MEDIUM,
        reasoning=FALLBACK_REASON,
        findings=["Triage information collected", "Analysis system unavailable"],
        recommendations=["Contact your veterinarian for proper assessment"],
        follow_ups=["Schedule veterinary appointment", "Monitor pet closely"],
        spoken_digest=FALLBACK_SPOKEN,
        is_fallback=True,
    )


def pet_info(subject: Subject) -> Dict[str, Any]:
    return {
        "name": subject.name,
        "typeName": subject.category,
        "age": subject.age,
        "emoji": subject.emoji,
    }


def build_analysis_request(subject: Subject, turns: Sequence[IntakeTurn]) -> Dict[str, Any]:
    responses = [
        {
            "questionNumber": t.ordinal,
            "question": t.prompt,
            "response": t.response,
            "timestamp": t.captured_at.isoformat(),
        }
        for t in sorted(turns, key=lambda t: t.ordinal)
    ]
    info = pet_info(subject)
    return {
        "prompt": get_analysis_prompt(info, responses),
        "petInfo": info,
        "responses": responses,
    }


class TriageSummarizer:
    """Calls the analysis endpoint; never raises to its caller."""

    def __init__(self, proxy: ProxyClient):
        self.proxy = proxy

    async def generate_summary(
        self, turns: Sequence[IntakeTurn], subject: Optional[Subject] = None
    ) -> TriageSummary:
        payload = build_analysis_request(subject or Subject(), turns)
        try:
            result = await self.proxy.analyze_triage(payload)
            summary = TriageSummary.model_validate(result)
        except AnalysisUnavailable as e:
            logger.error(f"[SUMMARY] Analysis unavailable, using fallback: {e}")
            return fallback_summary()
        except ValidationError as e:
            logger.error(f"[SUMMARY] Malformed analysis result, using fallback: {e}")
            return fallback_summary()
        except Exception as e:
            logger.error(
                f"[SUMMARY] Unexpected analysis error, using fallback: {type(e).__name__}: {e}",
                exc_info=True,
            )
            return fallback_summary()

        logger.info(f"[SUMMARY] Triage urgency: {summary.urgency.value}")
        return summary
