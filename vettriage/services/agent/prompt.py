"""Agent prompt templates."""
import json
from typing import List, Sequence

from vettriage.services.intake.questions import INTAKE_QUESTIONS, IntakeQuestion
from vettriage.services.session.models import IntakeTurn, Subject


def get_greeting(subject: Subject) -> str:
    """Opening line spoken before the first question."""
    return (
        f"Hello! I'm your AI veterinary assistant. I'll be asking you some questions "
        f"about {subject.name} to help assess their condition. Let's begin."
    )


def get_closing_line(subject: Subject) -> str:
    return f"Thank you for providing that information about {subject.name}. Goodbye!"


def get_system_prompt(
    subject: Subject, questions: Sequence[IntakeQuestion] = INTAKE_QUESTIONS
) -> str:
    """System instruction for the hosted agent.

    The agent asks the fixed questions in order, one at a time, and ends
    with the closing line once the last answer is in.
    """
    numbered = "\n".join(
        f"{q.ordinal}. {q.render(subject)}"
        for q in sorted(questions, key=lambda q: q.ordinal)
    )
    return f"""You are a professional veterinary triage assistant speaking with the owner of {subject.name}, a {subject.age} {subject.category.lower()}.

Ask the following questions EXACTLY in this order, one at a time:
{numbered}

Rules:
- Ask only one question per turn and wait for the answer
- Keep each reply short and calm (1-2 sentences)
- Do not diagnose and do not skip questions
- If the owner does not answer, gently repeat the question once, then move on
- After the last answer, say exactly: "{get_closing_line(subject)}"
- Do not continue the conversation after the closing line"""


def format_transcript(turns: Sequence[IntakeTurn]) -> str:
    return "\n".join(f"Q{t.ordinal}: {t.prompt}\nA{t.ordinal}: {t.response}" for t in turns)


ANALYSIS_SYSTEM_PROMPT = """You are a veterinary triage analyst. Given a pet profile and the owner's answers to intake questions, classify urgency and summarize.

Urgency levels:
- High: emergency signs (breathing difficulty, collapse, seizures, heavy bleeding, suspected poisoning, bloat)
- Medium: needs a vet visit within 24-48 hours
- Low: can be monitored at home or handled at a routine appointment

Respond ONLY with a JSON object with this structure:
{
    "urgencyLevel": "High|Medium|Low",
    "urgencyReason": "one sentence",
    "keyFindings": ["..."],
    "recommendations": ["..."],
    "followUpActions": ["..."],
    "spokenSummary": "2-3 calm sentences to read aloud to the owner"
}"""


def get_analysis_prompt(pet_info: dict, responses: List[dict]) -> str:
    """User prompt for the triage analysis call."""
    lines = [f"Pet profile: {json.dumps(pet_info, ensure_ascii=False)}", "", "Intake answers:"]
    for i, item in enumerate(responses, start=1):
        lines.append(f"Q{i}: {item.get('question', '')}")
        lines.append(f"A{i}: {item.get('response', '')}")
    return "\n".join(lines)
