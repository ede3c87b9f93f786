"""The fixed intake question list."""
from dataclasses import dataclass
from typing import List, Sequence

from vettriage.services.session.models import Subject


@dataclass(frozen=True)
class IntakeQuestion:
    """One question of the triage protocol; ``{pet_name}`` is filled per session."""

    ordinal: int
    topic: str
    template: str

    def render(self, subject: Subject) -> str:
        return self.template.format(pet_name=subject.name)


INTAKE_QUESTIONS: Sequence[IntakeQuestion] = (
    IntakeQuestion(
        1,
        "identity",
        "Let's start with some basic information. "
        "Can you tell me {pet_name}'s breed and confirm their name for me?",
    ),
    IntakeQuestion(
        2,
        "spay_neuter",
        "Is {pet_name} spayed or neutered? This helps me understand certain health risks.",
    ),
    IntakeQuestion(
        3,
        "conditions",
        "Does {pet_name} have any existing medical conditions "
        "or chronic health issues I should know about?",
    ),
    IntakeQuestion(
        4,
        "medications",
        "Is {pet_name} currently taking any medications, supplements, or special treatments?",
    ),
    IntakeQuestion(
        5,
        "complaint",
        "Now, what is the main concern that brought you here today? "
        "Can you describe the specific symptoms or behaviors you've noticed with {pet_name}?",
    ),
)


def render_questions(subject: Subject, questions: Sequence[IntakeQuestion] = INTAKE_QUESTIONS) -> List[str]:
    """Prompts in protocol order."""
    return [q.render(subject) for q in sorted(questions, key=lambda q: q.ordinal)]
