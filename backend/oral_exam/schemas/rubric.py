from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

CORRECT_THRESHOLD = 80
PARTIAL_THRESHOLD = 50

DIMENSIONS = ("accuracy", "structure", "terminology", "logic", "alignment")


class Verdict(str, Enum):
    CORRECT = "correct"
    PARTIAL = "partial"
    WRONG = "wrong"


def verdict_for_score(score: float) -> Verdict:
    """The authoritative score -> verdict mapping."""
    if score >= CORRECT_THRESHOLD:
        return Verdict.CORRECT
    if score >= PARTIAL_THRESHOLD:
        return Verdict.PARTIAL
    return Verdict.WRONG


class RubricResult(BaseModel):
    accuracy: float = Field(0.0, ge=0.0, le=1.0)
    structure: float = Field(0.0, ge=0.0, le=1.0)
    terminology: float = Field(0.0, ge=0.0, le=1.0)
    logic: float = Field(0.0, ge=0.0, le=1.0)
    alignment: float = Field(0.0, ge=0.0, le=1.0)
    per_question_score_0_100: int = 0
    verdict: Verdict = Verdict.WRONG
    short_explanation_he: str = ""

    @field_validator(*DIMENSIONS, mode="before")
    @classmethod
    def clamp_dimension(cls, value):
        value = float(value)
        return min(max(value, 0.0), 1.0)

    @field_validator("per_question_score_0_100", mode="before")
    @classmethod
    def clamp_score(cls, value):
        value = round(float(value))
        return min(max(value, 0), 100)

    @model_validator(mode="after")
    def derive_verdict(self):
        # The verdict is always re-derived from the score
        self.verdict = verdict_for_score(self.per_question_score_0_100)
        return self

    @classmethod
    def zero(cls, explanation: str) -> "RubricResult":
        return cls(per_question_score_0_100=0, short_explanation_he=explanation)
