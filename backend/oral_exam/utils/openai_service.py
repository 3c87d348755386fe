import json
import logging
import re
from typing import Any, Dict, List, Optional

from openai import AsyncAzureOpenAI
from pydantic import ValidationError

from ..core.config import settings
from ..core.exceptions import ProviderError
from ..schemas.rubric import RubricResult

logger = logging.getLogger(__name__)

JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")

SCORING_PROMPT = """
You are grading a Hebrew oral exam answer for an academic course on AI Applications in Business.

Question: {question}

Expected Answer (for reference): {sample_answer}

Student's Answer (transcribed): {student_answer}

Grade on a scale of 0-100 based on these 5 dimensions:

1. Accuracy (0-1): Is the answer factually correct?
2. Structure (0-1): Is the answer well-organized and logical?
3. Terminology (0-1): Does the student use correct technical terms?
4. Logic (0-1): Is the reasoning sound and coherent?
5. Alignment (0-1): Does the answer address the question directly?

Based on the overall score:
- 80-100: verdict = "correct"
- 50-79: verdict = "partial"
- 0-49: verdict = "wrong"

Return the response in this EXACT JSON format with no extra text:
{{
    "accuracy": 0.85,
    "structure": 0.75,
    "terminology": 0.90,
    "logic": 0.80,
    "alignment": 0.95,
    "per_question_score_0_100": 85,
    "verdict": "correct",
    "short_explanation_he": "תשובה מצוינת. הסטודנט הראה הבנה טובה של הנושא והשתמש במונחים נכונים."
}}"""


class OpenAIService:
    """Rubric scoring of transcribed answers (Azure OpenAI chat completions)."""

    def __init__(self):
        self.client: Optional[AsyncAzureOpenAI] = self._initialize_client()

    def _initialize_client(self) -> Optional[AsyncAzureOpenAI]:
        if not settings.azure_openai_endpoint or not settings.azure_openai_api_key:
            logger.warning("Azure OpenAI not configured (endpoint/api_key missing). Scoring disabled.")
            return None
        return AsyncAzureOpenAI(
            api_version=settings.azure_openai_api_version,
            azure_endpoint=settings.azure_openai_endpoint,
            api_key=settings.azure_openai_api_key,
        )

    def _parse_json_response(self, response: Optional[str]) -> Dict[str, Any]:
        """JSON object from the model output; falls back to the first ``{...}`` block."""
        if not response:
            raise ProviderError("Empty response from scoring model")
        try:
            return json.loads(response)
        except json.JSONDecodeError:
            match = JSON_BLOCK_RE.search(response)
            if match:
                try:
                    return json.loads(match.group(0))
                except json.JSONDecodeError:
                    pass
        raise ProviderError(f"Scoring model returned invalid JSON: {response[:200]}")

    async def _generate_chat_completion(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 1024,
        temperature: float = 0.2,
    ) -> Optional[str]:
        if not self.client:
            raise ProviderError("Scoring is not configured")
        try:
            response = await self.client.chat.completions.create(
                model=settings.azure_openai_deployment,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            raise ProviderError(f"Scoring request failed: {e}") from e
        return response.choices[0].message.content

    async def score_answer(self, question: str, sample_answer: str, transcript: str) -> RubricResult:
        prompt = SCORING_PROMPT.format(
            question=question,
            sample_answer=sample_answer or "",
            student_answer=transcript,
        )
        messages = [{"role": "user", "content": prompt}]
        response = await self._generate_chat_completion(messages, temperature=settings.scoring_temperature)
        data = self._parse_json_response(response)

        try:
            return RubricResult(**data)
        except (ValidationError, TypeError, ValueError) as e:
            raise ProviderError(f"Invalid rubric result: {e}") from e


openai_service = OpenAIService()
