"""AI match collaborator backed by the OpenAI chat completions API"""

import json
import re
from typing import Optional

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from applyflow.core.config import settings
from applyflow.core.exceptions import ExternalServiceException
from applyflow.core.logging import get_logger
from applyflow.schemas.matching import ProfileSummary, JobDescription, MatchAnalysis

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an expert recruiter. Compare the candidate profile with the job "
    "description and answer with a JSON object containing: match_score (0.0 to 1.0), "
    "reasons (list of strings), concerns (list of strings) and recommendation (string)."
)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


def parse_match_response(content: str) -> MatchAnalysis:
    """
    Parse the model's answer into a MatchAnalysis

    Code fences are stripped and camelCase `matchScore` is accepted.

    Raises:
        ValueError: If the answer is not a usable JSON object
    """
    text = _FENCE.sub("", (content or "").strip()).strip()
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("match response is not a JSON object")
    if "match_score" not in data and "matchScore" in data:
        data["match_score"] = data.pop("matchScore")
    try:
        return MatchAnalysis.model_validate(data)
    except ValidationError as e:
        raise ValueError(str(e)) from e


class OpenAIJobMatcher:
    """Scores a profile against a job description with an LLM"""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: str = None):
        self.model = model or settings.OPENAI_MODEL
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        return self._client

    async def analyze_job_match(self, profile: ProfileSummary, job_description: JobDescription) -> MatchAnalysis:
        """
        Ask the model how well a profile fits a listing

        Args:
            profile: Candidate summary
            job_description: Listing summary

        Returns:
            MatchAnalysis with the score clamped to [0, 1]

        Raises:
            ExternalServiceException: On API errors or an unparseable answer
        """
        user_message = json.dumps({
            "profile": profile.model_dump(),
            "job": job_description.model_dump(),
        })

        logger.info(f"AI match: {job_description.title} at {job_description.company} via {self.model}")
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_message},
                ],
                temperature=0.2,
                max_tokens=800,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            raise ExternalServiceException("openai", str(e)) from e

        content = response.choices[0].message.content or "{}"
        try:
            return parse_match_response(content)
        except ValueError as e:
            raise ExternalServiceException("openai", f"Invalid match response: {e}") from e
