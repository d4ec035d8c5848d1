"""
Description Generation Service

Produces a one or two sentence description for each uploaded package.
Existing authored descriptions always win. Otherwise an OpenAI chat
completion is requested; any error, timeout or too-short answer falls back
to a rule-based description built from the title and the content sample.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Protocol, Sequence, Tuple

from openai import AsyncOpenAI

from app.config import Settings, get_settings
from app.models.package import UNTITLED
from app.services.exceptions import DescriptionGenerationError
from app.utils.feature_flags import is_feature_enabled

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 10
PROMPT_CONTENT_PREVIEW = 800

SYSTEM_PROMPT = (
    "You are an educational content specialist who writes engaging course "
    "descriptions for e-learning platforms. Write unique, specific "
    "descriptions that highlight what makes each course valuable. Avoid "
    "generic phrases like \"learn concepts\" or \"master fundamentals\". "
    "Focus on practical outcomes, specific skills, and real-world "
    "applications. Keep it to 1-2 sentences."
)


@dataclass
class DescriptionRequest:
    title: str
    filename: Optional[str] = None
    contentSample: str = ""
    existingDescription: str = ""


@dataclass
class DescriptionResult:
    description: str
    fallback: bool = False


class DescriptionBackend(Protocol):
    async def complete(self, system_prompt: str, prompt: str) -> str:
        ...


class OpenAIDescriptionBackend:
    """Chat completion backend backed by the OpenAI API"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.openai_timeout,
            )
        return self._client

    async def complete(self, system_prompt: str, prompt: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.settings.openai_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self.settings.openai_max_tokens,
                temperature=self.settings.openai_temperature,
            )
        except Exception as e:
            raise DescriptionGenerationError(str(e)) from e

        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()


# Title rules, evaluated in order; the first match wins
TITLE_RULES: Sequence[Tuple[Pattern[str], str]] = tuple(
    (re.compile(pattern, re.IGNORECASE), template)
    for pattern, template in (
        # Programming and technical topics
        (r"javascript|\bjs\b",
         "Build dynamic web applications using JavaScript programming techniques{insights}."),
        (r"python",
         "Develop Python applications and automate tasks using modern programming practices{insights}."),
        (r"html|css",
         "Create responsive web pages with HTML and CSS styling techniques{insights}."),
        (r"react|angular|vue",
         "Build modern web applications using component-based frontend frameworks{insights}."),
        (r"sql|database",
         "Design and query databases effectively using SQL and data management principles{insights}."),
        # Business and professional topics
        (r"project.*management",
         "Learn project management methodologies and tools for successful project delivery{insights}."),
        (r"leadership|management",
         "Develop essential leadership skills and team management strategies for professional success{insights}."),
        (r"marketing|sales",
         "Master marketing strategies and sales techniques to drive business growth{insights}."),
        (r"communication|presentation",
         "Enhance communication skills and presentation techniques for professional effectiveness{insights}."),
        # Academic subjects
        (r"math|calculus|algebra",
         "Solve mathematical problems and apply quantitative reasoning to real-world scenarios{insights}."),
        (r"science|biology|chemistry",
         "Explore scientific principles and conduct experiments to understand natural phenomena{insights}."),
        (r"history|social",
         "Examine historical events and social dynamics to understand their impact on modern society{insights}."),
        (r"language|english|writing",
         "Improve language skills and written communication through structured learning activities{insights}."),
        # Health and safety
        (r"safety|health",
         "Implement safety protocols and health practices to create a secure work environment{insights}."),
        (r"compliance|regulation",
         "Understand regulatory requirements and compliance procedures for your industry{insights}."),
    )
)

# Content qualifiers appended to fallback descriptions (at most two)
CONTENT_INSIGHTS: Sequence[Tuple[Tuple[str, ...], str]] = (
    (("quiz", "question", "assessment"), "includes interactive assessments"),
    (("video", "multimedia"), "features multimedia content"),
    (("exercise", "practice", "activity"), "provides hands-on exercises"),
    (("certificate", "completion"), "offers completion certification"),
)

_GENERIC_WORDS = re.compile(r"course|training|module|lesson", re.IGNORECASE)


def content_insights(content_sample: str) -> str:
    if not content_sample or len(content_sample) <= 100:
        return ""

    content = content_sample.lower()
    insights: List[str] = [
        phrase for keywords, phrase in CONTENT_INSIGHTS
        if any(keyword in content for keyword in keywords)
    ]
    if not insights:
        return ""
    return " that " + " and ".join(insights[:2])


def generate_fallback_description(
    request: DescriptionRequest, default_description: Optional[str] = None
) -> str:
    """Rule-based description from title keywords and the content sample"""
    if not is_feature_enabled("description_fallback"):
        return ""

    default = default_description or get_settings().description_default
    insights = content_insights(request.contentSample)
    title = (request.title or "").strip()

    if title and title != UNTITLED and len(title) > 3:
        for pattern, template in TITLE_RULES:
            if pattern.search(title):
                return template.format(insights=insights)

        clean_title = re.sub(r"\s+", " ", _GENERIC_WORDS.sub("", title)).strip()
        if len(clean_title) > 2:
            return (
                f"Gain practical knowledge and skills in {clean_title} "
                f"through engaging learning activities{insights}."
            )

    return f"{default}{insights}."


def build_prompt(request: DescriptionRequest, default_description: str) -> str:
    prompt = "Write an engaging description for this SCORM e-learning course:\n\n"
    prompt += f'Course Title: "{request.title}"\n'

    if request.filename and request.filename != request.title:
        prompt += f'File Name: "{request.filename}"\n'

    if request.contentSample and len(request.contentSample) > 50:
        preview = request.contentSample[:PROMPT_CONTENT_PREVIEW]
        prompt += f'Course Content Preview:\n"{preview}"\n'

    existing = (request.existingDescription or "").strip()
    if existing and existing != default_description:
        prompt += f'Current Description: "{existing}"\n'

    prompt += (
        "\nRequirements:\n"
        "- Write a unique, specific description (avoid generic phrases)\n"
        "- Focus on what learners will actually DO or CREATE\n"
        "- Mention specific skills, tools, or outcomes when possible\n"
        "- Keep it professional but engaging (1-2 sentences)\n"
        "- Don't just repeat the title with \"learn\" or \"master\"\n"
        "\nDescription:"
    )
    return prompt


class DescriptionGenerator:
    """Description capability with existing-description shortcut and fallback"""

    def __init__(
        self,
        backend: Optional[DescriptionBackend] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.backend = backend
        if self.backend is None and self.settings.openai_enabled:
            self.backend = OpenAIDescriptionBackend(self.settings)

    def is_enabled(self) -> bool:
        return self.backend is not None and is_feature_enabled("ai_descriptions")

    def fallback(self, request: DescriptionRequest) -> DescriptionResult:
        return DescriptionResult(
            description=generate_fallback_description(
                request, self.settings.description_default
            ),
            fallback=True,
        )

    async def generate(self, request: DescriptionRequest) -> DescriptionResult:
        existing = (request.existingDescription or "").strip()
        if len(existing) > MIN_DESCRIPTION_LENGTH:
            logger.info(f'Using existing description for "{request.title}"')
            return DescriptionResult(description=existing)

        if not self.is_enabled():
            logger.info("Description backend not available, using fallback description")
            return self.fallback(request)

        prompt = build_prompt(request, self.settings.description_default)
        try:
            description = await asyncio.wait_for(
                self.backend.complete(SYSTEM_PROMPT, prompt),
                timeout=self.settings.openai_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f'Description request timed out for "{request.title}"')
            return self.fallback(request)
        except Exception as e:
            logger.warning(f'Description generation failed for "{request.title}": {e}')
            return self.fallback(request)

        description = (description or "").strip()
        if len(description) > MIN_DESCRIPTION_LENGTH:
            logger.info(
                f'Generated description for "{request.title}": {description[:80]}...'
            )
            return DescriptionResult(description=description)

        logger.info("Backend returned empty or short description, using fallback")
        return self.fallback(request)
