"""Answer generation through the hosted language model"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field, SecretStr, ValidationError

from ..config import Settings
from ..exceptions import UpstreamUnavailableError
from ..schemas.chat import Confidence, Source

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.5
FALLBACK_REASONING = "The model response was not valid structured output; confidence is a neutral default."
MAX_FILE_TEXT_CHARS = 4000
TEXT_CONTENT_TYPES = {"text/plain"}


class LanguageMode(str, Enum):
    PROFESSIONAL = "professional"
    REGULAR = "regular"
    SIMPLE = "simple"

    @classmethod
    def parse(cls, value: object) -> LanguageMode:
        """Unknown modes fall back to REGULAR; Finnish register names are accepted"""
        if isinstance(value, cls):
            return value
        s = str(value or "").strip().lower()
        s = _FINNISH_MODE_NAMES.get(s, s)
        try:
            return cls(s)
        except ValueError:
            return cls.REGULAR


_FINNISH_MODE_NAMES: dict[str, str] = {
    "ammattikieli": LanguageMode.PROFESSIONAL.value,
    "yleiskieli": LanguageMode.REGULAR.value,
    "selkokieli": LanguageMode.SIMPLE.value,
}


REGISTER_INSTRUCTIONS: dict[LanguageMode, str] = {
    LanguageMode.PROFESSIONAL: (
        "Write for a legal professional: precise terminology, full statute references "
        "and a formal tone."
    ),
    LanguageMode.REGULAR: (
        "Write for an adult without legal training: explain legal terms when you use them "
        "and keep a neutral, professional tone."
    ),
    LanguageMode.SIMPLE: (
        "Write in plain language (selkokieli): short sentences, everyday words, "
        "and no unexplained legal terms."
    ),
}

SYSTEM_PROMPT = """You are an AI legal assistant specializing in Finnish law (Suomen laki).
Your primary focus is helping users understand Finnish legal concepts, rights and obligations.

Key responsibilities:
1. Provide accurate information based on current Finnish legislation
2. Reference specific laws and regulations from Finlex when applicable
3. Include consumer protection guidelines from KKV (Kilpailu- ja kuluttajavirasto) when relevant
4. Express your confidence and the reasoning behind it
5. If you are unsure about something, say so and suggest consulting a legal professional

{register}

Respond with a JSON object of this shape and nothing else:
{{
  "answer": "your detailed response",
  "confidence": {{"score": number between 0 and 1, "reasoning": "why"}},
  "sources": [
    {{
      "title": "name of the law or guideline",
      "link": "URL of the source",
      "section": "specific section if applicable",
      "type": "finlex or kkv or other",
      "relevance": number between 0 and 1
    }}
  ]
}}"""

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class GeneratedAnswer(BaseModel):
    """Validated model output"""
    answer: str = Field(..., min_length=1)
    confidence: Confidence
    sources: list[Source] = []
    fallback: bool = False


@dataclass(frozen=True)
class FileSummary:
    filename: str
    content_type: str
    size: int
    text: str | None = None

    def describe(self) -> str:
        header = f"File: {self.filename} ({self.content_type}, {self.size} bytes)"
        if self.text:
            return f"{header}\n{self.text}"
        return header


def summarize_file(filename: str, content_type: str, data: bytes) -> FileSummary:
    """Plain-text files contribute their content; other files only their description"""
    text: str | None = None
    if str(content_type).lower() in TEXT_CONTENT_TYPES:
        text = data.decode("utf-8", errors="replace")[:MAX_FILE_TEXT_CHARS]
    return FileSummary(filename=filename, content_type=content_type, size=len(data), text=text)


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text") or ""))
        return "".join(parts)
    return str(content or "")


def parse_answer(raw: str) -> GeneratedAnswer:
    """Validate raw model text; anything that is not a well-formed answer object degrades to a fallback"""
    text = raw.strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        return GeneratedAnswer.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning("model output rejected, using fallback answer: %s", str(e).splitlines()[0])
        return GeneratedAnswer(
            answer=raw.strip(),
            confidence=Confidence(score=FALLBACK_CONFIDENCE, reasoning=FALLBACK_REASONING),
            sources=[],
            fallback=True,
        )


class AnswerGenerator:
    """Asks the language model for a structured answer"""

    def __init__(self, settings: Settings, *, llm: Any | None = None):
        self.settings = settings
        self.llm: Any | None = llm

    @property
    def configured(self) -> bool:
        return self.llm is not None or bool(self.settings.openai_api_key)

    def _get_llm(self) -> Any:
        if self.llm is None:
            if not self.settings.openai_api_key:
                raise UpstreamUnavailableError("AI service is not configured", error_code="AI_NOT_CONFIGURED")
            self.llm = ChatOpenAI(
                model=self.settings.ai_model,
                api_key=SecretStr(self.settings.openai_api_key),
                base_url=self.settings.openai_base_url,
                temperature=self.settings.ai_temperature,
            ).bind(response_format={"type": "json_object"})
        return self.llm

    def build_messages(
        self,
        question: str,
        context: str | None,
        file_summaries: list[FileSummary],
        language_mode: LanguageMode,
    ) -> list[BaseMessage]:
        messages: list[BaseMessage] = [
            SystemMessage(content=SYSTEM_PROMPT.format(register=REGISTER_INSTRUCTIONS[language_mode]))
        ]
        if context:
            messages.append(SystemMessage(content=f"Earlier legal context of this conversation:\n{context}"))

        user_parts: list[str] = [question] if question else ["Analyze the attached files."]
        if file_summaries:
            user_parts.append("Attached files:")
            user_parts.extend(f.describe() for f in file_summaries)
        messages.append(HumanMessage(content="\n\n".join(user_parts)))
        return messages

    async def generate(
        self,
        question: str,
        context: str | None = None,
        file_summaries: list[FileSummary] | None = None,
        language_mode: LanguageMode | str = LanguageMode.REGULAR,
    ) -> GeneratedAnswer:
        llm = self._get_llm()
        mode = LanguageMode.parse(language_mode)
        messages = self.build_messages(question, context, list(file_summaries or []), mode)

        try:
            response = await llm.ainvoke(messages)
        except Exception as e:
            logger.exception("language model call failed model=%s", self.settings.ai_model)
            raise UpstreamUnavailableError("AI service is temporarily unavailable") from e

        raw = _content_text(getattr(response, "content", response))
        if not raw.strip():
            raise UpstreamUnavailableError("Empty response from the language model")
        return parse_answer(raw)
