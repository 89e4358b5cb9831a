from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional, Protocol

import httpx

from firstaid.core.config import Settings
from firstaid.core.errors import EnhancementError, IncompleteAssessment
from firstaid.models.schemas import Assessment, GuidanceResult, Priority
from firstaid.services.triage import compute_guidance, needs_cpr

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an emergency first aid assistant for road accidents. "
    "Respond with ONLY a JSON object, no markdown."
)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")


class EnhancementProvider(Protocol):
    async def enhance(self, assessment: Assessment) -> GuidanceResult:
        ...


def _yes_no(value: Optional[bool]) -> str:
    return "Yes" if value else "No"


def build_prompt(assessment: Assessment, ambulance: str = "108") -> str:
    show_cpr = needs_cpr(assessment)
    priority = compute_guidance(assessment, ambulance).priority.value
    rules = [
        "Give ONLY basic first aid steps a non-medical person can do",
        "Use very simple, clear language",
        "NEVER suggest any medicines or dosages",
        "NEVER provide medical diagnosis",
        "Each instruction should be one short sentence",
        f"Always remind to call emergency services ({ambulance})",
    ]
    if show_cpr:
        rules.append("This patient needs CPR - mention this is critical but they should only perform if trained")
    if assessment.has_heavy_bleeding:
        rules.append("Focus on controlling bleeding with direct pressure")
    numbered = "\n".join(f"{i}. {rule}" for i, rule in enumerate(rules, start=1))
    return (
        "Based on the following patient assessment, provide 4-5 clear, simple first aid "
        "instructions that a bystander can follow.\n\n"
        "Patient Assessment:\n"
        f"- Conscious: {_yes_no(assessment.is_conscious)}\n"
        f"- Breathing normally: {_yes_no(assessment.is_breathing)}\n"
        f"- Heavy bleeding: {_yes_no(assessment.has_heavy_bleeding)}\n\n"
        f"IMPORTANT RULES:\n{numbered}\n\n"
        "Respond with ONLY a JSON object in this exact format (no markdown, no code blocks):\n"
        '{"instructions": ["instruction 1", "instruction 2", "instruction 3", "instruction 4"], '
        f'"priority": "{priority}"}}'
    )


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", cleaned))
    return cleaned


def parse_guidance(text: str, assessment: Assessment) -> GuidanceResult:
    """Turn a model reply into a GuidanceResult or raise EnhancementError."""
    try:
        data = json.loads(strip_code_fences(text))
    except ValueError as exc:
        raise EnhancementError("model reply is not valid JSON") from exc
    if not isinstance(data, dict):
        raise EnhancementError("model reply is not a JSON object")

    raw = data.get("instructions")
    if not isinstance(raw, list):
        raise EnhancementError("model reply has no instruction list")
    instructions = [item.strip() for item in raw if isinstance(item, str) and item.strip()]
    if not instructions:
        raise EnhancementError("model reply has no usable instructions")

    priority_text = data.get("priority")
    if priority_text is None:
        priority = compute_guidance(assessment).priority
    else:
        try:
            priority = Priority(str(priority_text).strip().lower())
        except ValueError as exc:
            raise EnhancementError(f"unknown priority {priority_text!r}") from exc

    # The CPR flag is decided by the answers, not by the model
    return GuidanceResult(instructions=instructions, show_cpr=needs_cpr(assessment), priority=priority)


def _message_text(data: Any) -> str:
    try:
        return (data["choices"][0]["message"]["content"] or "").strip()
    except (KeyError, IndexError, TypeError) as exc:
        raise EnhancementError("unexpected completion payload") from exc


class DeepSeekEnhancer:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.deepseek.com/v1",
        model: str = "deepseek-chat",
        timeout: float = 20.0,
        ambulance: str = "108",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.timeout = timeout
        self.ambulance = ambulance
        self._transport = transport

    async def enhance(self, assessment: Assessment) -> GuidanceResult:
        if not assessment.is_complete:
            raise IncompleteAssessment(q.value for q in assessment.missing)
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(assessment, self.ambulance)},
            ],
            "temperature": 0.2,
            "max_tokens": 400,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post("/chat/completions", json=body, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise EnhancementError(f"DeepSeek request failed: {exc}") from exc
        return parse_guidance(_message_text(data), assessment)


class OpenAIEnhancer:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        timeout: float = 20.0,
        ambulance: str = "108",
        client: Any = None,
    ):
        if client is None:
            from openai import AsyncOpenAI

            client = AsyncOpenAI(api_key=api_key, timeout=timeout)
        self._client = client
        self.model = model
        self.ambulance = ambulance

    async def enhance(self, assessment: Assessment) -> GuidanceResult:
        if not assessment.is_complete:
            raise IncompleteAssessment(q.value for q in assessment.missing)
        try:
            resp = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(assessment, self.ambulance)},
                ],
                max_tokens=400,
                temperature=0.2,
            )
            text = resp.choices[0].message.content or ""
        except Exception as exc:
            raise EnhancementError(f"OpenAI request failed: {exc}") from exc
        return parse_guidance(text, assessment)


def build_enhancer(settings: Settings) -> Optional[EnhancementProvider]:
    # Prefer DeepSeek if configured, then OpenAI, then local rules only
    if settings.offline_mode:
        return None
    if settings.deepseek_api_key:
        return DeepSeekEnhancer(
            api_key=settings.deepseek_api_key,
            base_url=settings.deepseek_base_url,
            model=settings.deepseek_model,
            timeout=settings.enhancement_timeout,
            ambulance=settings.ambulance_number,
        )
    if settings.openai_api_key:
        return OpenAIEnhancer(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            timeout=settings.enhancement_timeout,
            ambulance=settings.ambulance_number,
        )
    logger.info("no AI provider configured, guidance will be local only")
    return None
