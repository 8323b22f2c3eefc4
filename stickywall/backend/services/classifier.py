"""
Moderation Classifier.

Asks a vision-capable model whether a note image belongs on the wall and
normalizes its free-form answer.

The model is told to reply with a bare JSON object, but replies are not
trusted to comply. Every reply becomes one of three outcomes:

    Structured   - a JSON object with a valid decision and confidence
    Heuristic    - anything else; "APPROVED" anywhere in the text approves,
                   with a fixed confidence of 0.5
    Unavailable  - the call failed (error, timeout, open breaker)

All three fold into a ModerationVerdict through `to_verdict`. Unavailable
fails closed: not approved, confidence 0, so the note waits for a human.

Call stack (outside-in): breaker → retry → "llm" semaphore → timeout → model.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Protocol

import aiobreaker
from pydantic_ai import Agent, BinaryContent, ImageUrl
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from stickywall.backend.core.concurrency import get_semaphore
from stickywall.backend.core.config_schema import ClassifierSchema
from stickywall.backend.core.logging import get_logger
from stickywall.backend.core.resilience import create_circuit_breaker, log_retry
from stickywall.backend.services.image_storage import decode_data_uri

logger = get_logger(__name__)

MODERATION_PROMPT = """You are a content moderator for a public community art wall called "Subway Therapy" where people leave anonymous sticky notes with drawings or handwritten messages.

Analyze this sticky note image and determine if it should be APPROVED or REJECTED.

APPROVE content that is:
- Personal expressions, feelings, or thoughts
- Supportive or encouraging messages
- Art, doodles, or creative drawings
- Neutral or positive statements
- Mild language or humor

REJECT content that contains:
- Explicit sexual content or nudity
- Graphic violence or gore
- Hate speech, slurs, or discriminatory content
- Direct threats or calls for violence
- Personal information (phone numbers, addresses, etc.)
- Spam or advertising
- Illegal content

Respond with ONLY a JSON object in this exact format (no markdown, no code blocks):
{"decision": "APPROVED" or "REJECTED", "reason": "brief explanation", "confidence": 0.0-1.0}"""

HEURISTIC_CONFIDENCE = 0.5
HEURISTIC_REASON = "Could not parse structured response"
UNAVAILABLE_REASON = "AI moderation unavailable - requires manual review"

DECISIONS = ("APPROVED", "REJECTED")


# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True)
class Structured:
    decision: str
    reason: str
    confidence: float


@dataclass(frozen=True)
class Heuristic:
    approved_guess: bool
    confidence: float = HEURISTIC_CONFIDENCE


@dataclass(frozen=True)
class Unavailable:
    error: str | None = None


ClassifierOutcome = Structured | Heuristic | Unavailable


@dataclass(frozen=True)
class ModerationVerdict:
    approved: bool
    reason: str
    confidence: float
    input_tokens: int = 0
    output_tokens: int = 0
    outcome: str = "structured"

    @property
    def available(self) -> bool:
        return self.outcome != "unavailable"


def to_verdict(outcome: ClassifierOutcome, input_tokens: int = 0, output_tokens: int = 0) -> ModerationVerdict:
    """Fold any classifier outcome into a verdict."""
    if isinstance(outcome, Structured):
        return ModerationVerdict(
            approved=outcome.decision == "APPROVED",
            reason=outcome.reason,
            confidence=outcome.confidence,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            outcome="structured",
        )
    if isinstance(outcome, Heuristic):
        return ModerationVerdict(
            approved=outcome.approved_guess,
            reason=HEURISTIC_REASON,
            confidence=outcome.confidence,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            outcome="heuristic",
        )
    return ModerationVerdict(
        approved=False,
        reason=UNAVAILABLE_REASON,
        confidence=0.0,
        outcome="unavailable",
    )


# =============================================================================
# Response parsing
# =============================================================================


def extract_first_json_object(text: str) -> str | None:
    """Return the first balanced {...} substring, ignoring braces inside strings."""
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def _structured_from(data: object) -> Structured | None:
    if not isinstance(data, dict):
        return None

    decision = data.get("decision")
    if not isinstance(decision, str) or decision.strip().upper() not in DECISIONS:
        return None

    confidence = data.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        return None

    reason = data.get("reason")
    return Structured(
        decision=decision.strip().upper(),
        reason=reason if isinstance(reason, str) else "",
        confidence=min(max(float(confidence), 0.0), 1.0),
    )


def parse_classifier_response(text: str) -> Structured | Heuristic:
    """Interpret a raw model reply. Code fences and surrounding prose are tolerated."""
    candidate = extract_first_json_object(text)
    if candidate is not None:
        try:
            structured = _structured_from(json.loads(candidate))
        except json.JSONDecodeError:
            structured = None
        if structured is not None:
            return structured

    return Heuristic(approved_guess="APPROVED" in text.upper())


def calculate_moderation_cost(
    input_tokens: int,
    output_tokens: int,
    input_price_per_million: float = 0.08,
    output_price_per_million: float = 0.30,
) -> float:
    """Estimated cost of one classification in dollars."""
    input_cost = (input_tokens / 1_000_000) * input_price_per_million
    output_cost = (output_tokens / 1_000_000) * output_price_per_million
    return input_cost + output_cost


# =============================================================================
# Model invocation
# =============================================================================


@dataclass(frozen=True)
class GenerationResult:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


class VisionGenerator(Protocol):
    """Single-shot image + prompt → text capability."""

    async def generate(self, image: str, prompt: str) -> GenerationResult: ...


class PydanticAIGenerator:
    """VisionGenerator backed by a PydanticAI agent."""

    def __init__(self, model: str) -> None:
        self.model = model
        self._agent: Agent[None, str] | None = None

    def _get_agent(self) -> Agent[None, str]:
        if self._agent is None:
            self._agent = Agent(self.model, output_type=str, defer_model_check=True)
            logger.info("Moderation agent initialized", extra={"model": self.model})
        return self._agent

    @staticmethod
    def _image_content(image: str) -> BinaryContent | ImageUrl:
        if image.startswith("data:"):
            decoded = decode_data_uri(image)
            return BinaryContent(data=decoded.data, media_type=decoded.content_type)
        return ImageUrl(url=image)

    async def generate(self, image: str, prompt: str) -> GenerationResult:
        result = await self._get_agent().run([self._image_content(image), prompt])
        usage = result.usage()
        return GenerationResult(
            text=result.output,
            input_tokens=usage.input_tokens or 0,
            output_tokens=usage.output_tokens or 0,
        )


class ModerationClassifier:
    """
    Classifies note images. Never raises: every failure becomes Unavailable.

    Hold one instance per process so the circuit breaker state is shared.
    """

    def __init__(
        self,
        generator: VisionGenerator,
        *,
        timeout_seconds: float = 20.0,
        max_attempts: int = 2,
        breaker: aiobreaker.CircuitBreaker | None = None,
        prompt: str = MODERATION_PROMPT,
    ) -> None:
        self.generator = generator
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.breaker = breaker or create_circuit_breaker("classifier")
        self.prompt = prompt
        self._generate_with_retry = retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            retry=retry_if_exception_type((ConnectionError, TimeoutError)),
            before_sleep=log_retry,
            reraise=True,
        )(self._generate_once)

    async def _generate_once(self, image: str) -> GenerationResult:
        async with get_semaphore("llm"):
            async with asyncio.timeout(self.timeout_seconds):
                return await self.generator.generate(image, self.prompt)

    async def classify(self, image: str) -> ModerationVerdict:
        try:
            generation = await self.breaker.call_async(self._generate_with_retry, image)
        except Exception as e:
            logger.warning(
                "Moderation classifier unavailable",
                extra={"error_type": type(e).__name__, "error": str(e)},
            )
            return to_verdict(Unavailable(error=str(e)))

        outcome = parse_classifier_response(generation.text.strip())
        verdict = to_verdict(outcome, generation.input_tokens, generation.output_tokens)

        logger.info(
            "Moderation verdict",
            extra={
                "approved": verdict.approved,
                "confidence": verdict.confidence,
                "outcome": verdict.outcome,
                "input_tokens": verdict.input_tokens,
                "output_tokens": verdict.output_tokens,
                "cost": calculate_moderation_cost(verdict.input_tokens, verdict.output_tokens),
            },
        )
        return verdict


def create_moderation_classifier(config: ClassifierSchema) -> ModerationClassifier:
    """Build the process-wide classifier from moderation.yaml."""
    breaker = create_circuit_breaker(
        "classifier",
        fail_max=config.circuit_breaker.fail_max,
        timeout_duration=config.circuit_breaker.timeout_duration,
    )
    return ModerationClassifier(
        PydanticAIGenerator(config.model),
        timeout_seconds=config.timeout_seconds,
        max_attempts=config.max_attempts,
        breaker=breaker,
    )
