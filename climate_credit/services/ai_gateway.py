# climate_credit/services/ai_gateway.py

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar, Union

from climate_credit.core.config import Settings
from climate_credit.core.errors import ErrorKind, ProviderError
from climate_credit.schemas.ai import (
    AnalysisResult,
    ConfidenceLevel,
    ExtractedLoanFields,
    ExtractionPayload,
    ExtractionResult,
    GatewayFailure,
    ProviderAttempt,
)
from climate_credit.services.circuit_breaker import CircuitBreaker
from climate_credit.services.providers import LLMProvider, build_providers, describe_providers
from climate_credit.workflows.underwriting_prompts import (
    EXTRACTION_SYSTEM_PROMPT,
    LOAN_ANALYSIS_SYSTEM_PROMPT,
    build_extraction_prompt,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_TRANSCRIPT_CHARS = 20
MAX_LOAN_AMOUNT = 10_000_000
MAX_LOAN_TERM_MONTHS = 120

_json_decoder = json.JSONDecoder()


@dataclass
class GatewaySuccess(Generic[T]):
    provider: str
    model: str
    value: T


def attempt_in_order(
    providers: List[LLMProvider],
    call: Callable[[LLMProvider], T],
    breakers: Optional[Dict[str, CircuitBreaker]] = None,
) -> Union[GatewaySuccess[T], GatewayFailure]:
    """
    Try each provider strictly in order until one succeeds.

    Any failure moves on to the next provider except InvalidKey, which stops
    immediately. Returns a tagged failure instead of raising.
    """
    if not providers:
        return not_configured()

    breakers = breakers or {}
    attempts: List[ProviderAttempt] = []
    for provider in providers:
        breaker = breakers.get(provider.name)
        try:
            value = breaker.call(call, provider) if breaker else call(provider)
        except ProviderError as e:
            attempts.append(ProviderAttempt(provider=provider.name, reason=e.kind, message=e.message))
            if e.kind == ErrorKind.INVALID_KEY:
                logger.error("Provider %s rejected its API key; not falling back", provider.name)
                break
            logger.warning("Provider %s failed with %s: %s", provider.name, e.kind.value, e.message)
            continue
        except Exception as e:
            logger.exception("Provider %s raised an unexpected error", provider.name)
            attempts.append(ProviderAttempt(provider=provider.name, reason=ErrorKind.UPSTREAM_ERROR, message=str(e)))
            continue

        if attempts:
            logger.info("Fallback provider %s succeeded after %d failed attempt(s)", provider.name, len(attempts))
        return GatewaySuccess(provider=provider.name, model=provider.model, value=value)

    last = attempts[-1]
    return GatewayFailure(reason=last.reason, message=last.message, attempts=attempts)


def not_configured() -> GatewayFailure:
    return GatewayFailure(
        reason=ErrorKind.NOT_CONFIGURED,
        message="AI features not configured. Set ANTHROPIC_API_KEY, GROQ_API_KEY or GEMINI_API_KEY.",
    )


def find_first_json_object(text: str) -> Dict[str, Any]:
    """Locate and parse the first top-level JSON object in free text (fences, prose and all)."""
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = _json_decoder.raw_decode(text, start)
            return obj
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
    raise ValueError("No JSON object found in response")


def parse_extraction_payload(text: str, provider: str) -> ExtractionPayload:
    try:
        return ExtractionPayload.model_validate(find_first_json_object(text))
    except ValueError as e:
        # ValidationError is a ValueError too
        snippet = text[:200].replace("\n", " ")
        raise ProviderError(
            provider, ErrorKind.MALFORMED_RESPONSE, f"{provider}: unusable extraction response ({e.__class__.__name__}): {snippet}"
        ) from e


def validate_extracted_fields(fields: ExtractedLoanFields) -> Tuple[ExtractedLoanFields, List[str]]:
    """Sanity-check extracted values; implausible ages are dropped, repayment is clamped."""
    data = fields.model_copy()
    issues: List[str] = []

    if data.client_age is not None and not 18 <= data.client_age <= 100:
        issues.append("Age seems invalid")
        data.client_age = None

    if data.loan_amount is not None and not 0 < data.loan_amount <= MAX_LOAN_AMOUNT:
        issues.append("Loan amount seems invalid")

    if data.repayment_history is not None:
        data.repayment_history = min(100.0, max(0.0, data.repayment_history))

    if data.loan_term is not None and not 0 < data.loan_term <= MAX_LOAN_TERM_MONTHS:
        issues.append("Loan term seems invalid")

    return data, issues


def quality_score(confidence: Dict[str, ConfidenceLevel]) -> Tuple[float, ConfidenceLevel]:
    levels = list(confidence.values())
    total = len(levels) or 1
    high = sum(1 for c in levels if c == ConfidenceLevel.HIGH)
    medium = sum(1 for c in levels if c == ConfidenceLevel.MEDIUM)
    score = round((high * 1.0 + medium * 0.6) / total, 2)

    if score > 0.7:
        level = ConfidenceLevel.HIGH
    elif score > 0.4:
        level = ConfidenceLevel.MEDIUM
    else:
        level = ConfidenceLevel.LOW
    return score, level


class AIGateway:
    """
    Single capability surface over the configured language-model providers.

    Capability A: structured field extraction from a conversation transcript.
    Capability B: free-text underwriting rationale for an assessment.
    """

    def __init__(
        self,
        providers: Optional[List[LLMProvider]] = None,
        config: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        failure_threshold: int = 3,
        recovery_timeout: int = 45,
    ):
        self.providers = build_providers(config) if providers is None else list(providers)
        self.breakers = {
            p.name: CircuitBreaker(p.name, failure_threshold=failure_threshold, recovery_timeout=recovery_timeout)
            for p in self.providers
        }
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def is_configured(self) -> bool:
        return bool(self.providers)

    def extract_fields(self, transcript: Optional[str]) -> Union[ExtractionResult, GatewayFailure]:
        if not self.is_configured:
            return not_configured()

        if not transcript or len(transcript.strip()) < MIN_TRANSCRIPT_CHARS:
            return GatewayFailure(
                reason=ErrorKind.INVALID_INPUT,
                message="Transcript too short. Please provide more conversation content.",
            )

        prompt = build_extraction_prompt(transcript)

        def _extract(provider: LLMProvider) -> ExtractionPayload:
            text = provider.complete(
                prompt,
                EXTRACTION_SYSTEM_PROMPT,
                max_tokens=1024,
                temperature=0.1,
                json_mode=True,
            )
            return parse_extraction_payload(text, provider.name)

        outcome = attempt_in_order(self.providers, _extract, self.breakers)
        if isinstance(outcome, GatewayFailure):
            return outcome

        payload = outcome.value
        fields, issues = validate_extracted_fields(payload.data)
        score, level = quality_score(payload.confidence)
        logger.info(
            "Extraction via %s: quality %.2f (%s), %d issue(s)",
            outcome.provider, score, level.value, len(issues),
        )
        return ExtractionResult(
            provider=outcome.provider,
            model=outcome.model,
            fields=fields,
            confidence=payload.confidence,
            summary=payload.summary,
            quality_score=score,
            quality_level=level,
            fields_extracted=sum(1 for v in fields.model_dump().values() if v is not None),
            total_fields=len(payload.confidence) or 1,
            issues=issues,
        )

    def analyze(self, prompt: str) -> Union[AnalysisResult, GatewayFailure]:
        if not self.is_configured:
            return not_configured()

        def _analyze(provider: LLMProvider) -> str:
            return provider.complete(
                prompt,
                LOAN_ANALYSIS_SYSTEM_PROMPT,
                max_tokens=1500,
                temperature=0.3,
            )

        outcome = attempt_in_order(self.providers, _analyze, self.breakers)
        if isinstance(outcome, GatewayFailure):
            return outcome

        return AnalysisResult(
            text=outcome.value.strip(),
            provider=outcome.provider,
            model=outcome.model,
            generated_at=self.clock().isoformat(),
        )

    def status(self) -> dict:
        return {
            "configured": self.is_configured,
            "providers": describe_providers(self.providers),
            "circuits": {name: breaker.snapshot() for name, breaker in self.breakers.items()},
        }
