import json
import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional

from core.messages import PipelineRequest, PipelineResponse
from settings.chaos_config import ChaosConfig, CorruptionType, RANDOM_DELAY

logger = logging.getLogger(__name__)

CHAOS_HEADER = "X-Chaos"

FAILURE = "failure"
DELAY = "delay"
CORRUPTION = "corruption"

# Printable ASCII without space, inclusive bounds
GARBAGE_MIN = 0x21
GARBAGE_MAX = 0x7E

FALLBACK_FAILURE_BODY = b'{"error":"Chaos failure injected"}'


@dataclass
class ChaosDecision:
    """
    Outcome of the pre-handler chaos stages for one request.

    Either `response` is set (the request short-circuits and the handler is
    never called), or the request continues after waiting `delay_ms`.
    """
    response: Optional[PipelineResponse] = None
    delay_ms: int = 0
    applied: List[str] = field(default_factory=list)

    @property
    def short_circuit(self) -> bool:
        return self.response is not None


class ChaosEngine:
    """
    Evaluates failure, delay and corruption against a validated ChaosConfig.

    Every roll draws from the request's own random generator. Configuration
    values are trusted as-is.
    """

    def evaluate(self, request: PipelineRequest, config: ChaosConfig, rng: random.Random) -> ChaosDecision:
        """
        Run the failure and delay stages, in that order.

        Args:
            request: The inbound request
            config: Validated chaos configuration
            rng: Per-request random generator

        Returns:
            ChaosDecision: short-circuit response or continuation with delay
        """
        decision = ChaosDecision()

        if config.has_failure() and rng.random() < config.failure_rate:
            status_code = rng.choice(config.failure_codes)
            decision.applied.append(FAILURE)
            decision.response = self.failure_response(status_code)
            logger.debug(f"Injected failure {status_code} for {request.method} {request.path}")
            return decision

        if config.has_delay() and rng.random() < config.delay_rate:
            decision.delay_ms = self.calculate_delay(config, rng)
            decision.applied.append(DELAY)
            logger.debug(f"Injected {decision.delay_ms}ms delay for {request.method} {request.path}")

        return decision

    def calculate_delay(self, config: ChaosConfig, rng: random.Random) -> int:
        """
        Supports:
        - int: fixed delay
        - "random": uniform in [0, delay_max_ms)
        """
        if config.delay_ms == RANDOM_DELAY:
            return rng.randrange(0, config.delay_max_ms)
        return config.delay_ms

    def failure_response(self, status_code: int) -> PipelineResponse:
        body = {
            "error": "Chaos failure injected",
            "chaos": {
                "type": FAILURE,
                "status_code": status_code,
            },
        }
        try:
            payload = json.dumps(body, indent=2).encode("utf-8")
        except (TypeError, ValueError):
            logger.exception("Failed to serialize chaos failure body")
            payload = FALLBACK_FAILURE_BODY

        return PipelineResponse(
            status_code=status_code,
            headers=[("content-type", "application/json")],
            body=payload,
        )

    def apply_corruption(self, response: PipelineResponse, config: ChaosConfig,
                         rng: random.Random, applied: Optional[List[str]] = None) -> PipelineResponse:
        """
        Roll for corruption and rewrite the response body when it fires.

        Status and headers set by the handler are left untouched. When the
        roll fires, "corruption" is appended to `applied`.
        """
        if not config.has_corruption() or rng.random() >= config.corruption_rate:
            return response

        response.body = corrupt_body(response.body, config.corruption_type, rng)
        if applied is not None:
            applied.append(CORRUPTION)
        logger.debug(f"Corrupted response body ({config.corruption_type.value}), "
                     f"{len(response.body)} bytes remain")
        return response


def corrupt_body(body: bytes, corruption_type: CorruptionType, rng: random.Random) -> bytes:
    if corruption_type == CorruptionType.EMPTY:
        return b""
    if corruption_type == CorruptionType.TRUNCATE:
        return body[:len(body) // 2]
    if corruption_type == CorruptionType.GARBAGE:
        return bytes(rng.randint(GARBAGE_MIN, GARBAGE_MAX) for _ in range(len(body)))
    return body
