from enum import Enum
from typing import FrozenSet, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

RANDOM_DELAY = "random"

MIN_RATE = 0.01
MAX_RATE = 1.0


class ChaosMode(str, Enum):
    FAILURE = "failure"
    DELAY = "delay"
    CORRUPTION = "corruption"


class CorruptionType(str, Enum):
    EMPTY = "empty"
    TRUNCATE = "truncate"
    GARBAGE = "garbage"


def _split_csv(value):
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class ChaosConfig(BaseModel):
    """
    Validated chaos settings, built once at startup and shared read-only by
    every request. Fields that belong to a disabled mode are ignored.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", use_enum_values=False)

    modes: FrozenSet[ChaosMode] = Field(default_factory=frozenset, description="Enabled chaos modes")
    failure_rate: Optional[float] = Field(None, description="Probability of injecting a failure")
    failure_codes: Tuple[int, ...] = Field(default_factory=tuple, description="Status codes to fail with")
    delay_rate: Optional[float] = Field(None, description="Probability of delaying a request")
    delay_ms: Union[int, Literal["random"]] = Field(0, description="Fixed delay in ms, or 'random'")
    delay_max_ms: Optional[int] = Field(None, description="Upper bound (exclusive) for random delays")
    corruption_rate: Optional[float] = Field(None, description="Probability of corrupting a response body")
    corruption_type: Optional[CorruptionType] = Field(None, description="How the body is corrupted")
    inform_header: bool = Field(True, description="Report applied faults in the X-Chaos header")

    @field_validator("modes", mode="before")
    @classmethod
    def parse_modes(cls, v):
        if v is None:
            return frozenset()
        return _split_csv(v)

    @field_validator("failure_codes", mode="before")
    @classmethod
    def parse_failure_codes(cls, v):
        if v is None:
            return ()
        if isinstance(v, int):
            return (v,)
        return _split_csv(v)

    @field_validator("delay_ms", mode="before")
    @classmethod
    def parse_delay_ms(cls, v):
        if isinstance(v, str):
            v = v.strip()
            if v.lower() == RANDOM_DELAY:
                return RANDOM_DELAY
            if v.isdigit():
                return int(v)
        return v

    @field_validator("delay_ms")
    @classmethod
    def validate_delay_ms(cls, v):
        if isinstance(v, int) and v < 0:
            raise ValueError(f"delay_ms must be non-negative, got {v}")
        return v

    @model_validator(mode="after")
    def validate_enabled_modes(self):
        errors = []

        if ChaosMode.FAILURE in self.modes:
            errors.extend(_check_rate("failure_rate", self.failure_rate))
            if not self.failure_codes:
                errors.append("failure_codes must not be empty when failure mode is enabled")
            for code in self.failure_codes:
                if not 400 <= code <= 599:
                    errors.append(f"failure code must be between 400 and 599, got {code}")

        if ChaosMode.DELAY in self.modes:
            errors.extend(_check_rate("delay_rate", self.delay_rate))
            if self.delay_ms == RANDOM_DELAY:
                if self.delay_max_ms is None or self.delay_max_ms <= 0:
                    errors.append("delay_max_ms must be a positive integer when delay_ms is 'random'")

        if ChaosMode.CORRUPTION in self.modes:
            errors.extend(_check_rate("corruption_rate", self.corruption_rate))
            if self.corruption_type is None:
                errors.append("corruption_type is required when corruption mode is enabled")

        if errors:
            raise ValueError("; ".join(errors))
        return self

    def has_failure(self) -> bool:
        return ChaosMode.FAILURE in self.modes

    def has_delay(self) -> bool:
        return ChaosMode.DELAY in self.modes

    def has_corruption(self) -> bool:
        return ChaosMode.CORRUPTION in self.modes

    def is_enabled(self) -> bool:
        return bool(self.modes)

    def describe(self) -> dict:
        """Plain-dict view used for logging and `check-config` output."""
        data = self.model_dump(mode="json")
        data["modes"] = sorted(data["modes"])
        data["failure_codes"] = list(data["failure_codes"])
        return data


def _check_rate(name: str, value: Optional[float]):
    if value is None:
        return [f"{name} is required when its mode is enabled"]
    if not MIN_RATE <= value <= MAX_RATE:
        return [f"{name} must be between {MIN_RATE} and {MAX_RATE}, got {value}"]
    return []
