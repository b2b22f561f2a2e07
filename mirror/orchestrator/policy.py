"""
Remote config model and the policy context handed to the session machine.

RemoteConfig mirrors the JSON stored in the app_config record (camelCase on
the wire). PolicyContext is the read-only snapshot a machine, its ledger and
its paywall gate are built with: remote config plus what we know about the
device (premium flag, language, region, timezone).
"""

from dataclasses import dataclass, replace
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .state import MirrorMode

SUPPORTED_LANGS = ("en", "ja", "pt", "es")

FREE_LOOKS_PER_DAY = 3
PREMIUM_LOOKS_PER_DAY = 25
FREE_COACH_QUESTIONS_PER_SESSION = 1


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Features(_CamelModel):
    audio_guidance: bool = True
    shopping: bool = True
    vault: bool = True
    coach: bool = True


class Limits(_CamelModel):
    max_looks_per_day: int = FREE_LOOKS_PER_DAY


class Branding(_CamelModel):
    watermark_text: str = "Everyday Mirror"


class BillingPolicy(_CamelModel):
    enabled: bool = True
    premium_looks_per_day: int = PREMIUM_LOOKS_PER_DAY
    gate_coach_second_step: bool = True
    free_coach_questions_per_session: int = FREE_COACH_QUESTIONS_PER_SESSION
    product_name: str = "Everyday Mirror Premium"
    price_monthly_brl: float = Field(default=19.9, alias="priceMonthlyBRL")
    price_monthly_usd: float = Field(default=4.99, alias="priceMonthlyUSD")


def _all_modes_enabled() -> dict[MirrorMode, bool]:
    return {mode: True for mode in MirrorMode}


class RemoteConfig(_CamelModel):
    maintenance_mode: bool = False
    maintenance_message: str = "We are polishing the mirror. Please check back soon."
    enabled_modes: dict[MirrorMode, bool] = Field(default_factory=_all_modes_enabled)
    features: Features = Field(default_factory=Features)
    limits: Limits = Field(default_factory=Limits)
    branding: Branding = Field(default_factory=Branding)
    billing: BillingPolicy = Field(default_factory=BillingPolicy)

    def is_mode_enabled(self, mode: MirrorMode) -> bool:
        return self.enabled_modes.get(mode, True)


def resolve_lang(locale: Optional[str]) -> str:
    """'pt-BR' → 'pt'. Anything we have no copy for falls back to English."""
    short = (locale or "en").split(",")[0].split("-")[0].strip().lower()
    return short if short in SUPPORTED_LANGS else "en"


@dataclass(frozen=True)
class PolicyContext:
    config: RemoteConfig
    is_premium: bool = False
    lang: str = "en"
    country: str = "OTHER"
    timezone: Optional[str] = None

    def max_looks_per_day(self, is_premium: bool) -> int:
        if is_premium:
            return self.config.billing.premium_looks_per_day
        return self.config.limits.max_looks_per_day

    @property
    def free_coach_questions(self) -> int:
        return self.config.billing.free_coach_questions_per_session

    @property
    def gate_coach_second_step(self) -> bool:
        return self.config.billing.gate_coach_second_step

    @property
    def billing_enabled(self) -> bool:
        return self.config.billing.enabled

    def with_premium(self, is_premium: bool) -> "PolicyContext":
        return replace(self, is_premium=is_premium)
