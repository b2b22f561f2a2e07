"""
Session data types.

One SessionData per styling journey. It is created fresh when the user
starts a new look and replaced wholesale on reset, so anything still holding
a reference to the old object (a detached shopping fetch, say) writes into a
session nobody looks at anymore.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional


class MirrorMode(str, Enum):
    MAKEUP = "MAKEUP"
    CLOTHES = "CLOTHES"
    HAIR = "HAIR"


class AppState(str, Enum):
    IDLE = "IDLE"
    CAPTURE_INITIAL = "CAPTURE_INITIAL"
    GENERATING_LOOK = "GENERATING_LOOK"
    GUIDING = "GUIDING"
    CHECKING_PROGRESS = "CHECKING_PROGRESS"
    FINAL_REVEAL = "FINAL_REVEAL"
    GALLERY = "GALLERY"


class CapturePurpose(str, Enum):
    """What the next capture in CAPTURE_INITIAL is for."""
    AWAITING_GREETING = "awaiting_greeting"
    AWAITING_STYLE_CAPTURE = "awaiting_style_capture"


class PaywallReason(str, Enum):
    LIMIT = "limit"        # daily look quota exhausted
    COACH = "coach"        # advancing past the free coaching step
    COACH_QA = "coachqa"   # asking beyond the free question quota
    SHOP = "shop"          # personal shopper results


# Moods offered per mode. "Surprise Me" lets the model pick.
STYLE_MOODS: dict[MirrorMode, list[str]] = {
    MirrorMode.MAKEUP: [
        "Clean Girl", "Natural Glow", "Mild Neutral", "Office Chic", "Golden Hour",
        "Bold Statement", "Evening Glam", "Wild Creative", "Surprise Me",
    ],
    MirrorMode.CLOTHES: [
        "Casual Chic", "High Elegance", "Carnival Celebration", "Office Power", "Surprise Me",
    ],
    MirrorMode.HAIR: [
        "Classic Sophistication", "Modern Edge", "Creative Avant-Garde", "Romantic Waves",
        "Surprise Me",
    ],
}


@dataclass(frozen=True)
class TutorialStep:
    id: int
    title: str
    instruction: str
    tip: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "TutorialStep":
        return cls(
            id=int(data.get("id", 0)),
            title=str(data.get("title", "")),
            instruction=str(data.get("instruction", "")),
            tip=str(data.get("tip", "")),
        )


@dataclass(frozen=True)
class RecommendedItem:
    name: str
    price: str
    brand: str
    url: str
    match_reason: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "RecommendedItem":
        return cls(
            name=str(data.get("name", "")),
            price=str(data.get("price", "")),
            brand=str(data.get("brand", "")),
            url=str(data.get("url", "")),
            match_reason=str(data.get("matchReason", data.get("match_reason", ""))),
        )


@dataclass
class SessionData:
    mode: Optional[MirrorMode] = None
    original_image: Optional[str] = None
    target_image: Optional[str] = None
    current_progress_image: Optional[str] = None
    steps: list[TutorialStep] = field(default_factory=list)
    current_step_index: int = 0
    ai_feedback: str = ""
    preference: str = ""
    recommended_items: list[RecommendedItem] = field(default_factory=list)
    compliment: Optional[str] = None
    greeting: Optional[str] = None

    @property
    def current_step(self) -> Optional[TutorialStep]:
        if not self.steps:
            return None
        return self.steps[self.current_step_index]

    @property
    def is_last_step(self) -> bool:
        return self.current_step_index >= len(self.steps) - 1

    def to_dict(self) -> dict:
        data = asdict(self)
        data["mode"] = self.mode.value if self.mode else None
        return data


@dataclass
class FavoriteItem:
    id: str
    mode: MirrorMode
    preference: str
    target_image: str
    outcome_image: str
    timestamp: int

    def to_dict(self) -> dict:
        data = asdict(self)
        data["mode"] = self.mode.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FavoriteItem":
        return cls(
            id=data["id"],
            mode=MirrorMode(data["mode"]),
            preference=data.get("preference", "Surprise Me"),
            target_image=data["target_image"],
            outcome_image=data.get("outcome_image", data["target_image"]),
            timestamp=int(data.get("timestamp", 0)),
        )
