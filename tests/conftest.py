"""
Pytest configuration and fixtures for Everyday Mirror tests.
"""

import os
from collections import defaultdict
from datetime import date

import pytest

# Keep every external dependency off before importing mirror modules
os.environ["FF_USE_REDIS"] = "false"
os.environ["FF_USE_S3"] = "false"
os.environ["FF_USE_STRIPE"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

from mirror.core.device_store import MemoryDeviceStore
from mirror.orchestrator import sessions
from mirror.orchestrator.capabilities import Capabilities
from mirror.orchestrator.machine import SessionMachine
from mirror.orchestrator.policy import PolicyContext, RemoteConfig
from mirror.orchestrator.state import RecommendedItem, TutorialStep
from mirror.services import remote_config
from mirror.services.checkout import CheckoutSession

PHOTO = "data:image/jpeg;base64,UEhPVE8="
TARGET = "data:image/jpeg;base64,VEFSR0VU"
BRANDED = "data:image/jpeg;base64,QlJBTkRFRA=="
TODAY = date(2025, 3, 14)


class FakeBackends:
    """Scriptable stand-ins for Gemini, TTS, Stripe, branding and pub/sub."""

    def __init__(self):
        self.calls = defaultdict(list)
        self.image = TARGET
        self.image_error = None
        self.compliment = "Your eyes are glowing"
        self.steps = [
            TutorialStep(id=1, title="Prep", instruction="Moisturize your skin", tip="Use SPF"),
            TutorialStep(id=2, title="Base", instruction="Apply a light foundation", tip="Blend outwards"),
            TutorialStep(id=3, title="Lips", instruction="Add a nude gloss", tip="Dab the center"),
        ]
        self.tutorial_error = None
        self.shopping = [
            RecommendedItem(name="Gloss", price="$12", brand="Glow Co", url="https://example.com/g", match_reason="Shine"),
        ]
        self.shopping_error = None
        self.greeting = "Hi gorgeous!"
        self.greeting_error = None
        self.feedback = "Great blending"
        self.feedback_error = None
        self.answer = "Use a damp sponge"
        self.branding_error = None
        self.synth_error = None
        self.published_speech = []
        self.published_shopping = []

    async def generate_styled_image(self, photo, mode, style, lang):
        self.calls["image"].append((photo, mode, style, lang))
        if self.image_error:
            raise self.image_error
        return self.image

    async def generate_tutorial(self, original, target, mode, lang):
        self.calls["tutorial"].append((original, target, mode, lang))
        if self.tutorial_error:
            raise self.tutorial_error
        return self.compliment, list(self.steps)

    async def generate_shopping_items(self, target, mode, lang):
        self.calls["shopping"].append((target, mode, lang))
        if self.shopping_error:
            raise self.shopping_error
        return list(self.shopping)

    async def generate_greeting(self, photo, mode, lang):
        self.calls["greeting"].append((photo, mode, lang))
        if self.greeting_error:
            raise self.greeting_error
        return self.greeting

    async def get_progress_feedback(self, target, progress, step, mode, lang):
        self.calls["feedback"].append((target, progress, step, mode, lang))
        if self.feedback_error:
            raise self.feedback_error
        return self.feedback

    async def answer_coach_question(self, question, target, mode, step, lang):
        self.calls["coach"].append((question, target, mode, step, lang))
        return self.answer

    async def synthesize(self, text):
        self.calls["synthesize"].append(text)
        if self.synth_error:
            raise self.synth_error
        return b"PCM"

    async def create_checkout(self, method, *, country, lang, reason, billing=None, device_id=None):
        self.calls["checkout"].append({
            "method": method, "country": country, "lang": lang, "reason": reason, "device_id": device_id,
        })
        return CheckoutSession(redirect_url=f"https://checkout.example/{method}", session_id=f"cs_{method}")

    async def apply_branding(self, image, text):
        self.calls["branding"].append((image, text))
        if self.branding_error:
            raise self.branding_error
        return BRANDED

    async def publish_speech(self, device_id, token, text, audio):
        self.published_speech.append((device_id, token, text))

    async def publish_shopping(self, device_id, items):
        self.published_shopping.append((device_id, list(items)))

    def capabilities(self) -> Capabilities:
        return Capabilities(
            generate_styled_image=self.generate_styled_image,
            generate_tutorial=self.generate_tutorial,
            generate_shopping_items=self.generate_shopping_items,
            generate_greeting=self.generate_greeting,
            get_progress_feedback=self.get_progress_feedback,
            answer_coach_question=self.answer_coach_question,
            synthesize=self.synthesize,
            create_checkout=self.create_checkout,
            apply_branding=self.apply_branding,
            publish_speech=self.publish_speech,
            publish_shopping=self.publish_shopping,
            timeout=5.0,
        )


def make_policy(config: dict = None, **kwargs) -> PolicyContext:
    """PolicyContext from a camelCase config dict, like the stored record."""
    return PolicyContext(config=RemoteConfig.model_validate(config or {}), **kwargs)


@pytest.fixture(autouse=True)
def clean_state():
    """Device store, machine registry and remote config are process-wide."""
    MemoryDeviceStore.clear_all()
    sessions.clear_machines()
    remote_config.set_remote_config(None)
    yield
    MemoryDeviceStore.clear_all()
    sessions.clear_machines()
    sessions.set_registry(None)
    sessions.set_capabilities(None)
    remote_config.set_remote_config(None)


@pytest.fixture
def backends():
    return FakeBackends()


@pytest.fixture
def store():
    return MemoryDeviceStore("device-1")


@pytest.fixture
def make_machine(backends, store):
    def _make(policy: PolicyContext = None, **policy_kwargs) -> SessionMachine:
        policy = policy or make_policy(**policy_kwargs)
        return SessionMachine("device-1", policy, store, backends.capabilities(), today=lambda: TODAY)
    return _make
