"""
SessionMachine — the mirror's state machine, one per device.

  IDLE ─► CAPTURE_INITIAL ─► GENERATING_LOOK ─► GUIDING ⇄ CHECKING_PROGRESS
                  ▲                 │               │
                  └──── failure ────┘               ▼
                                               FINAL_REVEAL
  IDLE / FINAL_REVEAL ─► GALLERY ─► IDLE

Every public operation returns an ActionResult. Policy denials come back as
a paywall prompt or a notice, never as exceptions. Operations that make no
sense in the current state raise InvalidTransition. A second look generation
or progress check while one is in flight raises SessionBusy.

Results of long calls are tagged with the epoch they started in. reset()
bumps the epoch, so anything finishing afterwards is dropped.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Coroutine, Optional, Union

from ..core import guardrails
from ..core.device_store import DeviceStore
from ..core.errors import GenerationError, InvalidTransition, SessionBusy, UnknownStyle
from .capabilities import Capabilities
from .generation import LookGenerationOrchestrator, generic_error
from .ledger import EntitlementLedger
from .paywall import BlockingNotice, PaywallGate, PaywallPrompt
from .policy import PolicyContext
from .speech import SpeechSession, SpokenLine, feedback_line, opening_line, step_line
from .state import (
    STYLE_MOODS,
    AppState,
    CapturePurpose,
    MirrorMode,
    PaywallReason,
    SessionData,
)
from .vault import add_favorite, load_favorites

logger = logging.getLogger(__name__)

MODE_DISABLED_NOTICE = "That mode is temporarily disabled. Please try another one."
FEATURE_DISABLED_NOTICE = "This feature is currently unavailable."
SAVED_NOTICE = "Saved to Style Vault"
FREE_SHOP_ITEMS = 3

_BUSY_STATES = (AppState.GENERATING_LOOK, AppState.CHECKING_PROGRESS)


@dataclass
class ActionResult:
    """What a machine operation hands back to the caller."""

    state: AppState
    paywall: Optional[PaywallPrompt] = None
    notice: Optional[str] = None
    error: Optional[str] = None
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "paywall": self.paywall.to_dict() if self.paywall else None,
            "notice": self.notice,
            "error": self.error,
            "data": self.data,
        }


class SessionMachine:
    def __init__(
        self,
        device_id: str,
        policy: PolicyContext,
        store: DeviceStore,
        caps: Capabilities,
        today=None,
    ):
        self.device_id = device_id
        self.policy = policy
        self.store = store
        self.caps = caps

        self.ledger = EntitlementLedger(store, policy, today=today)
        self.gate = PaywallGate(policy, caps.create_checkout, device_id=device_id)
        self.speech = SpeechSession(
            caps.synthesize,
            self._deliver_speech,
            enabled=policy.config.features.audio_guidance,
        )
        self.generator = LookGenerationOrchestrator(caps, self.ledger)

        self.state = AppState.IDLE
        self.session = SessionData()
        self.capture_purpose: Optional[CapturePurpose] = None
        self.chosen_style: Optional[str] = None

        self._epoch = 0
        self._tasks: set[asyncio.Task] = set()

    # ── Plumbing ─────────────────────────────────────────────────────

    def apply_policy(self, policy: PolicyContext) -> None:
        """Swap in a new policy snapshot (premium granted, new locale...)."""
        self.policy = policy
        self.ledger.policy = policy
        self.gate.policy = policy

    @property
    def is_premium(self) -> bool:
        return self.policy.is_premium

    @property
    def features(self):
        return self.policy.config.features

    def _require(self, *states: AppState) -> None:
        if self.state in _BUSY_STATES:
            raise SessionBusy(f"Busy ({self.state.value})")
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransition(f"Not allowed in {self.state.value} (expected {allowed})")

    def _result(self, **kwargs) -> ActionResult:
        return ActionResult(state=self.state, **kwargs)

    def _gated(self, reason: PaywallReason, preview: Optional[str] = None, **kwargs) -> ActionResult:
        outcome: Union[PaywallPrompt, BlockingNotice] = self.gate.open(
            reason, preview or self.session.original_image
        )
        if isinstance(outcome, BlockingNotice):
            return self._result(notice=outcome.message, **kwargs)
        return self._result(paywall=outcome, **kwargs)

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _speak(self, text: Optional[str]) -> None:
        if text and self.speech.enabled:
            self._spawn(self.speech.speak(text))

    async def _deliver_speech(self, line: SpokenLine) -> None:
        await self.caps.publish_speech(self.device_id, line.token, line.text, line.audio)

    async def drain(self) -> None:
        """Wait for detached work (speech, shopping) to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _is_stale(self, epoch: int) -> bool:
        if epoch != self._epoch:
            logger.info("Discarding stale result (device=%s, epoch=%d, now=%d)", self.device_id, epoch, self._epoch)
            return True
        return False

    # ── Mode & style ─────────────────────────────────────────────────

    def select_mode(self, mode: MirrorMode) -> ActionResult:
        self._require(AppState.IDLE)
        config = self.policy.config
        if config.maintenance_mode:
            return self._result(notice=config.maintenance_message)
        if not config.is_mode_enabled(mode):
            return self._result(notice=MODE_DISABLED_NOTICE)

        self.session = SessionData(mode=mode)
        self.chosen_style = None
        self.capture_purpose = CapturePurpose.AWAITING_GREETING
        self.state = AppState.CAPTURE_INITIAL
        logger.info("Mode selected (device=%s, mode=%s)", self.device_id, mode.value)
        return self._result(data={"moods": STYLE_MOODS[mode]})

    def choose_style(self, style: str) -> ActionResult:
        self._require(AppState.CAPTURE_INITIAL)
        if style not in STYLE_MOODS.get(self.session.mode, []):
            raise UnknownStyle(f"Unknown style '{style}' for {self.session.mode.value}")
        self.chosen_style = style
        self.session.preference = style
        return self._result(data={"style": style})

    # ── Capture ──────────────────────────────────────────────────────

    async def capture(self, photo: str) -> ActionResult:
        self._require(AppState.CAPTURE_INITIAL)
        if self.capture_purpose == CapturePurpose.AWAITING_GREETING:
            return await self._capture_greeting(photo)
        return await self._capture_style(photo)

    async def _capture_greeting(self, photo: str) -> ActionResult:
        # Only the first capture greets, whether or not the greeting works.
        self.capture_purpose = CapturePurpose.AWAITING_STYLE_CAPTURE
        epoch = self._epoch
        try:
            greeting = await self.generator.call(
                self.caps.generate_greeting, photo, self.session.mode, self.policy.lang
            )
        except Exception as e:
            logger.warning("Greeting failed (device=%s): %s", self.device_id, e)
            return self._result(data={"greeting": None})

        if self._is_stale(epoch):
            return self._result()
        self.session.greeting = greeting
        self._speak(greeting)
        return self._result(data={"greeting": greeting})

    async def _capture_style(self, photo: str) -> ActionResult:
        style = self.chosen_style
        if not style:
            return self._result()

        if not await self.ledger.can_generate_look_today(self.is_premium):
            return self._gated(PaywallReason.LIMIT, preview=photo)

        mode = self.session.mode
        greeting = self.session.greeting
        epoch = self._epoch
        self.state = AppState.GENERATING_LOOK
        try:
            result = await self.generator.generate(mode, photo, style)
        except GenerationError as e:
            if self._is_stale(epoch):
                return self._result()
            logger.warning("Look generation failed (device=%s): %s", self.device_id, e)
            self.state = AppState.CAPTURE_INITIAL
            return self._result(error=str(e) or generic_error(self.policy.lang))
        except Exception as e:
            if self._is_stale(epoch):
                return self._result()
            logger.error("Look generation crashed (device=%s): %s", self.device_id, e)
            self.state = AppState.CAPTURE_INITIAL
            return self._result(error=generic_error(self.policy.lang))

        if self._is_stale(epoch):
            return self._result()

        self.session = SessionData(
            mode=mode,
            original_image=result.original_image,
            target_image=result.target_image,
            steps=result.steps,
            current_step_index=0,
            preference=style,
            compliment=result.compliment,
            greeting=greeting,
        )
        self.capture_purpose = None
        self.state = AppState.GUIDING

        if self.features.shopping:
            self._spawn(self.generator.fetch_shopping(self.session, self.device_id))
        self._speak(opening_line(result.compliment, result.steps[0], self.policy.lang))
        return self._result(data={"session": self.session.to_dict()})

    # ── Guiding ──────────────────────────────────────────────────────

    async def check_progress(self, photo: str) -> ActionResult:
        self._require(AppState.GUIDING)
        epoch = self._epoch
        self.state = AppState.CHECKING_PROGRESS
        self.session.current_progress_image = photo
        session = self.session
        try:
            feedback = await self.generator.call(
                self.caps.get_progress_feedback,
                session.target_image, photo, session.current_step, session.mode, self.policy.lang,
            )
        except Exception as e:
            if self._is_stale(epoch):
                return self._result()
            logger.warning("Progress check failed (device=%s): %s", self.device_id, e)
            self.state = AppState.GUIDING
            message = str(e) if isinstance(e, GenerationError) else generic_error(self.policy.lang)
            return self._result(error=message)

        if self._is_stale(epoch):
            return self._result()
        session.ai_feedback = feedback
        self.state = AppState.GUIDING
        self._speak(feedback_line(feedback, self.policy.lang))
        return self._result(data={"feedback": feedback})

    async def ask_coach(self, question: str) -> ActionResult:
        self._require(AppState.GUIDING)
        if not self.features.coach:
            return self._result(notice=FEATURE_DISABLED_NOTICE)

        check = guardrails.check_question(question, self.device_id)
        if not check.allowed:
            return self._result(error=check.reason) if check.reason else self._result()

        if not self.ledger.can_ask_coach_question(self.is_premium):
            return self._gated(PaywallReason.COACH_QA)
        self.ledger.record_coach_question_used()

        epoch = self._epoch
        session = self.session
        try:
            answer = await self.generator.call(
                self.caps.answer_coach_question,
                check.modified, session.target_image, session.mode, session.current_step, self.policy.lang,
            )
        except Exception as e:
            logger.warning("Coach question failed (device=%s): %s", self.device_id, e)
            if self._is_stale(epoch):
                return self._result()
            return self._result(error=generic_error(self.policy.lang))

        if self._is_stale(epoch):
            return self._result()
        answer = guardrails.check_answer(answer).modified
        session.ai_feedback = answer
        self._speak(answer)
        return self._result(data={"answer": answer})

    def advance_step(self) -> ActionResult:
        self._require(AppState.GUIDING)
        session = self.session
        if session.is_last_step:
            self.state = AppState.FINAL_REVEAL
            self.speech.kill()
            return self._result()

        next_index = session.current_step_index + 1
        if not self.is_premium and self.policy.gate_coach_second_step and next_index >= 1:
            return self._gated(PaywallReason.COACH)

        session.current_step_index = next_index
        session.ai_feedback = ""
        self._speak(step_line(session.current_step, self.policy.lang))
        return self._result(data={"step_index": next_index})

    # ── Shop & vault ─────────────────────────────────────────────────

    def open_shop(self) -> ActionResult:
        self._require(AppState.GUIDING, AppState.FINAL_REVEAL)
        if not self.features.shopping:
            return self._result(notice=FEATURE_DISABLED_NOTICE)

        items = [asdict(item) for item in self.session.recommended_items]
        if self.is_premium or len(items) <= FREE_SHOP_ITEMS:
            return self._result(data={"items": items})
        return self._gated(PaywallReason.SHOP, data={"items": items[:FREE_SHOP_ITEMS]})

    async def save_to_vault(self) -> ActionResult:
        self._require(AppState.GUIDING, AppState.FINAL_REVEAL)
        if not self.features.vault or not self.session.target_image or self.session.mode is None:
            return self._result()
        item = await add_favorite(self.store, self.session)
        return self._result(notice=SAVED_NOTICE, data={"favorite": item.to_dict()})

    async def favorites(self) -> list[dict]:
        return [f.to_dict() for f in await load_favorites(self.store)]

    async def open_vault(self) -> ActionResult:
        self._require(AppState.IDLE, AppState.FINAL_REVEAL)
        if not self.features.vault:
            return self._result(notice=FEATURE_DISABLED_NOTICE)
        self.speech.kill()
        self.state = AppState.GALLERY
        return self._result(data={"favorites": await self.favorites()})

    def close_vault(self) -> ActionResult:
        self._require(AppState.GALLERY)
        return self.reset()

    # ── Session lifecycle ────────────────────────────────────────────

    def reset(self) -> ActionResult:
        """Back to IDLE from anywhere. In-flight work is orphaned, not awaited."""
        self._epoch += 1
        self.speech.kill()
        self.ledger.reset_session()
        self.gate.dismiss()
        self.session = SessionData()
        self.capture_purpose = None
        self.chosen_style = None
        self.state = AppState.IDLE
        logger.info("Session reset (device=%s)", self.device_id)
        return self._result()

    def new_look(self) -> ActionResult:
        self._require(AppState.FINAL_REVEAL)
        mode = self.session.mode
        self.reset()
        self.session = SessionData(mode=mode)
        # The user was already greeted in this visit.
        self.capture_purpose = CapturePurpose.AWAITING_STYLE_CAPTURE
        self.state = AppState.CAPTURE_INITIAL
        return self._result(data={"moods": STYLE_MOODS[mode]})

    def set_audio(self, enabled: bool) -> ActionResult:
        self.speech.set_enabled(enabled)
        return self._result(data={"audio": enabled})

    async def snapshot(self) -> dict:
        used = await self.ledger.looks_used_today()
        return {
            "state": self.state.value,
            "capture_purpose": self.capture_purpose.value if self.capture_purpose else None,
            "chosen_style": self.chosen_style,
            "session": self.session.to_dict(),
            "is_premium": self.is_premium,
            "looks_used_today": used,
            "max_looks_per_day": self.policy.max_looks_per_day(self.is_premium),
            "coach_questions_used": self.ledger.coach_questions_used,
            "audio": self.speech.enabled,
            "speech": self.speech.last_line.to_dict() if self.speech.last_line else None,
            "paywall": self.gate.active.to_dict() if self.gate.active else None,
        }
