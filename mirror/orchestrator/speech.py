"""
Spoken coaching. One SpeechSession per device session.

Every new line, mute or reset bumps a monotonic token. A synthesis result
is delivered only if its token is still current and audio is still on, so
a slow response for an old line can never talk over a newer one.
"""

import base64
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .state import TutorialStep

logger = logging.getLogger(__name__)

SynthesizeFn = Callable[[str], Awaitable[bytes]]


@dataclass(frozen=True)
class SpokenLine:
    token: int
    text: str
    audio: bytes

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "text": self.text,
            "audio": base64.b64encode(self.audio).decode("utf-8"),
        }


DeliverFn = Callable[[SpokenLine], Awaitable[None]]


# Appended to every coaching line that expects the user to try the step.
LET_ME_SEE_INSTRUCTION = {
    "en": (
        "When you're through with this step, click 'Let me see' so I can check your work. "
        "And remember, if you want to buy any of these things, I'm your girl, just click shop! "
        "Any questions?"
    ),
    "ja": "準備ができたら「チェック」を押してください。私がアドバイスします。商品が気になったら「ショップ」を見てくださいね！何か質問はありますか？",
    "pt": (
        "Ao terminar este passo, clique em 'Deixe-me ver'. Se quiser levar o look, lembre-se "
        "que sou sua consultora, é só clicar na loja! Dúvidas?"
    ),
    "es": (
        "Cuando termines este paso, haz clic en 'Déjame ver'. Si te encanta, ¡recuerda que soy "
        "tu chica! Haz clic en tienda para comprarlo. ¿Dudas?"
    ),
}


def let_me_see(lang: str) -> str:
    return LET_ME_SEE_INSTRUCTION.get(lang, LET_ME_SEE_INSTRUCTION["en"])


def opening_line(compliment: str, step: TutorialStep, lang: str) -> str:
    return f"{compliment}. {step.title}: {step.instruction}. {let_me_see(lang)}"


def step_line(step: TutorialStep, lang: str) -> str:
    return f"{step.title}: {step.instruction}. {let_me_see(lang)}"


def feedback_line(feedback: str, lang: str) -> str:
    return f"{feedback}. {let_me_see(lang)}"


class SpeechSession:
    def __init__(self, synthesize: SynthesizeFn, deliver: DeliverFn, enabled: bool = True):
        self._synthesize = synthesize
        self._deliver = deliver
        self._token = 0
        self.enabled = enabled
        self.last_line: Optional[SpokenLine] = None

    @property
    def token(self) -> int:
        return self._token

    def kill(self) -> int:
        """Invalidate whatever is in flight."""
        self._token += 1
        return self._token

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        if not enabled:
            self.kill()

    def _is_current(self, token: int) -> bool:
        return token == self._token and self.enabled

    async def speak(self, text: str) -> bool:
        """
        Synthesize and deliver one line. Returns True if it was delivered.
        Never raises: speech is best-effort.
        """
        if not self.enabled or not text or not text.strip():
            return False

        token = self.kill()
        try:
            audio = await self._synthesize(text)
        except Exception as e:
            logger.warning("Speech synthesis failed (token=%d): %s", token, e)
            return False

        if not self._is_current(token):
            logger.debug("Dropping stale speech (token=%d, current=%d)", token, self._token)
            return False

        line = SpokenLine(token=token, text=text, audio=audio)
        self.last_line = line
        try:
            await self._deliver(line)
        except Exception as e:
            logger.warning("Speech delivery failed (token=%d): %s", token, e)
            return False
        return True
