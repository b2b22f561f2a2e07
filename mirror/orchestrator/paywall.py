"""
Paywall gate — the single interrupt point for premium upsells.

Opening the gate never performs the gated action. It returns either a
PaywallPrompt (upsell payload the client renders) or, when billing is
switched off in remote config, a BlockingNotice with no payment flow.

A prompt resolves one of two ways:
  checkout(method) → CheckoutSession from the Checkout capability
  dismiss()        → user stays on the free tier
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Union

from ..core.errors import CheckoutError
from ..services.checkout import CheckoutSession
from .policy import PolicyContext
from .state import PaywallReason

logger = logging.getLogger(__name__)

CheckoutFn = Callable[..., Awaitable[CheckoutSession]]

BILLING_DISABLED_NOTICE = "This feature is currently unavailable."

_BR_TIMEZONES = ("America/Sao_Paulo", "America/Fortaleza", "America/Belem")


def resolve_country(locale: Optional[str], timezone: Optional[str]) -> str:
    """Best guess of the user's billing region from locale and timezone."""
    if "pt-br" in (locale or "").lower():
        return "BR"
    if (timezone or "").startswith(_BR_TIMEZONES):
        return "BR"
    return "OTHER"


def payment_methods(country: str) -> list[str]:
    """Pix is a Brazilian rail. Everyone gets card."""
    return ["pix", "card"] if country == "BR" else ["card"]


# ── Copy ─────────────────────────────────────────────────────────────

PAYWALL_COPY: dict[str, dict[str, dict]] = {
    "en": {
        "limit": {
            "title": "Unlock Premium Looks",
            "subtitle": "You've used today's free looks. Keep going, your next look is waiting.",
            "highlight": "YOUR PHOTO • YOUR UPGRADE",
            "benefits": [
                "More looks per day (no waiting)",
                "Full step-by-step coaching (all steps)",
                "Personal shopper: better matches + faster shopping",
                "Priority features + new modes first",
            ],
            "cta_secondary": "Not now",
            "pay_with_card": "Pay with Card",
            "small_print": "Secure checkout. Cancel anytime. Your mirror, upgraded.",
        },
        "coach": {
            "title": "Full Coaching is Premium",
            "subtitle": "Want the next step? Premium unlocks the complete coaching flow and more daily looks.",
            "highlight": "COACHING • PREMIUM",
            "benefits": [
                "Unlock the next coaching steps",
                "More looks per day",
                "Personal shopper + curated picks",
                "Priority updates",
            ],
            "cta_secondary": "Continue free",
            "pay_with_card": "Get Premium",
            "small_print": "Upgrade once and the mirror becomes your daily stylist.",
        },
        "coachqa": {
            "title": "Coach Q&A is Premium",
            "subtitle": "You've used your free coaching question. Premium unlocks unlimited Q&A during your session.",
            "highlight": "Q&A • PREMIUM",
            "benefits": [
                "Unlimited coach questions",
                "Full coaching steps",
                "More looks per day",
                "Personal shopper",
            ],
            "cta_secondary": "Maybe later",
            "pay_with_card": "Get Premium",
            "small_print": "Ask anything. Emma stays with you step by step.",
        },
        "shop": {
            "title": "Personal Shopper is Premium",
            "subtitle": "Premium unlocks more verified matches and smarter shopping suggestions for your exact vibe.",
            "highlight": "SHOPPING • PREMIUM",
            "benefits": [
                "More verified matches",
                "Better brand suggestions",
                "More looks per day",
                "Full coaching",
            ],
            "cta_secondary": "Keep browsing",
            "pay_with_card": "Get Premium",
            "small_print": "Upgrade to shop smarter, faster, and with confidence.",
        },
        "_common": {"pay_with_pix": "Pay with Pix", "close": "Close"},
    },
    "pt": {
        "limit": {
            "title": "Desbloqueie o Premium",
            "subtitle": "Você já usou os looks grátis de hoje. Continue, seu próximo look está pronto.",
            "highlight": "SUA FOTO • SEU UPGRADE",
            "benefits": [
                "Mais looks por dia (sem esperar)",
                "Coaching completo passo a passo",
                "Personal shopper: melhores sugestões",
                "Novidades e recursos primeiro",
            ],
            "cta_secondary": "Agora não",
            "pay_with_card": "Pagar no cartão",
            "small_print": "Pagamento seguro. Cancele quando quiser. Seu espelho, melhorado.",
        },
        "coach": {
            "title": "Coaching completo é Premium",
            "subtitle": "Quer o próximo passo? O Premium libera todo o coaching e mais looks por dia.",
            "highlight": "COACHING • PREMIUM",
            "benefits": ["Libere os próximos passos", "Mais looks por dia", "Personal shopper", "Atualizações prioritárias"],
            "cta_secondary": "Continuar grátis",
            "pay_with_card": "Quero Premium",
            "small_print": "Faça upgrade e tenha um estilista todos os dias.",
        },
        "coachqa": {
            "title": "Perguntas ao Coach é Premium",
            "subtitle": "Você já usou sua pergunta grátis. O Premium libera perguntas ilimitadas.",
            "highlight": "Q&A • PREMIUM",
            "benefits": ["Perguntas ilimitadas", "Coaching completo", "Mais looks por dia", "Personal shopper"],
            "cta_secondary": "Talvez depois",
            "pay_with_card": "Quero Premium",
            "small_print": "Pergunte qualquer coisa. A Emma te guia.",
        },
        "shop": {
            "title": "Personal shopper é Premium",
            "subtitle": "O Premium libera mais matches e sugestões de compra mais inteligentes.",
            "highlight": "LOJA • PREMIUM",
            "benefits": ["Mais matches", "Sugestões melhores", "Mais looks por dia", "Coaching completo"],
            "cta_secondary": "Continuar vendo",
            "pay_with_card": "Quero Premium",
            "small_print": "Faça upgrade para comprar com mais confiança.",
        },
        "_common": {"pay_with_pix": "Pagar com Pix", "close": "Fechar"},
    },
    "es": {
        "limit": {
            "title": "Desbloquea Premium",
            "subtitle": "Ya usaste tus looks gratis de hoy. Sigue, tu próximo look te espera.",
            "highlight": "TU FOTO • TU UPGRADE",
            "benefits": ["Más looks por día", "Coaching completo paso a paso", "Personal shopper", "Nuevas funciones primero"],
            "cta_secondary": "Ahora no",
            "pay_with_card": "Pagar con tarjeta",
            "small_print": "Pago seguro. Cancela cuando quieras.",
        },
        "coach": {
            "title": "El coaching completo es Premium",
            "subtitle": "¿Quieres el siguiente paso? Premium desbloquea todo el coaching y más looks por día.",
            "highlight": "COACHING • PREMIUM",
            "benefits": ["Desbloquea más pasos", "Más looks por día", "Personal shopper", "Actualizaciones prioritarias"],
            "cta_secondary": "Seguir gratis",
            "pay_with_card": "Quiero Premium",
            "small_print": "Upgrade y tu espejo se vuelve tu estilista diario.",
        },
        "coachqa": {
            "title": "Preguntas al coach es Premium",
            "subtitle": "Ya usaste tu pregunta gratis. Premium desbloquea preguntas ilimitadas.",
            "highlight": "Q&A • PREMIUM",
            "benefits": ["Preguntas ilimitadas", "Coaching completo", "Más looks por día", "Personal shopper"],
            "cta_secondary": "Luego",
            "pay_with_card": "Quiero Premium",
            "small_print": "Pregunta lo que quieras. Emma te guía.",
        },
        "shop": {
            "title": "Personal shopper es Premium",
            "subtitle": "Premium desbloquea más matches verificados y mejores sugerencias.",
            "highlight": "TIENDA • PREMIUM",
            "benefits": ["Más matches", "Mejores marcas", "Más looks por día", "Coaching completo"],
            "cta_secondary": "Seguir viendo",
            "pay_with_card": "Quiero Premium",
            "small_print": "Compra más rápido y con confianza.",
        },
        "_common": {"pay_with_pix": "Pagar con Pix", "close": "Cerrar"},
    },
    "ja": {
        "limit": {
            "title": "プレミアムを解除",
            "subtitle": "本日の無料ルックは使い切りました。続けて次のルックへ。",
            "highlight": "あなたの写真 • アップグレード",
            "benefits": ["1日あたりのルック数アップ", "フルコーチング（全ステップ）", "パーソナルショッパー", "新機能を優先解放"],
            "cta_secondary": "今はやめる",
            "pay_with_card": "カードで支払う",
            "small_print": "安全な決済。いつでもキャンセル可能。",
        },
        "coach": {
            "title": "フルコーチングはプレミアム",
            "subtitle": "次のステップへ進みたい？プレミアムで全コーチング＋もっとルック。",
            "highlight": "COACHING • PREMIUM",
            "benefits": ["次のステップを解除", "1日あたりのルック数アップ", "パーソナルショッパー", "優先アップデート"],
            "cta_secondary": "無料で続ける",
            "pay_with_card": "プレミアムにする",
            "small_print": "毎日のスタイリストを手に入れよう。",
        },
        "coachqa": {
            "title": "Q&Aはプレミアム",
            "subtitle": "無料の質問を使い切りました。プレミアムで無制限に質問できます。",
            "highlight": "Q&A • PREMIUM",
            "benefits": ["質問し放題", "フルコーチング", "もっとルック", "パーソナルショッパー"],
            "cta_secondary": "あとで",
            "pay_with_card": "プレミアムにする",
            "small_print": "Emmaが最後まで一緒にガイドします。",
        },
        "shop": {
            "title": "パーソナルショッパーはプレミアム",
            "subtitle": "プレミアムでより多くのおすすめ＆賢い提案を解除。",
            "highlight": "SHOPPING • PREMIUM",
            "benefits": ["おすすめを増やす", "ブランド提案UP", "もっとルック", "フルコーチング"],
            "cta_secondary": "閲覧を続ける",
            "pay_with_card": "プレミアムにする",
            "small_print": "もっとスマートにお買い物。",
        },
        "_common": {"pay_with_pix": "Pixで支払う", "close": "閉じる"},
    },
}


@dataclass
class PaywallPrompt:
    reason: PaywallReason
    title: str
    subtitle: str
    highlight: str
    benefits: list[str]
    cta_primary: str
    cta_secondary: str
    pay_with_pix: str
    pay_with_card: str
    close: str
    small_print: str
    payment_methods: list[str] = field(default_factory=list)
    preview_image: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "reason": self.reason.value,
            "title": self.title,
            "subtitle": self.subtitle,
            "highlight": self.highlight,
            "benefits": list(self.benefits),
            "cta_primary": self.cta_primary,
            "cta_secondary": self.cta_secondary,
            "pay_with_pix": self.pay_with_pix,
            "pay_with_card": self.pay_with_card,
            "close": self.close,
            "small_print": self.small_print,
            "payment_methods": list(self.payment_methods),
            "preview_image": self.preview_image,
        }


@dataclass
class BlockingNotice:
    reason: PaywallReason
    message: str = BILLING_DISABLED_NOTICE


def build_prompt(
    reason: PaywallReason,
    lang: str,
    country: str,
    preview_image: Optional[str] = None,
) -> PaywallPrompt:
    table = PAYWALL_COPY.get(lang, PAYWALL_COPY["en"])
    per = table[reason.value]
    common = table["_common"]
    # Only inline images can be shown; anything else falls back to the placeholder.
    preview = preview_image if preview_image and preview_image.startswith("data:image") else None
    return PaywallPrompt(
        reason=reason,
        title=per["title"],
        subtitle=per["subtitle"],
        highlight=per["highlight"],
        benefits=list(per["benefits"]),
        cta_primary=per["pay_with_card"],
        cta_secondary=per["cta_secondary"],
        pay_with_pix=common["pay_with_pix"],
        pay_with_card=per["pay_with_card"],
        close=common["close"],
        small_print=per["small_print"],
        payment_methods=payment_methods(country),
        preview_image=preview,
    )


class PaywallGate:
    def __init__(self, policy: PolicyContext, checkout: CheckoutFn, device_id: Optional[str] = None):
        self.policy = policy
        self.device_id = device_id
        self._checkout = checkout
        self.active: Optional[PaywallPrompt] = None

    def open(
        self,
        reason: PaywallReason,
        preview_image: Optional[str] = None,
    ) -> Union[PaywallPrompt, BlockingNotice]:
        if not self.policy.billing_enabled:
            logger.info("Paywall %s hit with billing disabled", reason.value)
            self.active = None
            return BlockingNotice(reason=reason)

        self.active = build_prompt(reason, self.policy.lang, self.policy.country, preview_image)
        logger.info("Paywall opened (reason=%s, country=%s)", reason.value, self.policy.country)
        return self.active

    async def checkout(self, method: str) -> CheckoutSession:
        """Start checkout for the open prompt."""
        if not self.policy.billing_enabled:
            raise CheckoutError("Billing disabled")
        reason = self.active.reason if self.active else PaywallReason.LIMIT
        if method not in payment_methods(self.policy.country):
            raise CheckoutError(f"Payment method '{method}' is not available in your region")

        session = await self._checkout(
            method,
            country=self.policy.country,
            lang=self.policy.lang,
            reason=reason.value,
            billing=self.policy.config.billing,
            device_id=self.device_id,
        )
        logger.info("Checkout created (method=%s, reason=%s)", method, reason.value)
        return session

    def dismiss(self) -> None:
        self.active = None


__all__ = [
    "BlockingNotice",
    "PaywallGate",
    "PaywallPrompt",
    "build_prompt",
    "payment_methods",
    "resolve_country",
]
