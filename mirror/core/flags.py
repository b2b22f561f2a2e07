"""
Central feature flags. One file controls every external dependency.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the system uses a local fallback. Nothing crashes.

These are deployment switches. Product toggles (modes, shopping, vault,
billing policy) live in the remote config record, see services/remote_config.py.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────────
    use_s3: bool = Field(default=False, alias="FF_USE_S3")
    # ON  → Vault images go to AWS S3. Needs AWS creds + S3_BUCKET_NAME.
    # OFF → Saved to ./local_storage/{device_id}/. Returns local paths.

    # ── Device store / Realtime ──────────────────────────────────────
    use_redis: bool = Field(default=False, alias="FF_USE_REDIS")
    # ON  → Per-device counters/favorites in Redis, speech + shopping
    #       results pushed over pub/sub. Needs REDIS_URL.
    # OFF → Counters kept in process memory, notifications skipped.

    # ── Speech ───────────────────────────────────────────────────────
    use_tts: bool = Field(default=True, alias="FF_USE_TTS")
    # OFF → Coaching lines are never synthesized. UI shows text only.

    # ── Billing ──────────────────────────────────────────────────────
    use_stripe: bool = Field(default=True, alias="FF_USE_STRIPE")
    # ON  → Checkout sessions created via Stripe. Needs STRIPE_SECRET_KEY.
    # OFF → Checkout requests fail with a clear error.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
