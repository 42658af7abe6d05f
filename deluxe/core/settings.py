from __future__ import annotations

import os
from dataclasses import dataclass

@dataclass(frozen=True)
class Settings:
    # AWS
    aws_region: str = os.environ.get("AWS_REGION", "us-east-1")

    # Cognito (optional wiring; dev fallback trusts X-User-Sub / bearer user id)
    cognito_user_pool_id: str = os.environ.get("COGNITO_USER_POOL_ID", "")
    cognito_region: str = os.environ.get("COGNITO_REGION", "")
    cognito_app_client_id: str = os.environ.get("COGNITO_APP_CLIENT_ID", "")
    cognito_expected_token_use: str = os.environ.get("COGNITO_EXPECTED_TOKEN_USE", "access")

    # DynamoDB tables
    users_table_name: str = os.environ.get("USERS_TABLE_NAME", "users")
    finance_table_name: str = os.environ.get("FINANCE_TABLE_NAME", "finance")
    notifications_table_name: str = os.environ.get("NOTIFICATIONS_TABLE_NAME", "notifications")
    stories_table_name: str = os.environ.get("STORIES_TABLE_NAME", "stories")
    posts_table_name: str = os.environ.get("POSTS_TABLE_NAME", "posts")

    # TTL
    ddb_ttl_attr: str = os.environ.get("DDB_TTL_ATTR", "ttl_epoch")
    stripe_event_ttl_seconds: int = int(os.environ.get("STRIPE_EVENT_TTL_SECONDS", str(7 * 24 * 3600)))

    # S3 media (stories, posts)
    media_bucket: str = os.environ.get("MEDIA_BUCKET", "")

    # Stripe
    stripe_secret_key: str = os.environ.get("STRIPE_SECRET_KEY", "")
    stripe_publishable_key: str = os.environ.get("STRIPE_PUBLISHABLE_KEY", "")
    stripe_webhook_secret: str = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    stripe_default_currency: str = os.environ.get("STRIPE_DEFAULT_CURRENCY", "brl").lower()

    # Public app URL used to build checkout return urls
    public_app_url: str = os.environ.get("NEXT_PUBLIC_APP_URL", os.environ.get("PUBLIC_APP_URL", "https://deluxejob.netlify.app"))

    # Revenue splits, in basis points of the gross amount
    subscription_creator_bps: int = int(os.environ.get("SUBSCRIPTION_CREATOR_BPS", "7000"))
    service_creator_bps: int = int(os.environ.get("SERVICE_CREATOR_BPS", "7000"))
    tip_creator_bps: int = int(os.environ.get("TIP_CREATOR_BPS", "8500"))

    # Tips (BRL, whole units)
    tip_min_amount: int = int(os.environ.get("TIP_MIN_AMOUNT", "5"))
    tip_max_amount: int = int(os.environ.get("TIP_MAX_AMOUNT", "1000"))

    # Notifications / stories
    notification_ttl_hours: int = int(os.environ.get("NOTIFICATION_TTL_HOURS", "24"))
    subscription_period_days: int = int(os.environ.get("SUBSCRIPTION_PERIOD_DAYS", "30"))
    stories_cache_seconds: int = int(os.environ.get("STORIES_CACHE_SECONDS", "60"))

    # Platform sender shown on system notifications
    platform_user_id: str = os.environ.get("PLATFORM_USER_ID", "deluxe-platform")
    platform_username: str = os.environ.get("PLATFORM_USERNAME", "DeLuxe")
    platform_profile_image: str = os.environ.get("PLATFORM_PROFILE_IMAGE", "/deluxe-logo.png")

    # Cron endpoint shared secret (Authorization: Bearer <secret>); empty disables the check
    cron_secret: str = os.environ.get("CRON_SECRET", "")

    log_level: str = os.environ.get("LOG_LEVEL", "INFO").upper()
    metrics_enabled: bool = os.environ.get("METRICS_ENABLED", "1") not in ("0", "false", "False")


S = Settings()
