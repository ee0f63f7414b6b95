"""
Runtime configuration, read from environment variables.

Backend credentials are optional: without SUPABASE_URL / SUPABASE_ANON_KEY the
app runs against the in-memory backend with sample listings, and without
PAYSTACK_SECRET_KEY checkouts are simulated. Payment settlement on the hosted
backend needs SUPABASE_SERVICE_ROLE_KEY.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Settings:
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    supabase_service_key: Optional[str] = None
    paystack_secret_key: Optional[str] = None
    paystack_callback_url: Optional[str] = None
    webhook_secret: Optional[str] = None
    cors_origin: Optional[str] = None
    storage_bucket: str = "listings_images"
    request_timeout: float = 30
    log_level: str = "INFO"
    port: int = 8000

    @property
    def use_memory_backend(self) -> bool:
        return not (self.supabase_url and self.supabase_anon_key)


def load_settings() -> Settings:
    return Settings(
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_anon_key=os.getenv("SUPABASE_ANON_KEY"),
        supabase_service_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
        paystack_secret_key=os.getenv("PAYSTACK_SECRET_KEY"),
        paystack_callback_url=os.getenv("PAYSTACK_CALLBACK_URL"),
        webhook_secret=os.getenv("WEBHOOK_SECRET"),
        cors_origin=os.getenv("CORS_ORIGIN"),
        storage_bucket=os.getenv("STORAGE_BUCKET", "listings_images"),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", 30)),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        port=int(os.getenv("PORT", 8000)),
    )
