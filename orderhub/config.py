"""orderhub configuration."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Environment-driven settings for the order service."""

    # Shiprocket checkout (webhooks + catalog feed)
    shiprocket_webhook_secret: str = ""
    shiprocket_api_key: str = ""
    shiprocket_checkout_base_url: str = "https://checkout-api.shiprocket.com"
    shiprocket_allowed_ips: str = ""
    shiprocket_timeout_seconds: float = 10.0

    # Shiprocket shipping API (couriers, AWB, pickup)
    shiprocket_api_base_url: str = "https://apiv2.shiprocket.in/v1/external"
    shiprocket_email: str = ""
    shiprocket_password: str = ""
    shiprocket_pickup_location: str = "Primary"
    shiprocket_pickup_pincode: str = "110001"

    # Orders and catalog
    price_tolerance: float = 1.0
    store_vendor: str = "orderhub"

    # Storage: empty means the in-memory store
    database_url: str = ""

    # Mail
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    mail_from: str = "orders@localhost"

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def allowed_ips(self) -> list[str]:
        return [ip.strip() for ip in self.shiprocket_allowed_ips.split(",") if ip.strip()]


settings = Settings()
