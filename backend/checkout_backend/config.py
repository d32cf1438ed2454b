"""
Checkout Backend Configuration Module

Loads environment variables for the promo, charge and payment notification endpoints.
"""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Notes:
    - The Midtrans server key signs webhook notifications and authenticates
      every Core API call, so it is never logged
    - Demo mode seeds promo codes and uses the in-memory gateway by default
    """

    # Midtrans Configuration
    midtrans_server_key: str = ""
    midtrans_is_production: bool = False
    payment_gateway: Literal["midtrans", "mock"] = "mock"
    gateway_timeout_seconds: float = 30.0

    # Checkout behaviour
    fetch_gopay_qr_string: bool = False
    verify_promo_on_charge: bool = True
    error_details_max_length: int = 500

    # Demo Configuration
    demo_mode: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Database
    database_path: str = "./checkout.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
