"""
Application configuration settings loaded from environment variables.
Uses pydantic_settings for validation and type conversion.
"""
from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    """
    Application settings class with environment variable validation.

    Attributes:
        database_url: SQLAlchemy connection string
        secret_key: Secret key for identity token encoding
        algorithm: Algorithm used for token encoding (typically HS256)
        access_token_expire_minutes: Identity token expiration time in minutes

        # Credential lifecycle
        verification_code_ttl_minutes: Lifetime of an emailed verification code
        resend_cooldown_seconds: Minimum delay between two verification emails
        access_grant_valid_days: Default validity of a newly issued access code
        simulated_latency_seconds: Artificial delay at async suspension points

        # Email settings (all optional, the flow falls back to a preview)
        mail_username: SMTP server username
        mail_password: SMTP server password
        mail_from: Sender email address
        mail_port: SMTP server port
        mail_server: SMTP server hostname
        mail_starttls: Whether to use STARTTLS

        # Demo data
        seed_demo_data: Load the demo access codes on startup
    """
    # Database settings
    database_url: str = "sqlite:///./screening_access.db"

    # Token settings
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Credential lifecycle settings
    verification_code_ttl_minutes: int = 10
    resend_cooldown_seconds: int = 60
    access_grant_valid_days: int = 7
    simulated_latency_seconds: float = 0.0

    # Email settings
    mail_username: Optional[str] = None
    mail_password: Optional[str] = None
    mail_from: Optional[str] = None
    mail_port: int = 587
    mail_server: Optional[str] = None
    mail_starttls: bool = True

    # Demo data
    seed_demo_data: bool = True

    class Config:
        """Configuration for environment variables loading"""
        env_file = ".env"
        case_sensitive = False

# Create settings instance
settings = Settings()
