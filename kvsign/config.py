"""Configuration management with Pydantic settings."""

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kvsign.app.ports.credentials import SigningCredentials
from kvsign.app.ports.request import HashAlgorithmName

DEFAULT_KEY_VAULT_API_VERSION = "7.4"


class Settings(BaseSettings):
    """kvsign configuration settings.

    Precedence: CLI flag > environment variable > .env file > defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="KVSIGN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Timestamping
    timestamp_url: str | None = Field(
        default=None,
        description="RFC 3161 timestamp authority URL",
    )

    signature_hash_algorithm: HashAlgorithmName = Field(
        default=HashAlgorithmName.SHA256,
        description="Hash algorithm used for the package signature",
    )

    timestamp_hash_algorithm: HashAlgorithmName = Field(
        default=HashAlgorithmName.SHA256,
        description="Hash algorithm used for the timestamp request",
    )

    # Key vault
    key_vault_url: str | None = Field(
        default=None,
        description="Key vault base URL (e.g. https://contoso.vault.azure.net)",
    )

    key_vault_certificate_name: str | None = Field(
        default=None,
        description="Name of the certificate holding the signing key",
    )

    key_vault_client_id: str | None = Field(
        default=None,
        description="Client id used for the client-credential token exchange",
    )

    key_vault_client_secret: SecretStr | None = Field(
        default=None,
        description="Client secret used for the client-credential token exchange",
    )

    key_vault_access_token: SecretStr | None = Field(
        default=None,
        description="Pre-issued access token; takes precedence over client credentials",
    )

    key_vault_authority_url: str | None = Field(
        default=None,
        description="Override the token authority advertised by the vault challenge",
    )

    key_vault_resource_url: str | None = Field(
        default=None,
        description="Override the token resource advertised by the vault challenge",
    )

    key_vault_api_version: str = Field(
        default=DEFAULT_KEY_VAULT_API_VERSION,
        description="Key vault REST API version",
    )

    # Networking
    http_timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        description="Timeout for key vault, token and timestamp requests (seconds)",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level for the CLI (DEBUG, INFO, WARNING, ERROR)",
    )

    @field_validator("signature_hash_algorithm", "timestamp_hash_algorithm", mode="before")
    @classmethod
    def _parse_hash_algorithm(cls, value: str | HashAlgorithmName) -> HashAlgorithmName:
        return HashAlgorithmName.parse(value)

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return normalized

    def get_credentials(
        self,
        *,
        access_token: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
    ) -> SigningCredentials:
        """Build credentials, letting explicit arguments override configured values."""
        configured_token = (
            self.key_vault_access_token.get_secret_value() if self.key_vault_access_token else None
        )
        configured_secret = (
            self.key_vault_client_secret.get_secret_value() if self.key_vault_client_secret else None
        )
        return SigningCredentials(
            access_token=access_token or configured_token,
            client_id=client_id or self.key_vault_client_id,
            client_secret=client_secret or configured_secret,
            authority_url=self.key_vault_authority_url,
            resource_url=self.key_vault_resource_url,
        )


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Set the global settings instance (useful for testing)."""
    global _settings
    _settings = settings
