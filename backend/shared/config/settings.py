"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Gateway settings with defaults for development."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    host: str = "0.0.0.0"
    ws_gateway_port: int = 3000

    # Environment
    environment: str = "development"
    debug: bool = True

    # Comma-separated list of allowed origins for CORS and WebSocket handshakes.
    # Empty uses DEFAULT_ALLOWED_ORIGINS from ws_gateway constants.
    allowed_origins: str = ""

    # Routing
    api_prefix: str = "/api/websocket"
    ws_path: str = "/ws"

    # WebSocket transport
    # Protocol-level ping/pong handled by uvicorn; keeps listen-only clients alive
    ws_ping_interval: float = 30.0
    ws_ping_timeout: float = 60.0
    # Close connections that send no frame for this long; None disables the
    # receive timeout and the idle reaper
    ws_idle_timeout: float | None = None
    ws_max_message_size: int = 64 * 1024  # 64 KB
    ws_send_queue_size: int = 256  # Pending outbound frames per connection
    ws_accept_timeout: float = 5.0

    # Periodic metrics broadcast to the monitoring room
    monitoring_enabled: bool = False
    monitoring_interval: float = 30.0
    monitoring_room: str = "monitoring"

    def get_allowed_origins(self) -> list[str]:
        """Parse the comma-separated origin allowlist."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    def validate_production_settings(self) -> list[str]:
        """
        Validate settings that must be tightened for production.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.environment == "production":
            if self.debug:
                errors.append("DEBUG must be False in production")

            if not self.get_allowed_origins():
                errors.append(
                    "ALLOWED_ORIGINS must be configured in production"
                )

            if self.ws_ping_timeout <= self.ws_ping_interval:
                errors.append(
                    "WS_PING_TIMEOUT must be greater than WS_PING_INTERVAL"
                )

            if self.ws_idle_timeout is not None and self.ws_idle_timeout <= self.ws_ping_interval:
                errors.append(
                    "WS_IDLE_TIMEOUT must be greater than WS_PING_INTERVAL"
                )

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
