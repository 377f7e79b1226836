"""Runtime configuration from environment variables."""

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from virald import constants


class Settings(BaseSettings):
    """Runtime configuration from environment variables.

    All settings can be overridden via environment variables with VIRALD_ prefix.
    Example: VIRALD_DATA_DIR=/srv/vm-data

    PORT, API_URL and NODE_ADDRESS are also read unprefixed so existing node
    deployments keep working.
    """

    model_config = SettingsConfigDict(
        env_prefix="VIRALD_",
        extra="ignore",
        populate_by_name=True,
    )

    # Management API
    host: str = "0.0.0.0"
    port: int = Field(default=9090, validation_alias=AliasChoices("VIRALD_PORT", "PORT"))

    # Control-plane registration
    api_url: str = Field(
        default="http://localhost:8080",
        validation_alias=AliasChoices("VIRALD_API_URL", "API_URL"),
    )
    node_address: str = Field(
        default="127.0.0.1:9090",
        validation_alias=AliasChoices("VIRALD_NODE_ADDRESS", "NODE_ADDRESS"),
    )
    register_on_startup: bool = True
    registration_timeout_seconds: float = 10.0

    # Docker provider
    data_dir: Path = Field(default_factory=lambda: Path.cwd() / "vm-data")
    docker_image: str = constants.DOCKER_IMAGE
    docker_base_port: int = Field(default=constants.DOCKER_BASE_PORT, ge=1, le=65535)

    # UTM provider
    utmctl_path: Path = Path(constants.UTMCTL_APP_PATH)
    utm_base_port: int = Field(default=constants.UTM_BASE_PORT, ge=1, le=65535)
