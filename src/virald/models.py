"""Data models for virald."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from virald.constants import STATUS_UNKNOWN


class VMConfig(BaseModel):
    """Caller-supplied VM configuration.

    Immutable once attached to a VMInfo.  Optional fields stay None when
    omitted; each provider applies its own defaults and units.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    iso_url: str = Field(description="Boot source reference (opaque to virald)")
    name: str | None = Field(default=None, description="Display label; providers synthesize one if missing")
    memory_size: str | None = Field(default=None, description="Memory size, e.g. '1G' (docker) or '1024' (utm)")
    cpu_cores: str | None = Field(default=None, description="Virtual CPU count")
    disk_size: str | None = Field(default=None, description="Disk size, e.g. '16G' (docker) or '16384' (utm)")


class VMInfo(BaseModel):
    """Provider-local record of one provisioned VM."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    id: str = Field(description="Backend-assigned or backend-namespaced unique id")
    name: str
    status: str = Field(default=STATUS_UNKNOWN, description="Free-form status text mirrored from the backend")
    port: int = Field(ge=1, le=65535, description="Locally allocated host port")
    config: VMConfig
    connection_url: str = Field(description="http:// for docker, vnc:// for utm")
