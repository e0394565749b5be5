from pydantic import BaseModel, ConfigDict, Field
from proxyconf.persistence.models import MaintenanceModeType


class ResourceSettingsIn(BaseModel):
    """General settings of a resource. Only the fields sent are changed."""
    enabled: bool | None = None
    name: str | None = Field(default=None, min_length=1, max_length=255)
    subdomain: str | None = None
    domain_id: int | None = None
    proxy_port: int | None = Field(default=None, ge=1, le=65535)
    maintenance_mode_enabled: bool | None = None
    maintenance_mode_type: MaintenanceModeType | None = None
    maintenance_title: str | None = Field(default=None, max_length=255)
    maintenance_message: str | None = Field(default=None, max_length=2000)
    maintenance_estimated_time: str | None = Field(default=None, max_length=100)


class ResourceSettingsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    enabled: bool
    http: bool | None
    subdomain: str | None
    domain_id: int | None
    full_domain: str | None
    proxy_port: int | None
    maintenance_mode_enabled: bool
    maintenance_mode_type: MaintenanceModeType
    maintenance_title: str
    maintenance_message: str
    maintenance_estimated_time: str
