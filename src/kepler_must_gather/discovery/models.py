"""Values derived at run time that later stages depend on."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class MonitoringContext(BaseModel):
    """Endpoints and credentials for the user-workload monitoring snapshot."""

    model_config = ConfigDict(frozen=True)

    route_host: str
    ca_bundle_path: Path
    service_account_token: SecretStr
    prometheus_pods: list[str] = Field(default_factory=list)

    @property
    def rules_url(self) -> str:
        return f"https://{self.route_host}/api/v1/rules"


class DiscoveryResult(BaseModel):
    """Everything discovered during a run; read-only for the stages."""

    model_config = ConfigDict(frozen=True)

    workload_namespace: str | None = None
    workload_pods: list[str] = Field(default_factory=list)
    monitoring: MonitoringContext | None = None
