"""Configuration and environment for a must-gather run."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_OPERATOR_NAMESPACE = "openshift-operators"
DEFAULT_OPERATOR_NAME = "kepler-operator"
DEFAULT_DEST_DIR = Path("must-gather")


class Settings(BaseSettings):
    """Gather settings loaded from environment and .env."""

    model_config = SettingsConfigDict(
        env_prefix="KEPLER_MUST_GATHER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Kubernetes
    kubeconfig: Path | None = Field(
        default=None,
        description="Path to kubeconfig; uses KUBECONFIG env or default location if unset",
    )
    context: str | None = Field(default=None, description="Kubernetes context to use")

    # Target
    operator_namespace: str = Field(
        default=DEFAULT_OPERATOR_NAMESPACE,
        description="Namespace the operator is installed in",
    )
    operator_name: str = Field(
        default=DEFAULT_OPERATOR_NAME,
        description="Operator package / label name",
    )
    dest_dir: Path = Field(default=DEFAULT_DEST_DIR, description="Root of the output bundle")

    # OLM
    olm_namespace: str = Field(default="openshift-operator-lifecycle-manager")
    marketplace_namespace: str = Field(default="openshift-marketplace")

    # Kepler instances and exporter workload
    instance_name: str = Field(default="kepler", description="Name of the Kepler instance")
    default_workload_namespace: str = Field(
        default="openshift-kepler-operator",
        description="Exporter namespace when the internal resource does not name one",
    )
    exporter_selector: str = Field(
        default="app.kubernetes.io/component=exporter,app.kubernetes.io/managed-by=kepler-operator",
        description="Label selector for exporter pods and their companion objects",
    )
    exporter_container: str = Field(default="kepler-exporter")
    log_tail_lines: int | None = Field(
        default=None,
        ge=1,
        description="Tail this many log lines per container; full logs if unset",
    )

    # User workload monitoring
    monitoring_namespace: str = Field(default="openshift-monitoring")
    uwm_namespace: str = Field(default="openshift-user-workload-monitoring")
    thanos_route: str = Field(default="thanos-querier")
    token_service_account: str = Field(default="prometheus-k8s")
    token_expiration_seconds: int = Field(default=600, ge=600)
    ca_bundle_namespace: str = Field(default="openshift-config-managed")
    ca_bundle_configmap: str = Field(default="default-ingress-cert")
    prometheus_selector: str = Field(default="app.kubernetes.io/name=prometheus")
    prometheus_container: str = Field(default="prometheus")


def get_settings() -> Settings:
    """Return validated settings instance."""
    return Settings()
