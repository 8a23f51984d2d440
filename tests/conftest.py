"""Shared fixtures: an in-memory cluster behind the real ClusterQueryClient."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
import yaml
from kubernetes.client.rest import ApiException
from kubernetes.config import ConfigException

from kepler_must_gather.cluster import ClusterQueryClient, CollectionTarget, OutputSink
from kepler_must_gather.config import Settings
from kepler_must_gather.errors import QueryError, ResourceNotFound


def make_obj(
    kind: str,
    name: str,
    namespace: str | None = None,
    labels: dict[str, str] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    meta: dict[str, Any] = {"name": name, "labels": labels or {}}
    if namespace:
        meta["namespace"] = namespace
    return {"kind": kind, "metadata": meta, **extra}


def _matches(obj: dict[str, Any], selector: str | None) -> bool:
    if not selector:
        return True
    labels = obj["metadata"].get("labels") or {}
    for term in selector.split(","):
        key, _, value = term.partition("=")
        if key not in labels or (value and labels[key] != value):
            return False
    return True


class FakeCluster(ClusterQueryClient):
    """ClusterQueryClient whose low-level readers are served from memory.

    Outcome mapping, tallying and sink writes run through the real client code.
    """

    def __init__(self, objects: list[dict[str, Any]] | None = None) -> None:
        self._logs = MagicMock()
        self._logs.read_namespaced_pod_log.side_effect = self._read_log
        http = MagicMock()
        http.get.return_value.text = '{"status": "success", "data": {"groups": []}}'
        super().__init__(core=self._logs, dynamic=MagicMock(), http=http)
        self.objects = list(objects or [])
        self.calls: list[tuple[Any, ...]] = []
        self.failing_kinds: set[str] = set()
        self.failing_pods: set[str] = set()
        self.failing_commands: set[str] = set()
        self.token_error: Exception | None = None

    def add(self, *objs: dict[str, Any]) -> None:
        self.objects.extend(objs)

    def fetch(self, kind, api_version="v1", name=None, selector=None, namespace=None, **params):
        self.calls.append(("get", kind, name or selector, namespace))
        if kind in self.failing_kinds:
            raise QueryError(f"403 Forbidden: {kind}")
        items = [
            o
            for o in self.objects
            if o["kind"] == kind
            and (namespace is None or o["metadata"].get("namespace") in (None, namespace))
            and _matches(o, selector)
        ]
        if name:
            items = [o for o in items if o["metadata"]["name"] == name]
            if not items:
                raise ResourceNotFound(f"{kind} {name} not found")
        if "header_params" in params:
            return {
                "kind": "Table",
                "columnDefinitions": [{"name": "Name"}, {"name": "Namespace"}],
                "rows": [{"cells": [o["metadata"]["name"], o["metadata"].get("namespace")]} for o in items],
            }
        if name:
            return items[0]
        return {"kind": f"{kind}List", "items": items}

    def run(self, pod, container, namespace, command):
        self.calls.append(("exec", pod, container, namespace, tuple(command)))
        if pod in self.failing_pods or command[0] in self.failing_commands:
            raise QueryError("exit code 1")
        return f"output of {' '.join(command)}\n"

    def issue_token(self, service_account, namespace, expiration_seconds=600):
        self.calls.append(("token", service_account, namespace))
        if self.token_error:
            raise self.token_error
        return "sha256~token"

    def _read_log(self, name, namespace, **kwargs):
        self.calls.append(("logs", name, kwargs.get("container"), namespace))
        if name in self.failing_pods:
            raise ApiException(status=500, reason="Internal Server Error")
        return f"{name} log\n"

    def calls_of(self, verb: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == verb]


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    for key in list(os.environ):
        if key.startswith("KEPLER_MUST_GATHER_"):
            monkeypatch.delenv(key)
    return Settings(_env_file=None)


@pytest.fixture
def target(tmp_path: Path) -> CollectionTarget:
    return CollectionTarget(
        operator_name="kepler-operator",
        operator_namespace="openshift-operators",
        dest_dir=tmp_path / "bundle",
    )


@pytest.fixture
def sink(target: CollectionTarget) -> OutputSink:
    out = OutputSink(target.dest_dir)
    out.ensure_root()
    return out


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def outside_cluster(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make in-cluster config unavailable so the kubeconfig path is taken."""

    def no_incluster() -> None:
        raise ConfigException("Service host/port is not set.")

    monkeypatch.setattr("kubernetes.config.load_incluster_config", no_incluster)


def write_kubeconfig(path: Path, server: str) -> Path:
    path.write_text(
        yaml.safe_dump(
            {
                "apiVersion": "v1",
                "kind": "Config",
                "clusters": [{"name": "c", "cluster": {"server": server, "insecure-skip-tls-verify": True}}],
                "users": [{"name": "u", "user": {"token": "t"}}],
                "contexts": [{"name": "ctx", "context": {"cluster": "c", "user": "u"}}],
                "current-context": "ctx",
            }
        )
    )
    return path


def kepler_cluster(settings: Settings, pods: list[str] | None = None) -> FakeCluster:
    """A cluster with a Kepler instance, its internal object and exporter pods."""
    ns = "kepler-exporter-ns"
    exporter_labels = dict(term.split("=", 1) for term in settings.exporter_selector.split(","))
    fake = FakeCluster()
    fake.add(
        make_obj("Kepler", settings.instance_name),
        make_obj(
            "KeplerInternal",
            settings.instance_name,
            spec={"exporter": {"deployment": {"namespace": ns}}},
        ),
        make_obj("DaemonSet", "power-monitor-exporter", ns, exporter_labels),
        make_obj("ConfigMap", "power-monitor-exporter", ns, exporter_labels),
        make_obj("Event", "kepler.17a", ns),
    )
    for pod in pods or []:
        fake.add(make_obj("Pod", pod, ns, exporter_labels))
    return fake


def add_monitoring(fake: FakeCluster, settings: Settings, prometheus_pods: list[str]) -> None:
    fake.add(
        make_obj(
            "Route",
            settings.thanos_route,
            settings.monitoring_namespace,
            spec={"host": "thanos-querier.apps.example.com"},
        ),
        make_obj(
            "ConfigMap",
            settings.ca_bundle_configmap,
            settings.ca_bundle_namespace,
            data={"ca-bundle.crt": "-----BEGIN CERTIFICATE-----\n"},
        ),
    )
    for pod in prometheus_pods:
        fake.add(make_obj("Pod", pod, settings.uwm_namespace, {"app.kubernetes.io/name": "prometheus"}))
