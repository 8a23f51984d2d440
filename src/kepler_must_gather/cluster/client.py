"""Blocking cluster reads (get, exec, logs, token) paired with an output sink."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Sequence

import requests
import urllib3
import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import NotFoundError, ResourceNotFoundError
from kubernetes.stream import stream
from websocket import WebSocketException

from kepler_must_gather.cluster.models import CollectionResult, Outcome, ResourceQuery, RunTally
from kepler_must_gather.cluster.sink import OutputSink
from kepler_must_gather.errors import GatherError, QueryError, ResourceNotFound

logger = logging.getLogger(__name__)

# Server-side table rendering, the same thing `kubectl get -o wide` asks for
TABLE_ACCEPT = "application/json;as=Table;v=v1;g=meta.k8s.io,application/json"

_TRANSPORT_ERRORS = (urllib3.exceptions.HTTPError, OSError)


def _load_kube_config(kubeconfig_path: str | None, context: str | None) -> client.Configuration:
    """Load in-cluster or kubeconfig-based configuration."""
    try:
        config.load_incluster_config()
        return client.Configuration.get_default_copy()
    except config.ConfigException:
        pass
    kwargs: dict[str, Any] = {}
    if kubeconfig_path:
        kwargs["config_file"] = str(kubeconfig_path)
    if context:
        kwargs["context"] = context
    config.load_kube_config(**kwargs)
    return client.Configuration.get_default_copy()


def _is_empty_list(obj: dict[str, Any]) -> bool:
    return str(obj.get("kind", "")).endswith("List") and not obj.get("items")


def serialize(obj: dict[str, Any], output_format: str) -> str:
    if output_format == "json":
        return json.dumps(obj, indent=2) + "\n"
    return yaml.safe_dump(obj, default_flow_style=False, sort_keys=False)


def render_table(table: dict[str, Any], title: str | None = None) -> str:
    """Render a meta.k8s.io Table as aligned text, all columns included."""
    headers = [str(c.get("name", "")).upper() for c in table.get("columnDefinitions") or []]
    rows = [
        ["<none>" if cell in (None, "") else str(cell) for cell in row.get("cells", [])]
        for row in table.get("rows") or []
    ]
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row[: len(widths)]):
            widths[i] = max(widths[i], len(cell))
    lines = []
    if title:
        lines.append(f"# {title}")
    for row in [headers, *rows]:
        lines.append("   ".join(cell.ljust(widths[i]) for i, cell in enumerate(row[: len(widths)])).rstrip())
    return "\n".join(lines) + "\n\n"


class ClusterQueryClient:
    """Thin synchronous wrapper over the Kubernetes API.

    Every method that produces bundle output returns a CollectionResult and
    records it in the run tally; nothing here retries. Lower-level readers
    used by discovery (fetch, list_names, run, issue_token) raise
    ResourceNotFound or QueryError instead.
    """

    def __init__(
        self,
        core: client.CoreV1Api,
        dynamic: DynamicClient,
        tally: RunTally | None = None,
        http: requests.Session | None = None,
    ) -> None:
        self._core = core
        self._dynamic = dynamic
        self._http = http or requests.Session()
        self.tally = tally or RunTally()

    # raw readers

    def fetch(
        self,
        kind: str,
        api_version: str = "v1",
        name: str | None = None,
        selector: str | None = None,
        namespace: str | None = None,
        **params: Any,
    ) -> dict[str, Any]:
        """Read one object (by name) or a list (by selector, or all) as a plain dict."""
        try:
            resource = self._dynamic.resources.get(api_version=api_version, kind=kind)
            obj = resource.get(name=name, namespace=namespace, label_selector=selector, **params)
        except ResourceNotFoundError as e:
            raise ResourceNotFound(f"kind {kind} ({api_version}) is not served by this cluster") from e
        except NotFoundError as e:
            raise ResourceNotFound(f"{kind} {name or selector} not found") from e
        except ApiException as e:
            if e.status == 404:
                raise ResourceNotFound(f"{kind} {name or selector} not found") from e
            raise QueryError(f"{e.status} {e.reason}") from e
        except _TRANSPORT_ERRORS as e:
            raise QueryError(str(e)) from e
        return obj.to_dict() if hasattr(obj, "to_dict") else dict(obj)

    def exists(self, kind: str, api_version: str, name: str, namespace: str | None = None) -> bool:
        try:
            self.fetch(kind, api_version, name=name, namespace=namespace)
        except ResourceNotFound:
            return False
        return True

    def list_names(
        self,
        kind: str,
        api_version: str = "v1",
        selector: str | None = None,
        namespace: str | None = None,
    ) -> list[str]:
        """Names of matching objects, sorted. Empty is a valid answer; errors raise."""
        try:
            obj = self.fetch(kind, api_version, selector=selector, namespace=namespace)
        except ResourceNotFound:
            return []
        return sorted(item["metadata"]["name"] for item in obj.get("items") or [])

    def run(self, pod: str, container: str, namespace: str, command: Sequence[str]) -> str:
        """Run a command in a container and return its stdout; non-zero exit raises."""
        try:
            resp = stream(
                self._core.connect_get_namespaced_pod_exec,
                pod,
                namespace,
                container=container,
                command=list(command),
                stderr=True,
                stdin=False,
                stdout=True,
                tty=False,
                _preload_content=False,
            )
            stdout: list[str] = []
            stderr: list[str] = []
            while resp.is_open():
                resp.update(timeout=1)
                if resp.peek_stdout():
                    stdout.append(resp.read_stdout())
                if resp.peek_stderr():
                    stderr.append(resp.read_stderr())
            stdout.append(resp.read_stdout())
            stderr.append(resp.read_stderr())
            resp.close()
            returncode = resp.returncode
        except ApiException as e:
            if e.status == 404:
                raise ResourceNotFound(f"pod {pod} not found") from e
            raise QueryError(f"{e.status} {e.reason}") from e
        except (WebSocketException, *_TRANSPORT_ERRORS) as e:
            raise QueryError(str(e)) from e
        except (TypeError, KeyError, ValueError) as e:
            # malformed status on the error channel
            raise QueryError(f"could not read exit status: {e}") from e
        if returncode != 0:
            err = "".join(stderr).strip()
            raise QueryError(f"exit code {returncode}" + (f": {err}" if err else ""))
        return "".join(stdout)

    def issue_token(self, service_account: str, namespace: str, expiration_seconds: int = 600) -> str:
        """Request a short-lived token for a service account."""
        body = client.AuthenticationV1TokenRequest(
            spec=client.V1TokenRequestSpec(audiences=[], expiration_seconds=expiration_seconds)
        )
        try:
            resp = self._core.create_namespaced_service_account_token(
                name=service_account, namespace=namespace, body=body
            )
        except ApiException as e:
            if e.status == 404:
                raise ResourceNotFound(f"serviceaccount {service_account} not found in {namespace}") from e
            raise QueryError(f"{e.status} {e.reason}") from e
        except _TRANSPORT_ERRORS as e:
            raise QueryError(str(e)) from e
        token = getattr(resp.status, "token", None) if resp.status else None
        if not token:
            raise QueryError(f"empty token issued for {namespace}/{service_account}")
        return token

    # collection calls

    def get(self, query: ResourceQuery, sink: OutputSink, append: bool = False) -> CollectionResult:
        """Read a resource and write it to query.output_path."""
        desc = f"get {query.describe()}"
        try:
            if query.output_format == "wide":
                table = self.fetch(
                    query.kind,
                    query.api_version,
                    name=query.name,
                    selector=query.selector,
                    namespace=query.namespace,
                    header_params={"Accept": TABLE_ACCEPT},
                )
                if not table.get("rows"):
                    return self._skip(desc, "no resources found")
                content = render_table(table, title=query.kind)
            else:
                obj = self.fetch(
                    query.kind,
                    query.api_version,
                    name=query.name,
                    selector=query.selector,
                    namespace=query.namespace,
                )
                if _is_empty_list(obj):
                    return self._skip(desc, "no resources found")
                content = serialize(obj, query.output_format)
                if append and query.output_format == "yaml":
                    content = "---\n" + content
        except ResourceNotFound as e:
            return self._skip(desc, str(e))
        except QueryError as e:
            return self._fail(desc, str(e))
        return self._write(desc, sink, query.output_path, content, append=append)

    def exec(
        self,
        pod: str,
        container: str,
        namespace: str,
        command: Sequence[str],
        output_path: str | Path,
        sink: OutputSink,
    ) -> CollectionResult:
        desc = f"exec {namespace}/{pod} -c {container} -- {' '.join(command)}"
        try:
            output = self.run(pod, container, namespace, command)
        except ResourceNotFound as e:
            return self._skip(desc, str(e))
        except QueryError as e:
            return self._fail(desc, str(e))
        return self._write(desc, sink, output_path, output)

    def logs(
        self,
        pod: str,
        container: str | None,
        namespace: str,
        output_path: str | Path,
        sink: OutputSink,
        tail_lines: int | None = None,
        previous: bool = False,
    ) -> CollectionResult:
        desc = f"logs {namespace}/{pod}" + (f" -c {container}" if container else "")
        kwargs: dict[str, Any] = {"timestamps": False, "previous": previous}
        if container:
            kwargs["container"] = container
        if tail_lines:
            kwargs["tail_lines"] = tail_lines
        try:
            text = self._core.read_namespaced_pod_log(name=pod, namespace=namespace, **kwargs)
        except ApiException as e:
            if e.status == 404:
                return self._skip(desc, f"pod {pod} not found")
            return self._fail(desc, f"{e.status} {e.reason}")
        except _TRANSPORT_ERRORS as e:
            return self._fail(desc, str(e))
        return self._write(desc, sink, output_path, text or "")

    def fetch_url(
        self,
        url: str,
        token: str,
        ca_bundle: str | Path,
        output_path: str | Path,
        sink: OutputSink,
    ) -> CollectionResult:
        """Authenticated GET against a cluster route (token is never logged)."""
        desc = f"GET {url}"
        try:
            resp = self._http.get(
                url,
                headers={"Authorization": f"Bearer {token}"},
                verify=str(ca_bundle),
            )
            resp.raise_for_status()
        except requests.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                return self._skip(desc, "404 Not Found")
            return self._fail(desc, str(e))
        except requests.RequestException as e:
            return self._fail(desc, str(e))
        return self._write(desc, sink, output_path, resp.text)

    # outcome bookkeeping

    def _write(
        self,
        desc: str,
        sink: OutputSink,
        output_path: str | Path,
        content: str,
        append: bool = False,
    ) -> CollectionResult:
        try:
            path = sink.append(output_path, content) if append else sink.write(output_path, content)
        except OSError as e:
            return self._fail(desc, f"write {output_path}: {e}")
        logger.debug("%s -> %s", desc, path)
        return self.tally.record(CollectionResult(outcome=Outcome.WRITTEN, description=desc))

    def _skip(self, desc: str, reason: str) -> CollectionResult:
        logger.info("skipped %s: %s", desc, reason)
        return self.tally.record(CollectionResult(outcome=Outcome.SKIPPED, description=desc, error=reason))

    def _fail(self, desc: str, reason: str) -> CollectionResult:
        logger.warning("failed %s: %s", desc, reason)
        return self.tally.record(CollectionResult(outcome=Outcome.FAILED, description=desc, error=reason))


def connect(
    kubeconfig: str | None = None,
    context: str | None = None,
    cache_dir: str | None = None,
    tally: RunTally | None = None,
) -> ClusterQueryClient:
    """Build a client from in-cluster config or kubeconfig.

    The dynamic client's discovery cache is kept under cache_dir so a run never
    reads or pollutes the shared cache of other tools.
    """
    try:
        cfg = _load_kube_config(kubeconfig, context)
        api = client.ApiClient(cfg)
        cache_file = os.path.join(cache_dir, "discovery.json") if cache_dir else None
        dynamic = DynamicClient(api, cache_file=cache_file)
    except (config.ConfigException, ApiException, *_TRANSPORT_ERRORS) as e:
        raise GatherError(f"cannot connect to cluster: {e}") from e
    return ClusterQueryClient(core=client.CoreV1Api(api), dynamic=dynamic, tally=tally)
