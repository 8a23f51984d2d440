"""Tests for the collection stages."""

from pathlib import Path

from pydantic import SecretStr

from conftest import FakeCluster, kepler_cluster, make_obj
from kepler_must_gather.cluster import CollectionTarget, OutputSink
from kepler_must_gather.config import Settings
from kepler_must_gather.discovery import DiscoveryResult, MonitoringContext
from kepler_must_gather.stages import (
    PodDiagnosticSet,
    collect_instances,
    collect_monitoring,
    collect_olm_info,
    collect_operator_info,
    collect_workload,
)

POD_FILES = {"kepler-pod.yaml", "node-cpuid-info", "env-variables", "kernel-info", "ebpf-info", "kepler.log"}


def _files(root: Path) -> set[str]:
    return {str(p.relative_to(root)) for p in root.rglob("*") if p.is_file()}


class TestOlmInfo:
    def test_collects_olm_pods_logs_and_catalogs(self, settings: Settings, target: CollectionTarget, sink: OutputSink) -> None:
        olm = settings.olm_namespace
        fake = FakeCluster(
            [
                make_obj("Pod", "olm-operator-1", olm, {"app": "olm-operator"}),
                make_obj("Pod", "catalog-operator-1", olm, {"app": "catalog-operator"}),
                make_obj("CatalogSource", "redhat-operators", settings.marketplace_namespace),
                make_obj("PackageManifest", "kepler-operator", settings.marketplace_namespace),
            ]
        )

        collect_olm_info(fake, sink, target, settings)

        assert _files(sink.root) == {
            "olm-info/olm-pods.yaml",
            "olm-info/olm-operator-1.log",
            "olm-info/catalog-operator-1.log",
            "olm-info/packagemanifest.yaml",
            "olm-info/catalogsources.yaml",
        }
        assert ("logs", "olm-operator-1", "olm-operator", olm) in fake.calls


class TestOperatorInfo:
    def _cluster(self, ns: str, operator: str) -> FakeCluster:
        label = {f"operators.coreos.com/{operator}.{ns}": ""}
        return FakeCluster(
            [
                make_obj("Subscription", operator, ns, label, spec={"source": "my-catalog", "sourceNamespace": "cat-ns"}),
                make_obj("CatalogSource", "my-catalog", "cat-ns"),
                make_obj("InstallPlan", "install-abc", ns, label),
                make_obj("ClusterServiceVersion", f"{operator}.v0.1.0", ns, label),
                make_obj("Deployment", f"{operator}-controller", ns, label),
                make_obj(
                    "Pod",
                    f"{operator}-controller-xyz",
                    ns,
                    label,
                    spec={"containers": [{"name": "manager"}, {"name": "kube-rbac-proxy"}]},
                ),
            ]
        )

    def test_scoped_to_namespace_and_operator(self, settings: Settings, tmp_path: Path) -> None:
        target = CollectionTarget(operator_name="bar", operator_namespace="foo", dest_dir=tmp_path / "x")
        sink = OutputSink(target.dest_dir)
        fake = self._cluster("foo", "bar")

        collect_operator_info(fake, sink, target, settings)

        selector = "operators.coreos.com/bar.foo"
        for _, kind, what, namespace in fake.calls_of("get"):
            if kind == "CatalogSource":
                assert (what, namespace) == ("my-catalog", "cat-ns")
            else:
                assert what == selector
                assert namespace == "foo"
        assert _files(sink.root) >= {
            "bar-info/subscription.yaml",
            "bar-info/catalogsource.yaml",
            "bar-info/installplan.yaml",
            "bar-info/csv.yaml",
            "bar-info/deployment.yaml",
            "bar-info/pod.yaml",
            "bar-info/bar-controller-xyz-manager.log",
            "bar-info/bar-controller-xyz-kube-rbac-proxy.log",
            "bar-info/summary.txt",
        }

    def test_summary_order(self, settings: Settings, target: CollectionTarget, sink: OutputSink) -> None:
        fake = self._cluster(target.operator_namespace, target.operator_name)

        collect_operator_info(fake, sink, target, settings)

        summary = (sink.root / f"{target.operator_name}-info" / "summary.txt").read_text()
        titles = [line[2:] for line in summary.splitlines() if line.startswith("# ")][1:]
        assert titles == [
            "CatalogSource",
            "Subscription",
            "InstallPlan",
            "ClusterServiceVersion",
            "Deployment",
            "Pod",
        ]

    def test_missing_subscription_falls_back(self, settings: Settings, target: CollectionTarget, sink: OutputSink) -> None:
        fake = FakeCluster()
        collect_operator_info(fake, sink, target, settings)
        assert fake.tally.failed == 0
        assert fake.tally.written == 0


class TestInstances:
    def test_both_kinds(self, settings: Settings, sink: OutputSink) -> None:
        fake = kepler_cluster(settings)
        assert collect_instances(fake, sink) is True
        assert {"keplers.yaml", "kepler-internals.yaml"} <= _files(sink.root)

    def test_internals_follow_kepler_names(self, sink: OutputSink) -> None:
        fake = FakeCluster(
            [
                make_obj("Kepler", "kepler"),
                make_obj("Kepler", "kepler-lab"),
                make_obj("KeplerInternal", "kepler"),
                make_obj("KeplerInternal", "kepler-lab"),
                make_obj("KeplerInternal", "orphan"),
            ]
        )

        assert collect_instances(fake, sink) is True

        internal_gets = [c[2] for c in fake.calls_of("get") if c[1] == "KeplerInternal"]
        assert internal_gets == ["kepler", "kepler-lab"]
        docs = (sink.root / "kepler-internals.yaml").read_text()
        assert docs.count("kind: KeplerInternal") == 2
        assert "---\n" in docs
        assert "orphan" not in docs

    def test_stops_without_kepler(self, sink: OutputSink) -> None:
        fake = FakeCluster([make_obj("KeplerInternal", "kepler")])
        assert collect_instances(fake, sink) is False
        assert [c[1] for c in fake.calls_of("get")] == ["Kepler"]
        assert _files(sink.root) == set()


class TestWorkload:
    NS = "kepler-exporter-ns"

    def _discovery(self, pods: list[str]) -> DiscoveryResult:
        return DiscoveryResult(workload_namespace=self.NS, workload_pods=pods)

    def test_one_directory_per_pod(self, settings: Settings, sink: OutputSink) -> None:
        pods = ["kepler-a", "kepler-b", "kepler-c"]
        fake = kepler_cluster(settings, pods)

        collect_workload(fake, sink, settings, self._discovery(pods))

        pod_root = sink.root / "kepler-info"
        assert sorted(p.name for p in pod_root.iterdir()) == pods
        for pod in pods:
            assert {p.name for p in (pod_root / pod).iterdir()} == POD_FILES
        files = _files(sink.root)
        assert {f"{self.NS}_events", "kepler-ds.yaml", "kepler-cm.yaml"} <= files
        assert ("exec", "kepler-a", "kepler-exporter", self.NS, ("cpuid", "-1")) in fake.calls

    def test_failed_step_does_not_stop_the_others(self, settings: Settings, sink: OutputSink) -> None:
        fake = kepler_cluster(settings, ["kepler-a"])
        fake.failing_commands.add("cpuid")

        collect_workload(fake, sink, settings, self._discovery(["kepler-a"]))

        written = {p.name for p in (sink.root / "kepler-info" / "kepler-a").iterdir()}
        assert written == POD_FILES - {"node-cpuid-info"}
        assert fake.tally.failed == 1

    def test_failed_pod_does_not_stop_later_pods(self, settings: Settings, sink: OutputSink) -> None:
        pods = ["kepler-a", "kepler-b"]
        fake = kepler_cluster(settings, ["kepler-b"])
        fake.failing_pods.add("kepler-a")

        collect_workload(fake, sink, settings, self._discovery(pods))

        pod_root = sink.root / "kepler-info"
        assert sorted(p.name for p in pod_root.iterdir()) == pods
        assert list((pod_root / "kepler-a").iterdir()) == []
        assert {p.name for p in (pod_root / "kepler-b").iterdir()} == POD_FILES

    def test_unexpected_error_in_one_pod(self, settings: Settings, sink: OutputSink) -> None:
        fake = kepler_cluster(settings, ["kepler-a", "kepler-b"])
        original = fake.run

        def flaky(pod, container, namespace, command):
            if pod == "kepler-a":
                raise RuntimeError("websocket closed")
            return original(pod, container, namespace, command)

        fake.run = flaky
        collect_workload(fake, sink, settings, self._discovery(["kepler-a", "kepler-b"]))

        assert {p.name for p in (sink.root / "kepler-info" / "kepler-a").iterdir()} == {"kepler-pod.yaml"}
        assert {p.name for p in (sink.root / "kepler-info" / "kepler-b").iterdir()} == POD_FILES
        assert "pod kepler-exporter-ns/kepler-a: websocket closed" in fake.tally.failures

    def test_diagnostic_set_paths(self) -> None:
        diag = PodDiagnosticSet(pod_name="kepler-a", container_name="kepler-exporter", output_dir="kepler-info/kepler-a")
        assert diag.path("kernel-info") == "kepler-info/kepler-a/kernel-info"

    def test_no_namespace_makes_no_calls(self, settings: Settings, sink: OutputSink) -> None:
        fake = kepler_cluster(settings, ["kepler-a"])
        collect_workload(fake, sink, settings, DiscoveryResult())
        assert fake.calls == []

    def test_zero_pods(self, settings: Settings, sink: OutputSink) -> None:
        fake = kepler_cluster(settings)
        collect_workload(fake, sink, settings, self._discovery([]))
        assert fake.calls_of("exec") == []
        assert not (sink.root / "kepler-info").exists()

    def test_log_tail(self, settings: Settings, sink: OutputSink) -> None:
        settings.log_tail_lines = 500
        fake = kepler_cluster(settings, ["kepler-a"])
        collect_workload(fake, sink, settings, self._discovery(["kepler-a"]))
        assert fake._logs.read_namespaced_pod_log.call_args.kwargs["tail_lines"] == 500


class TestMonitoring:
    def test_rules_and_per_pod_endpoints(self, settings: Settings, sink: OutputSink) -> None:
        fake = FakeCluster()
        ctx = MonitoringContext(
            route_host="thanos.apps.example.com",
            ca_bundle_path=sink.root / "uwm-info" / "ca-bundle.crt",
            service_account_token=SecretStr("tok"),
            prometheus_pods=["prometheus-user-workload-0", "prometheus-user-workload-1"],
        )

        collect_monitoring(fake, sink, settings, ctx)

        files = _files(sink.root)
        assert "uwm-info/rules.json" in files
        for pod in ctx.prometheus_pods:
            assert {
                f"uwm-info/{pod}/status/runtimeinfo.json",
                f"uwm-info/{pod}/status/config.json",
                f"uwm-info/{pod}/active-targets.json",
                f"uwm-info/{pod}/status/tsdb.json",
            } <= files
        url = fake._http.get.call_args.args[0]
        assert url == "https://thanos.apps.example.com/api/v1/rules"
        commands = [c[4] for c in fake.calls_of("exec")]
        assert ("curl", "-sS", "--fail", "http://localhost:9090/api/v1/targets?state=active") in commands
        assert all(c[3] == settings.uwm_namespace for c in fake.calls_of("exec"))
