"""Tests for the kubectl wrapper and its parsed views."""

from __future__ import annotations

import json

import pytest

from airflow_deploykit.clients.kubectl import Kubectl, NodeInfo, PodInfo, ServiceInfo
from airflow_deploykit.errors import CommandError
from airflow_deploykit.testing import (
    FakeCommandRunner,
    container_status,
    items_json,
    node_item,
    pod_item,
    secret_item,
    service_item,
)


@pytest.fixture
def kubectl(runner: FakeCommandRunner) -> Kubectl:
    return Kubectl(runner=runner, namespace="airflow")


class TestPodInfo:
    """Tests for PodInfo parsing."""

    def test_ready_pod(self):
        pod = PodInfo.from_item(pod_item("airflow-scheduler-0", component="scheduler"))

        assert pod.component == "scheduler"
        assert pod.ready is True
        assert pod.settled is True

    def test_running_pod_with_unready_container(self):
        pod = PodInfo.from_item(
            pod_item(
                "airflow-worker-0",
                component="worker",
                containers=[
                    container_status("worker"),
                    container_status("git-sync", ready=False, restarts=4, state="waiting", reason="CrashLoopBackOff"),
                ],
            )
        )

        assert pod.ready is False
        assert pod.restarts == 4
        assert pod.container("git-sync").reason == "CrashLoopBackOff"

    def test_completed_job_pod_is_settled(self):
        pod = PodInfo.from_item(
            pod_item(
                "airflow-run-airflow-migrations-x",
                phase="Succeeded",
                component="run-airflow-migrations",
                containers=[container_status("run-airflow-migrations", ready=False, state="terminated", reason="Completed")],
            )
        )

        assert pod.ready is False
        assert pod.settled is True

    def test_init_containers_are_searched(self):
        pod = PodInfo.from_item(
            pod_item(
                "airflow-scheduler-0",
                component="scheduler",
                init_containers=[container_status("git-sync-init", ready=False, state="terminated", reason="Completed")],
            )
        )

        assert pod.container("git-sync-init").state == "terminated"
        assert pod.container("missing") is None


class TestNodeAndServiceInfo:
    """Tests for node and service parsing."""

    def test_node_prefers_external_ip(self):
        node = NodeInfo.from_item(node_item("n1", external_ip="203.0.113.5"))

        assert node.ready is True
        assert node.reachable_address == "203.0.113.5"

    def test_node_falls_back_to_internal_ip(self):
        node = NodeInfo.from_item(node_item("n1", ready=False))

        assert node.ready is False
        assert node.reachable_address == "192.168.1.10"

    def test_service_ports(self):
        service = ServiceInfo.from_item(service_item("airflow-webserver"))

        port = service.port("airflow-ui")
        assert (port.port, port.node_port) == (8080, 30080)
        assert service.port("other") is port

    def test_load_balancer_ips(self):
        service = ServiceInfo.from_item(
            service_item("airflow-webserver", type="LoadBalancer", ingress_ips=["198.51.100.7"])
        )

        assert service.external_ips == ("198.51.100.7",)


class TestKubectl:
    """Tests for Kubectl commands."""

    def test_get_pods_with_selector(self, runner, kubectl):
        runner.respond(["get", "pods"], stdout=items_json(pod_item("a", component="scheduler")))

        pods = kubectl.get_pods("release=airflow")

        assert [p.name for p in pods] == ["a"]
        assert runner.commands == [
            ("kubectl", "--namespace", "airflow", "get", "pods", "-l", "release=airflow", "-o", "json")
        ]

    def test_context_is_passed(self, runner):
        Kubectl(runner=runner, namespace="airflow", context="kind-dev").get_nodes()

        assert runner.commands[0][:3] == ("kubectl", "--context", "kind-dev")

    def test_create_namespace_when_missing(self, runner, kubectl):
        runner.respond(["get", "namespace", "airflow"], returncode=1, stderr="NotFound")

        assert kubectl.create_namespace() is True
        assert runner.called(["create", "namespace", "airflow"])

    def test_create_namespace_when_present(self, runner, kubectl):
        assert kubectl.create_namespace() is False
        assert not runner.called(["create", "namespace"])

    def test_missing_service(self, runner, kubectl):
        runner.respond(["get", "service"], returncode=1, stderr="NotFound")

        assert kubectl.get_service("airflow-webserver") is None

    def test_get_service(self, runner, kubectl):
        runner.respond(["get", "service"], stdout=json.dumps(service_item("airflow-webserver")))

        assert kubectl.get_service("airflow-webserver").type == "NodePort"

    def test_secret_data_is_decoded(self, runner, kubectl, fernet_key):
        runner.respond(
            ["get", "secret", "airflow-fernet-key"],
            stdout=json.dumps(secret_item("airflow-fernet-key", {"fernet-key": fernet_key})),
        )

        assert kubectl.get_secret_data("airflow-fernet-key") == {"fernet-key": fernet_key}
        assert kubectl.secret_keys("airflow-fernet-key") == ["fernet-key"]

    def test_missing_secret_data(self, runner, kubectl):
        runner.respond(["get", "secret"], returncode=1, stderr="NotFound")

        assert kubectl.get_secret_data("nope") == {}

    def test_create_missing_secret(self, runner, kubectl):
        runner.respond(["get", "secret"], returncode=1, stderr="NotFound")

        kubectl.create_secret("airflow-metadata", {"connection": "postgresql://db/airflow"})

        assert runner.commands[-1][3:] == (
            "create",
            "secret",
            "generic",
            "airflow-metadata",
            "--from-literal=connection=postgresql://db/airflow",
        )

    def test_existing_secret_is_kept(self, runner, kubectl):
        assert kubectl.create_secret("airflow-metadata", {"connection": "x"}) is None
        assert not runner.called(["create", "secret"])

    def test_replace_pipes_rendered_manifest(self, runner, kubectl):
        runner.respond(["create", "secret", "--dry-run=client"], stdout="kind: Secret\n")

        kubectl.create_secret("airflow-fernet-key", {"fernet-key": "new,old"}, replace=True)

        render, replace = runner.commands[-2:]
        assert render[-3:] == ("--dry-run=client", "-o", "yaml")
        assert replace[3:] == ("replace", "-f", "-")
        assert runner.stdin == [(replace, "kind: Secret\n")]
        assert not runner.called(["delete", "secret"])

    def test_failed_replace_leaves_secret_in_place(self, runner, kubectl):
        runner.respond(["replace", "-f", "-"], returncode=1, stderr="etcdserver: request timed out")

        with pytest.raises(CommandError, match="request timed out"):
            kubectl.create_secret("airflow-fernet-key", {"fernet-key": "new,old"}, replace=True)

        assert not runner.called(["delete", "secret"])

    def test_logs(self, runner, kubectl):
        runner.respond(["logs", "pod-a"], stdout="boom\n")

        logs = kubectl.logs("pod-a", container="git-sync", tail=20, previous=True)

        assert logs == "boom\n"
        assert runner.commands[0][-5:] == ("pod-a", "-c", "git-sync", "--tail=20", "--previous")

    def test_exec(self, runner, kubectl):
        kubectl.exec("deployment/airflow-scheduler", ["airflow", "rotate-fernet-key"], container="scheduler")

        assert runner.commands[0][3:] == (
            "exec",
            "deployment/airflow-scheduler",
            "-c",
            "scheduler",
            "--",
            "airflow",
            "rotate-fernet-key",
        )

    def test_rollout(self, runner, kubectl):
        kubectl.rollout_restart("deployment/airflow-scheduler")
        kubectl.rollout_status("deployment/airflow-scheduler", timeout="2m")

        assert runner.called(["rollout", "restart", "deployment/airflow-scheduler"])
        assert runner.called(["rollout", "status", "deployment/airflow-scheduler", "--timeout=2m"])

    def test_resource_exists(self, runner, kubectl):
        runner.respond(["get", "statefulset/airflow-triggerer"], returncode=1, stderr="NotFound")

        assert kubectl.resource_exists("deployment/airflow-triggerer") is True
        assert kubectl.resource_exists("statefulset/airflow-triggerer") is False

    def test_port_forward_argv(self, kubectl):
        argv = kubectl.port_forward_argv("svc/airflow-webserver", 8080, 8080)

        assert argv[-3:] == ["port-forward", "svc/airflow-webserver", "8080:8080"]
