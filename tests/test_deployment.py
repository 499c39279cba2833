from __future__ import annotations

import threading
import time
from collections import defaultdict

from configure_kit.deployment import (
    DeploymentState,
    deploy_artifact,
    group_by_package,
    run_deployments,
)
from configure_kit.models import DeploymentTask
from configure_kit.remote import RemoteError, StatusKind, classify_status
from configure_kit.stats import RunStats


def _task(artifact_id: str = "DEV_Flow1", package_id: str = "DEV_Pkg1") -> DeploymentTask:
    return DeploymentTask(artifact_id=artifact_id, package_id=package_id, artifact_type="Integration")


def test_classify_status() -> None:
    assert classify_status("NOT_DEPLOYED", "").kind is StatusKind.NOT_YET_VISIBLE
    assert classify_status("1.0", "STARTING").kind is StatusKind.STARTING
    assert classify_status("1.0", "STARTED").kind is StatusKind.STARTED
    other = classify_status("1.0", "ERROR")
    assert other.kind is StatusKind.OTHER
    assert other.raw == "ERROR"


def test_succeeds_after_starting_polls(fake_client, no_sleep) -> None:
    fake_client.statuses["DEV_Flow1"] = [("1.0", "STARTING"), ("1.0", "STARTING"), ("1.0", "STARTED")]

    outcome = deploy_artifact(fake_client, _task(), max_retries=3, delay_seconds=1, sleep=no_sleep)

    assert outcome.state is DeploymentState.SUCCEEDED
    assert outcome.attempts == 3
    assert no_sleep.calls == [1, 1, 1]
    assert outcome.history == (
        DeploymentState.TRIGGERED,
        DeploymentState.POLLING,
        DeploymentState.SUCCEEDED,
    )
    assert fake_client.calls_named("deploy") == [("deploy", "DEV_Flow1", "Integration")]


def test_error_status_fetches_error_detail(fake_client, no_sleep) -> None:
    fake_client.statuses["DEV_Flow1"] = [("1.0", "STARTING"), ("1.0", "ERROR")]
    fake_client.error_info["DEV_Flow1"] = "Invalid receiver address"

    outcome = deploy_artifact(fake_client, _task(), max_retries=5, delay_seconds=2, sleep=no_sleep)

    assert outcome.state is DeploymentState.FAILED
    assert "ERROR" in outcome.reason
    assert "Invalid receiver address" in outcome.reason
    # 두 번의 폴링 대기 + 에러 상세 조회 전 대기 한 번
    assert no_sleep.calls == [2, 2, 2]
    assert fake_client.calls_named("get_error_info") == [("get_error_info", "DEV_Flow1")]


def test_error_detail_fetch_failure_is_degraded_message(fake_client, no_sleep) -> None:
    fake_client.statuses["DEV_Flow1"] = [("1.0", "ERROR")]
    fake_client.error_info_fail = {"DEV_Flow1"}

    outcome = deploy_artifact(fake_client, _task(), max_retries=5, delay_seconds=1, sleep=no_sleep)

    assert outcome.state is DeploymentState.FAILED
    assert "error info unavailable" in outcome.reason


def test_trigger_failure_is_terminal(fake_client, no_sleep) -> None:
    fake_client.deploy_fail = {"DEV_Flow1"}

    outcome = deploy_artifact(fake_client, _task(), max_retries=5, delay_seconds=1, sleep=no_sleep)

    assert outcome.state is DeploymentState.FAILED
    assert fake_client.calls_named("get_runtime_status") == []
    assert no_sleep.calls == []
    # 요청이 받아들여지지 않았으므로 TRIGGERED 를 거치지 않는다.
    assert outcome.history == (DeploymentState.FAILED,)


def test_poll_errors_and_not_deployed_consume_retries(fake_client, no_sleep) -> None:
    fake_client.statuses["DEV_Flow1"] = [
        RemoteError("503"),
        ("NOT_DEPLOYED", ""),
        ("1.0", "STARTED"),
    ]

    outcome = deploy_artifact(fake_client, _task(), max_retries=3, delay_seconds=1, sleep=no_sleep)

    assert outcome.state is DeploymentState.SUCCEEDED
    assert outcome.attempts == 3


def test_times_out_after_max_retries(fake_client, no_sleep) -> None:
    fake_client.statuses["DEV_Flow1"] = [("1.0", "STARTING")] * 4

    outcome = deploy_artifact(fake_client, _task(), max_retries=4, delay_seconds=1, sleep=no_sleep)

    assert outcome.state is DeploymentState.TIMED_OUT
    assert not outcome.succeeded
    assert "4 attempts" in outcome.reason
    assert outcome.history[-1] is DeploymentState.TIMED_OUT
    assert DeploymentState.POLLING in outcome.history
    assert len(fake_client.calls_named("get_runtime_status")) == 4


def test_group_by_package_keeps_first_seen_order() -> None:
    tasks = [_task("A", "P2"), _task("B", "P1"), _task("C", "P2")]

    grouped = group_by_package(tasks)

    assert list(grouped) == ["P2", "P1"]
    assert [t.artifact_id for t in grouped["P2"]] == ["A", "C"]


def test_run_deployments_aggregates_isolated_outcomes(fake_client, no_sleep) -> None:
    fake_client.deploy_fail = {"B"}
    fake_client.statuses["C"] = [("1.0", "STARTING")] * 2
    tasks = [_task("A", "P1"), _task("B", "P1"), _task("C", "P2")]
    stats = RunStats()

    outcomes = run_deployments(
        fake_client,
        tasks,
        stats,
        max_retries=2,
        delay_seconds=0,
        parallel_deployments=2,
        sleep=no_sleep,
    )

    states = {o.task.artifact_id: o.state for o in outcomes}
    assert states == {
        "A": DeploymentState.SUCCEEDED,
        "B": DeploymentState.FAILED,
        "C": DeploymentState.TIMED_OUT,
    }
    assert stats.deployment_tasks_successful == 1
    assert stats.artifacts_deployed == 1
    assert stats.deployment_tasks_failed == 2


def test_parallel_limit_is_per_package(fake_client) -> None:
    lock = threading.Lock()
    active = defaultdict(int)
    peak = defaultdict(int)
    total = {"active": 0, "peak": 0}
    original_deploy = fake_client.deploy

    def slow_deploy(artifact_id: str, artifact_type: str) -> None:
        package = artifact_id.split("_")[0]
        with lock:
            active[package] += 1
            total["active"] += 1
            peak[package] = max(peak[package], active[package])
            total["peak"] = max(total["peak"], total["active"])
        time.sleep(0.1)
        original_deploy(artifact_id, artifact_type)
        with lock:
            active[package] -= 1
            total["active"] -= 1

    fake_client.deploy = slow_deploy
    tasks = [_task(f"{pkg}_A{i}", pkg) for pkg in ("P1", "P2") for i in range(5)]
    stats = RunStats()

    run_deployments(
        fake_client,
        tasks,
        stats,
        max_retries=1,
        delay_seconds=0,
        parallel_deployments=2,
        sleep=lambda _s: None,
    )

    assert stats.deployment_tasks_successful == 10
    assert peak["P1"] <= 2
    assert peak["P2"] <= 2
    # 패키지별 제한이므로 전체 동시 실행 수는 제한값을 넘을 수 있다.
    assert total["peak"] > 2
