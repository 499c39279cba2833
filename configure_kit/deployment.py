"""
deployment
----------

설정이 끝난 아티팩트를 배포하고, 런타임 상태를 폴링해 결과를 판정한다.

- deploy_artifact: 작업 하나에 대한 상태 머신
  (TRIGGERED -> POLLING -> SUCCEEDED | FAILED | TIMED_OUT)
- run_deployments: 패키지별로 작업을 묶고, 패키지마다 별도의 세마포어로
  동시 배포 수를 제한하면서 모든 패키지를 동시에 진행한다.

결과는 큐 하나로 모으고, 모든 스레드가 끝난 뒤 수집기 하나만 RunStats 를 갱신한다.
"""

from __future__ import annotations

import enum
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence, Tuple

from .logging_utils import get_logger
from .models import DeploymentTask
from .remote import RemoteClient, StatusKind, classify_status
from .stats import RunStats


logger = get_logger(__name__)


class DeploymentState(enum.Enum):
    TRIGGERED = "triggered"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class DeploymentOutcome:
    task: DeploymentTask
    state: DeploymentState
    reason: str = ""
    attempts: int = 0
    # 거쳐 간 상태들 (마지막 값은 state 와 같다)
    history: Tuple[DeploymentState, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.state is DeploymentState.SUCCEEDED


def deploy_artifact(
    client: RemoteClient,
    task: DeploymentTask,
    *,
    max_retries: int,
    delay_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
) -> DeploymentOutcome:
    artifact_id = task.artifact_id
    history: List[DeploymentState] = []

    def _enter(state: DeploymentState) -> None:
        history.append(state)
        logger.debug("    %s: %s", artifact_id, state.value)

    def _finish(state: DeploymentState, reason: str = "", attempts: int = 0) -> DeploymentOutcome:
        _enter(state)
        return DeploymentOutcome(task, state, reason, attempts, tuple(history))

    logger.info("    배포 요청: %s (type: %s)", artifact_id, task.artifact_type)
    try:
        client.deploy(artifact_id, task.artifact_type)
    except Exception as e:  # noqa: BLE001
        return _finish(DeploymentState.FAILED, f"배포 요청 실패: {e}")

    _enter(DeploymentState.TRIGGERED)
    logger.info("    배포 요청 완료, 상태 확인 시작: %s", artifact_id)
    _enter(DeploymentState.POLLING)

    for attempt in range(1, max_retries + 1):
        sleep(delay_seconds)

        try:
            version, raw_status = client.get_runtime_status(artifact_id)
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "    배포 상태 조회 실패 (%d/%d): %s (%s)", attempt, max_retries, artifact_id, e
            )
            continue

        status = classify_status(version, raw_status)
        logger.info(
            "    상태 확인 %d/%d - %s: status=%s, version=%s",
            attempt,
            max_retries,
            artifact_id,
            status.raw,
            status.version,
        )

        if status.kind in (StatusKind.NOT_YET_VISIBLE, StatusKind.STARTING):
            continue

        if status.kind is StatusKind.STARTED:
            return _finish(DeploymentState.SUCCEEDED, attempts=attempt)

        # STARTED/STARTING 이외의 상태는 실패로 확정하고 상세 에러를 가져온다.
        sleep(delay_seconds)
        try:
            detail = client.get_error_info(artifact_id)
        except Exception as e:  # noqa: BLE001
            detail = f"에러 상세 조회 실패 ({e})"
        return _finish(
            DeploymentState.FAILED,
            f"deployment failed with status {status.raw}: {detail}",
            attempts=attempt,
        )

    return _finish(
        DeploymentState.TIMED_OUT,
        f"deployment status check timed out after {max_retries} attempts",
        attempts=max_retries,
    )


def group_by_package(tasks: Sequence[DeploymentTask]) -> Dict[str, List[DeploymentTask]]:
    grouped: Dict[str, List[DeploymentTask]] = {}
    for task in tasks:
        grouped.setdefault(task.package_id, []).append(task)
    return grouped


def run_deployments(
    client: RemoteClient,
    tasks: Sequence[DeploymentTask],
    stats: RunStats,
    *,
    max_retries: int,
    delay_seconds: float,
    parallel_deployments: int,
    sleep: Callable[[float], None] = time.sleep,
) -> List[DeploymentOutcome]:
    """
    모든 작업을 배포하고 결과를 RunStats 에 반영한다.

    동시 배포 제한은 패키지 단위이므로, 여러 패키지가 동시에 배포되면
    전체 동시 배포 수는 parallel_deployments 를 넘을 수 있다.
    """
    grouped = group_by_package(tasks)
    logger.info("%d 개 패키지에 걸쳐 배포를 시작합니다.", len(grouped))

    results: queue.Queue[DeploymentOutcome] = queue.Queue(maxsize=len(tasks))
    threads: List[threading.Thread] = []

    def _worker(task: DeploymentTask, gate: threading.BoundedSemaphore) -> None:
        with gate:
            logger.info("  배포 시작: %s (type: %s)", task.artifact_id, task.artifact_type)
            try:
                outcome = deploy_artifact(
                    client,
                    task,
                    max_retries=max_retries,
                    delay_seconds=delay_seconds,
                    sleep=sleep,
                )
            except Exception as e:  # noqa: BLE001
                logger.exception("  배포 처리 중 예외: %s", task.artifact_id)
                outcome = DeploymentOutcome(
                    task, DeploymentState.FAILED, str(e), history=(DeploymentState.FAILED,)
                )
        results.put(outcome)

    for package_id, pkg_tasks in grouped.items():
        logger.info("패키지 %s: %d 개 아티팩트 배포", package_id, len(pkg_tasks))
        gate = threading.BoundedSemaphore(parallel_deployments)
        for task in pkg_tasks:
            t = threading.Thread(
                target=_worker,
                args=(task, gate),
                name=f"deploy-{task.artifact_id}",
                daemon=True,
            )
            threads.append(t)
            t.start()

    for t in threads:
        t.join()

    outcomes: List[DeploymentOutcome] = []
    while True:
        try:
            outcome = results.get_nowait()
        except queue.Empty:
            break
        outcomes.append(outcome)

        if outcome.succeeded:
            logger.info("  배포 성공: %s", outcome.task.artifact_id)
            stats.deployment_tasks_successful += 1
            stats.artifacts_deployed += 1
        else:
            logger.error("  배포 실패: %s (%s)", outcome.task.artifact_id, outcome.reason)
            stats.deployment_tasks_failed += 1

    return outcomes
