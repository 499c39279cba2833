"""
parameters
----------

아티팩트 단위 파라미터 업데이트.

- batch: 현재 원격 파라미터를 조회해 존재하는 key 만 일괄 업데이트한다.
  배치 전송 자체가 실패하면 선언된 파라미터 전체를 개별 업데이트로 한 번만 다시 시도한다.
- individual: 파라미터마다 개별 호출. 실패가 있어도 나머지는 계속 진행한다.

이미 반영된 값은 되돌리지 않는다. 실패가 하나라도 있으면 아티팩트는 실패로 본다.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from .batch import BatchTransportError, SetParameterOperation
from .logging_utils import get_logger
from .models import Artifact, Parameter
from .remote import RemoteClient
from .stats import RunStats


logger = get_logger(__name__)


def use_batch_for(artifact: Artifact, disable_batch: bool) -> bool:
    enabled = artifact.batch.enabled if artifact.batch is not None else True
    return bool(enabled) and not disable_batch


def effective_batch_size(artifact: Artifact, global_batch_size: int) -> int:
    if artifact.batch is not None and artifact.batch.batch_size:
        return artifact.batch.batch_size
    return global_batch_size


def update_parameters_individual(
    client: RemoteClient,
    artifact_id: str,
    version: str,
    parameters: Sequence[Parameter],
    stats: RunStats,
) -> int:
    """개별 호출로 업데이트하고 실패한 파라미터 수를 반환한다."""
    logger.info("      개별 요청으로 업데이트합니다.")

    failed = 0
    for param in parameters:
        stats.individual_requests_used += 1
        try:
            client.set_parameter(artifact_id, version, param.key, param.value)
        except Exception as e:  # noqa: BLE001
            logger.error("      파라미터 업데이트 실패: %s (%s)", param.key, e)
            stats.parameters_failed += 1
            failed += 1
            continue
        stats.parameters_updated += 1

    return failed


def update_parameters_batch(
    client: RemoteClient,
    artifact_id: str,
    version: str,
    parameters: Sequence[Parameter],
    batch_size: int,
    stats: RunStats,
) -> int:
    """
    배치로 업데이트하고 실패한 오퍼레이션 수를 반환한다.

    원격에 없는 key 는 배치에서 제외하고 parameters_failed 로 기록하지만,
    그것만으로 반환값(실패 수)에 포함되지는 않는다.
    배치 전송 자체가 실패하면 선언된 파라미터 전체를 개별 요청으로 한 번 다시 보낸다.

    Raises:
        RemoteError 등: 현재 파라미터 조회 실패 (fallback 대상 아님)
    """
    logger.info("      배치 요청으로 업데이트합니다. (batch size: %d)", batch_size)

    current = client.get_parameters(artifact_id, version)

    operations: List[SetParameterOperation] = []
    missing = 0
    for param in parameters:
        if param.key not in current:
            logger.warning("      파라미터가 아티팩트에 없어 건너뜁니다: %s", param.key)
            missing += 1
            continue
        operations.append(
            SetParameterOperation(artifact_id=artifact_id, version=version, key=param.key, value=param.value)
        )

    if not operations:
        stats.parameters_failed += missing
        logger.warning("      업데이트할 유효한 파라미터가 없습니다.")
        return 0

    try:
        result = client.execute_batch(operations, batch_size)
    except BatchTransportError as e:
        logger.warning("      배치 요청 실패, 개별 요청으로 전환합니다: %s", e)
        # 원격에 없는 key 의 결과도 개별 요청 쪽에서 집계된다.
        return update_parameters_individual(client, artifact_id, version, parameters, stats)

    stats.parameters_failed += missing
    stats.batch_requests_executed += result.chunks

    failed = 0
    for r in result.results:
        if r.ok:
            stats.parameters_updated += 1
        else:
            logger.error(
                "      배치 오퍼레이션 실패: %s (status=%s, %s)",
                r.operation.key,
                r.status_code,
                r.error or "-",
            )
            stats.parameters_failed += 1
            failed += 1

    return failed


def configure_artifact(
    client: RemoteClient,
    artifact_id: str,
    artifact: Artifact,
    stats: RunStats,
    *,
    batch_size: int,
    disable_batch: bool = False,
) -> Optional[str]:
    """
    아티팩트 하나의 파라미터를 업데이트한다.

    Returns:
        실패 사유 문자열. 성공이면 None.
    """
    version = artifact.version
    parameters = artifact.parameters

    try:
        if use_batch_for(artifact, disable_batch) and parameters:
            failed = update_parameters_batch(
                client,
                artifact_id,
                version,
                parameters,
                effective_batch_size(artifact, batch_size),
                stats,
            )
        else:
            failed = update_parameters_individual(client, artifact_id, version, parameters, stats)
    except Exception as e:  # noqa: BLE001
        logger.exception("      파라미터 업데이트 중 오류: %s", artifact_id)
        return f"파라미터 업데이트 중 오류: {e}"

    if failed:
        return f"{failed} 개 파라미터 업데이트 실패"
    return None
