from __future__ import annotations

from typing import Callable, List, Optional

from .config import RunSettings, validate_deployment_prefix
from .deployment import run_deployments
from .filters import ArtifactFilter
from .loader import load_sources, merge_sources
from .logging_utils import get_logger
from .models import Configuration, DeploymentTask, effective_id, should_deploy
from .parameters import configure_artifact
from .remote import RemoteClient
from .stats import RunStats, format_summary


logger = get_logger(__name__)

_RULE = "=" * 60


def configure_all_artifacts(
    client: Optional[RemoteClient],
    cfg: Configuration,
    artifact_filter: ArtifactFilter,
    stats: RunStats,
    *,
    dry_run: bool = False,
    batch_size: int = 90,
    disable_batch: bool = False,
) -> List[DeploymentTask]:
    """
    1단계: 필터를 통과한 모든 아티팩트의 파라미터를 업데이트하고,
    배포 대상이면 DeploymentTask 를 모아 반환한다.

    dry_run 이면 원격 호출 없이 '수행될 작업' 기준으로 카운터만 올린다.
    """
    tasks: List[DeploymentTask] = []
    prefix = cfg.deployment_prefix

    for pkg in cfg.packages:
        package_id = effective_id(prefix, pkg.id)

        if not artifact_filter.include_package(pkg):
            logger.info("패키지 건너뜀 (필터): %s", package_id)
            continue

        stats.packages_processed += 1
        logger.info("")
        logger.info("패키지 처리: %s", package_id)
        if pkg.display_name:
            logger.info("   display name: %s", pkg.display_name)

        package_has_error = False

        for artifact in pkg.artifacts:
            artifact_id = effective_id(prefix, artifact.id)

            if not artifact_filter.include_artifact(artifact):
                logger.info("   아티팩트 건너뜀 (필터): %s", artifact_id)
                continue

            stats.artifacts_processed += 1
            logger.info("")
            logger.info("   아티팩트 설정: %s", artifact_id)
            if artifact.display_name:
                logger.info("      display name: %s", artifact.display_name)
            logger.info("      type: %s", artifact.type)
            logger.info("      version: %s", artifact.version)
            logger.info("      parameters: %d", len(artifact.parameters))

            deploy_requested = should_deploy(pkg, artifact)

            if dry_run:
                logger.info("      [DRY RUN] 다음 파라미터가 업데이트됩니다:")
                for param in artifact.parameters:
                    logger.info("        - %s = %s", param.key, param.value)
                stats.artifacts_configured += 1
                stats.parameters_updated += len(artifact.parameters)
                if deploy_requested:
                    stats.deployment_tasks_queued += 1
                    logger.info("      [DRY RUN] 설정 후 배포됩니다.")
                continue

            if client is None:
                raise RuntimeError("dry run 이 아닐 때는 원격 클라이언트가 필요합니다.")
            error = configure_artifact(
                client,
                artifact_id,
                artifact,
                stats,
                batch_size=batch_size,
                disable_batch=disable_batch,
            )
            if error:
                logger.error("      아티팩트 설정 실패: %s (%s)", artifact_id, error)
                stats.artifacts_failed += 1
                package_has_error = True
                continue

            stats.artifacts_configured += 1
            logger.info("      파라미터 %d 개 설정 완료", len(artifact.parameters))

            if deploy_requested:
                tasks.append(
                    DeploymentTask(
                        artifact_id=artifact_id,
                        package_id=package_id,
                        artifact_type=artifact.type,
                        display_name=artifact.display_name,
                    )
                )
                stats.deployment_tasks_queued += 1
                logger.info("      배포 대기열에 추가됨")

        if package_has_error:
            stats.packages_with_errors += 1

    return tasks


def run_configure(
    settings: RunSettings,
    client_factory: Callable[[RunSettings], RemoteClient],
    *,
    sleep: Optional[Callable[[float], None]] = None,
) -> tuple[str, RunStats]:
    """
    설정 로드 -> 1단계(파라미터 설정) -> 2단계(배포) 를 순서대로 실행한다.

    로드/검증 오류는 예외로 그대로 전파되고 (아무것도 처리하지 않음),
    그 이후의 아티팩트/배포 단위 오류는 RunStats 에 집계된다.

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        stats: 집계 결과 (stats.has_failures 로 전체 성공 여부 판단)
    """
    settings.validate()

    logger.info("설정 로드: %s", settings.config_path)
    sources = load_sources(settings.config_path)
    logger.info("설정 파일 %d 개 로드", len(sources))

    cfg = merge_sources(sources, settings.deployment_prefix)
    if cfg.deployment_prefix:
        validate_deployment_prefix(cfg.deployment_prefix)

    logger.info("deployment prefix: %s", cfg.deployment_prefix or "(none)")
    logger.info("dry run: %s", settings.dry_run)
    logger.info("batch: %s (size: %d)", not settings.disable_batch, settings.batch_size)

    artifact_filter = ArtifactFilter.from_strings(settings.package_filter, settings.artifact_filter)
    stats = RunStats()

    client: Optional[RemoteClient] = None
    if not settings.dry_run:
        client = client_factory(settings)

    logger.info(_RULE)
    logger.info("PHASE 1: 아티팩트 설정")
    logger.info(_RULE)

    tasks = configure_all_artifacts(
        client,
        cfg,
        artifact_filter,
        stats,
        dry_run=settings.dry_run,
        batch_size=settings.batch_size,
        disable_batch=settings.disable_batch,
    )

    # dry run 에서는 client 가 없고 작업도 쌓이지 않는다.
    if tasks and client is not None:
        logger.info(_RULE)
        logger.info("PHASE 2: 설정된 아티팩트 배포")
        logger.info(_RULE)
        logger.info(
            "%d 개 아티팩트 배포 (패키지당 최대 %d 개 동시 배포)",
            len(tasks),
            settings.parallel_deployments,
        )
        kwargs = {} if sleep is None else {"sleep": sleep}
        run_deployments(
            client,
            tasks,
            stats,
            max_retries=settings.deploy_retries,
            delay_seconds=settings.deploy_delay_seconds,
            parallel_deployments=settings.parallel_deployments,
            **kwargs,
        )

    return format_summary(stats, settings.dry_run), stats
