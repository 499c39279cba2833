import sys
from dataclasses import replace
from typing import Optional

import click

from .config import load_env_files, RunSettings
from .cpi_api import CpiClient
from .logging_utils import setup_logging, get_logger
from .orchestrator import run_configure


logger = get_logger(__name__)


@click.group()
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리 (.env / .env.configure 를 읽을 위치, 기본: 현재 디렉토리)",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다. (-vv 는 HTTP 로그까지 출력)",
)
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int) -> None:
    """SAP Cloud Integration 아티팩트 파라미터 설정/배포 CLI"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["verbose"] = verbose


def _load_settings_from_ctx(ctx: click.Context) -> RunSettings:
    base_dir: str = ctx.obj["chdir"]
    load_env_files(base_dir)
    settings = RunSettings.from_env()
    logger.debug("Settings loaded: %s", replace(settings, cpi_password="***"))
    return settings


def _apply_overrides(settings: RunSettings, **overrides: object) -> RunSettings:
    """CLI 에서 명시한 값(None 이 아닌 값)만 env 설정을 덮어쓴다. 플래그는 켜졌을 때만 반영."""
    changed = {k: v for k, v in overrides.items() if v is not None}
    return replace(settings, **changed)


def _run(settings: RunSettings) -> None:
    try:
        summary, stats = run_configure(settings, CpiClient.from_settings)
    except (ValueError, RuntimeError) as e:
        click.echo(f"[ERROR] 설정 실패: {e}", err=True)
        sys.exit(1)
    except Exception as e:  # noqa: BLE001
        logger.exception("설정/배포 중 오류 발생")
        click.echo(f"[ERROR] 설정/배포 실패: {e}", err=True)
        sys.exit(1)

    click.echo(summary)

    # 아티팩트 설정 또는 배포 작업 중 하나라도 실패했다면 exit 1
    if stats.has_failures:
        sys.exit(1)


_common_options = [
    click.option("-c", "--config-path", "config_path", type=str, default=None,
                 help="설정 YAML 파일 또는 디렉토리 (env: CONFIGURE_CONFIG_PATH)"),
    click.option("-p", "--deployment-prefix", "deployment_prefix", type=str, default=None,
                 help="패키지/아티팩트 id 앞에 붙일 prefix (env: CONFIGURE_DEPLOYMENT_PREFIX)"),
    click.option("--package-filter", "package_filter", type=str, default=None,
                 help="쉼표로 구분된 처리 대상 패키지 id (env: CONFIGURE_PACKAGE_FILTER)"),
    click.option("--artifact-filter", "artifact_filter", type=str, default=None,
                 help="쉼표로 구분된 처리 대상 아티팩트 id (env: CONFIGURE_ARTIFACT_FILTER)"),
    click.option("--batch-size", "batch_size", type=int, default=None,
                 help="배치 요청당 파라미터 수 (env: CONFIGURE_BATCH_SIZE, 기본 90)"),
    click.option("--disable-batch", "disable_batch", is_flag=True, default=False,
                 help="배치를 끄고 개별 요청만 사용 (env: CONFIGURE_DISABLE_BATCH)"),
]


def common_options(func):  # noqa: ANN001, ANN201
    for option in reversed(_common_options):
        func = option(func)
    return func


@main.command()
@common_options
@click.option("--dry-run", "dry_run", is_flag=True, default=False,
              help="실제 변경 없이 수행될 작업만 출력 (env: CONFIGURE_DRY_RUN)")
@click.option("--deploy-retries", "deploy_retries", type=int, default=None,
              help="배포 상태 확인 횟수 (env: CONFIGURE_DEPLOY_RETRIES, 기본 5)")
@click.option("--deploy-delay", "deploy_delay_seconds", type=int, default=None,
              help="배포 상태 확인 간격(초) (env: CONFIGURE_DEPLOY_DELAY_SECONDS, 기본 15)")
@click.option("--parallel-deployments", "parallel_deployments", type=int, default=None,
              help="패키지당 동시 배포 수 (env: CONFIGURE_PARALLEL_DEPLOYMENTS, 기본 3)")
@click.pass_context
def configure(
    ctx: click.Context,
    config_path: Optional[str],
    deployment_prefix: Optional[str],
    package_filter: Optional[str],
    artifact_filter: Optional[str],
    batch_size: Optional[int],
    disable_batch: bool,
    dry_run: bool,
    deploy_retries: Optional[int],
    deploy_delay_seconds: Optional[int],
    parallel_deployments: Optional[int],
) -> None:
    """아티팩트 파라미터를 설정하고, deploy 가 지정된 아티팩트를 배포"""
    try:
        settings = _load_settings_from_ctx(ctx)
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)

    settings = _apply_overrides(
        settings,
        config_path=config_path,
        deployment_prefix=deployment_prefix,
        package_filter=package_filter,
        artifact_filter=artifact_filter,
        batch_size=batch_size,
        disable_batch=disable_batch or None,
        dry_run=dry_run or None,
        deploy_retries=deploy_retries,
        deploy_delay_seconds=deploy_delay_seconds,
        parallel_deployments=parallel_deployments,
    )
    _run(settings)


@main.command()
@common_options
@click.pass_context
def plan(
    ctx: click.Context,
    config_path: Optional[str],
    deployment_prefix: Optional[str],
    package_filter: Optional[str],
    artifact_filter: Optional[str],
    batch_size: Optional[int],
    disable_batch: bool,
) -> None:
    """원격 호출 없이 설정/배포될 내용을 요약 (configure --dry-run 과 동일)"""
    try:
        settings = _load_settings_from_ctx(ctx)
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)

    settings = _apply_overrides(
        settings,
        config_path=config_path,
        deployment_prefix=deployment_prefix,
        package_filter=package_filter,
        artifact_filter=artifact_filter,
        batch_size=batch_size,
        disable_batch=disable_batch or None,
        dry_run=True,
    )
    _run(settings)
