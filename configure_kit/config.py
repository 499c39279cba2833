from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional, List

from dotenv import load_dotenv

from .models import DEFAULT_BATCH_SIZE


ENV_FILES_DEFAULT_ORDER = [".env", ".env.configure"]

DEFAULT_DEPLOY_RETRIES = 5
DEFAULT_DEPLOY_DELAY_SECONDS = 15
DEFAULT_PARALLEL_DEPLOYMENTS = 3

_PREFIX_PATTERN = re.compile(r"^[A-Za-z0-9_]*$")


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y"}


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} 는 정수여야 합니다: {raw!r}") from e


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} 는 숫자여야 합니다: {raw!r}") from e


def validate_deployment_prefix(prefix: str) -> None:
    """배포 prefix 는 영문/숫자/밑줄만 허용한다."""
    if not _PREFIX_PATTERN.match(prefix):
        raise ValueError(
            f"잘못된 deployment prefix 입니다: {prefix!r} (영문, 숫자, '_' 만 사용할 수 있습니다)"
        )


@dataclass
class RunSettings:
    # 설정 소스
    config_path: str = ""
    deployment_prefix: str = ""

    # 필터 (쉼표 구분 문자열)
    package_filter: str = ""
    artifact_filter: str = ""

    dry_run: bool = False

    # 배포 상태 폴링
    deploy_retries: int = DEFAULT_DEPLOY_RETRIES
    deploy_delay_seconds: int = DEFAULT_DEPLOY_DELAY_SECONDS
    parallel_deployments: int = DEFAULT_PARALLEL_DEPLOYMENTS

    # 파라미터 업데이트
    batch_size: int = DEFAULT_BATCH_SIZE
    disable_batch: bool = False

    # 원격 테넌트 접속 정보
    cpi_host: str = ""
    cpi_username: str = ""
    cpi_password: str = ""
    request_timeout: float = 60.0

    @classmethod
    def from_env(cls) -> "RunSettings":
        return cls(
            config_path=os.getenv("CONFIGURE_CONFIG_PATH", ""),
            deployment_prefix=os.getenv("CONFIGURE_DEPLOYMENT_PREFIX", ""),
            package_filter=os.getenv("CONFIGURE_PACKAGE_FILTER", ""),
            artifact_filter=os.getenv("CONFIGURE_ARTIFACT_FILTER", ""),
            dry_run=_get_bool("CONFIGURE_DRY_RUN", False),
            deploy_retries=_get_int("CONFIGURE_DEPLOY_RETRIES", DEFAULT_DEPLOY_RETRIES),
            deploy_delay_seconds=_get_int("CONFIGURE_DEPLOY_DELAY_SECONDS", DEFAULT_DEPLOY_DELAY_SECONDS),
            parallel_deployments=_get_int("CONFIGURE_PARALLEL_DEPLOYMENTS", DEFAULT_PARALLEL_DEPLOYMENTS),
            batch_size=_get_int("CONFIGURE_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            disable_batch=_get_bool("CONFIGURE_DISABLE_BATCH", False),
            cpi_host=os.getenv("CPI_HOST", ""),
            cpi_username=os.getenv("CPI_USERNAME", ""),
            cpi_password=os.getenv("CPI_PASSWORD", ""),
            request_timeout=_get_float("CPI_REQUEST_TIMEOUT", 60.0),
        )

    def validate(self) -> None:
        """
        처리 시작 전에 치명적인 설정 오류를 걸러낸다.
        (prefix 형식, 0 이하의 숫자 설정, 필수 경로 누락)
        """
        if not self.config_path:
            raise ValueError(
                "--config-path 가 필요합니다. (CLI 옵션 또는 CONFIGURE_CONFIG_PATH 로 지정)"
            )

        if self.deployment_prefix:
            validate_deployment_prefix(self.deployment_prefix)

        invalid: List[str] = []
        for name in ("deploy_retries", "deploy_delay_seconds", "parallel_deployments", "batch_size"):
            if getattr(self, name) <= 0:
                invalid.append(name)
        if invalid:
            raise ValueError(
                "0 보다 큰 값이어야 하는 설정이 있습니다: " + ", ".join(invalid)
            )
