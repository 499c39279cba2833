"""
remote
------

설정/배포 엔진이 사용하는 원격 테넌트 기능의 인터페이스.

엔진은 이 인터페이스에만 의존하며, 실제 HTTP 구현은 cpi_api 모듈에 있다.
테스트에서는 메모리 기반 fake 구현을 사용한다.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

from .batch import BatchResult, BatchTransportError, SetParameterOperation


__all__ = [
    "BatchTransportError",
    "NOT_DEPLOYED_VERSION",
    "RemoteClient",
    "RemoteError",
    "RuntimeStatus",
    "StatusKind",
    "classify_status",
]

NOT_DEPLOYED_VERSION = "NOT_DEPLOYED"


class RemoteError(RuntimeError):
    """원격 호출 실패"""


class RemoteClient(ABC):
    @abstractmethod
    def get_parameters(self, artifact_id: str, version: str) -> Dict[str, str]:
        """현재 설정된 파라미터 key -> value"""

    @abstractmethod
    def set_parameter(self, artifact_id: str, version: str, key: str, value: str) -> None:
        ...

    @abstractmethod
    def execute_batch(self, operations: Sequence[SetParameterOperation], chunk_size: int) -> BatchResult:
        """
        operations 를 chunk_size 이하의 청크로 나눠 전송한다.
        전송 자체가 실패하면 BatchTransportError 를 던진다.
        """

    @abstractmethod
    def deploy(self, artifact_id: str, artifact_type: str) -> None:
        ...

    @abstractmethod
    def get_runtime_status(self, artifact_id: str) -> Tuple[str, str]:
        """(version, status)"""

    @abstractmethod
    def get_error_info(self, artifact_id: str) -> str:
        ...


class StatusKind(enum.Enum):
    NOT_YET_VISIBLE = "not_yet_visible"
    STARTING = "starting"
    STARTED = "started"
    OTHER = "other"


@dataclass(frozen=True)
class RuntimeStatus:
    kind: StatusKind
    raw: str
    version: str = ""


def classify_status(version: str, status: str) -> RuntimeStatus:
    """런타임 조회 결과 문자열을 폴링 루프가 쓰는 상태로 변환한다."""
    if version == NOT_DEPLOYED_VERSION:
        kind = StatusKind.NOT_YET_VISIBLE
    elif status == "STARTED":
        kind = StatusKind.STARTED
    elif status == "STARTING":
        kind = StatusKind.STARTING
    else:
        kind = StatusKind.OTHER
    return RuntimeStatus(kind=kind, raw=status, version=version)
