"""
batch
-----

파라미터 일괄 업데이트용 오퍼레이션 모델과 청크 분할 실행 헬퍼.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from .logging_utils import get_logger


logger = get_logger(__name__)


class BatchTransportError(RuntimeError):
    """배치 요청 자체가 실패했을 때 (개별 오퍼레이션 결과를 얻지 못함)."""


@dataclass(frozen=True)
class SetParameterOperation:
    artifact_id: str
    version: str
    key: str
    value: str


@dataclass(frozen=True)
class OperationResult:
    operation: SetParameterOperation
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class BatchResult:
    results: Tuple[OperationResult, ...]
    chunks: int

    @property
    def failed(self) -> List[OperationResult]:
        return [r for r in self.results if not r.ok]


def chunked(operations: Sequence[SetParameterOperation], size: int) -> Iterator[List[SetParameterOperation]]:
    if size <= 0:
        raise ValueError(f"batch size 는 0 보다 커야 합니다: {size}")
    for start in range(0, len(operations), size):
        yield list(operations[start:start + size])


def execute_in_chunks(
    operations: Sequence[SetParameterOperation],
    chunk_size: int,
    send_chunk: Callable[[List[SetParameterOperation]], Sequence[OperationResult]],
) -> BatchResult:
    """
    operations 를 chunk_size 단위로 나눠 send_chunk 를 순서대로 호출한다.

    send_chunk 가 예외를 던지면 BatchTransportError 로 래핑한다.
    (이미 전송된 앞 청크는 되돌리지 않는다)
    """
    results: List[OperationResult] = []
    chunks = 0
    for chunk in chunked(operations, chunk_size):
        logger.debug("배치 청크 전송: %d 개 오퍼레이션", len(chunk))
        try:
            results.extend(send_chunk(chunk))
        except BatchTransportError:
            raise
        except Exception as e:  # noqa: BLE001
            raise BatchTransportError(f"배치 요청 실패 (chunk {chunks + 1}): {e}") from e
        chunks += 1
    return BatchResult(results=tuple(results), chunks=chunks)
