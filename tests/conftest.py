"""
pytest 설정:

로컬 작업 환경에 설치된 다른 버전의 configure_kit 패키지가 존재할 때,
`pytest` 실행 시 site-packages 쪽이 먼저 import 되어 테스트가 깨질 수 있다.

테스트는 항상 현재 레포의 소스를 대상으로 해야 하므로, repo root 를 sys.path 최상단에 고정한다.
원격 테넌트 대신 사용할 메모리 기반 FakeClient 도 여기서 제공한다.
"""

from __future__ import annotations

import os
import sys
import threading
from typing import Dict, List, Optional, Sequence, Tuple

import pytest


_REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)


from configure_kit.batch import (  # noqa: E402
    BatchResult,
    BatchTransportError,
    OperationResult,
    SetParameterOperation,
    execute_in_chunks,
)
from configure_kit.remote import RemoteClient, RemoteError  # noqa: E402


class FakeClient(RemoteClient):
    """호출 기록을 남기는 메모리 기반 RemoteClient"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.calls: List[tuple] = []
        self.remote_params: Dict[str, Dict[str, str]] = {}
        self.set_fail_keys: set[str] = set()
        self.batch_fail_keys: set[str] = set()
        self.batch_transport_error = False
        self.batch_chunk_sizes: List[int] = []
        self.deploy_fail: set[str] = set()
        self.statuses: Dict[str, List[object]] = {}
        self.error_info: Dict[str, str] = {}
        self.error_info_fail: set[str] = set()

    def _record(self, *call: object) -> None:
        with self._lock:
            self.calls.append(tuple(call))

    def calls_named(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    def get_parameters(self, artifact_id: str, version: str) -> Dict[str, str]:
        self._record("get_parameters", artifact_id, version)
        if artifact_id not in self.remote_params:
            raise RemoteError(f"artifact not found: {artifact_id}")
        return dict(self.remote_params[artifact_id])

    def set_parameter(self, artifact_id: str, version: str, key: str, value: str) -> None:
        self._record("set_parameter", artifact_id, version, key, value)
        if key in self.set_fail_keys:
            raise RemoteError(f"cannot set {key}")
        known = self.remote_params.get(artifact_id)
        if known is not None and key not in known:
            raise RemoteError(f"parameter not found: {key}")

    def execute_batch(self, operations: Sequence[SetParameterOperation], chunk_size: int) -> BatchResult:
        self._record("execute_batch", tuple(op.key for op in operations), chunk_size)
        if self.batch_transport_error:
            raise BatchTransportError("connection reset")

        def _send(chunk: List[SetParameterOperation]) -> List[OperationResult]:
            self.batch_chunk_sizes.append(len(chunk))
            return [
                OperationResult(
                    operation=op,
                    ok=op.key not in self.batch_fail_keys,
                    status_code=400 if op.key in self.batch_fail_keys else 204,
                )
                for op in chunk
            ]

        return execute_in_chunks(operations, chunk_size, _send)

    def deploy(self, artifact_id: str, artifact_type: str) -> None:
        self._record("deploy", artifact_id, artifact_type)
        if artifact_id in self.deploy_fail:
            raise RemoteError(f"deploy rejected: {artifact_id}")

    def get_runtime_status(self, artifact_id: str) -> Tuple[str, str]:
        self._record("get_runtime_status", artifact_id)
        with self._lock:
            queue = self.statuses.get(artifact_id)
            item: Optional[object] = queue.pop(0) if queue else ("1.0.0", "STARTED")
        if isinstance(item, Exception):
            raise item
        return item  # type: ignore[return-value]

    def get_error_info(self, artifact_id: str) -> str:
        self._record("get_error_info", artifact_id)
        if artifact_id in self.error_info_fail:
            raise RemoteError("error info unavailable")
        return self.error_info.get(artifact_id, "unknown error")


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def no_sleep():
    sleeps: List[float] = []

    def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    _sleep.calls = sleeps  # type: ignore[attr-defined]
    return _sleep
