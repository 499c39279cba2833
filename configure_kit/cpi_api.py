"""
cpi_api
-------

SAP Cloud Integration OData API 를 requests 로 호출하는 RemoteClient 구현.

인증은 basic auth(CPI_USERNAME/CPI_PASSWORD)만 지원한다.
"""

from __future__ import annotations

import json
import re
import threading
import uuid
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import requests

from .batch import (
    BatchResult,
    BatchTransportError,
    OperationResult,
    SetParameterOperation,
    execute_in_chunks,
)
from .config import RunSettings
from .logging_utils import get_logger
from .remote import NOT_DEPLOYED_VERSION, RemoteClient, RemoteError


logger = get_logger(__name__)

_DEPLOY_ENDPOINTS = {
    "Integration": "DeployIntegrationDesigntimeArtifact",
    "MessageMapping": "DeployMessageMappingDesigntimeArtifact",
    "ScriptCollection": "DeployScriptCollectionDesigntimeArtifact",
    "ValueMapping": "DeployValueMappingDesigntimeArtifact",
}

_STATUS_LINE = re.compile(r"^HTTP/1\.1 (\d{3})", re.MULTILINE)


def _q(value: str) -> str:
    # OData 문자열 리터럴: 작은따옴표는 두 번 쓴다.
    return quote(value.replace("'", "''"), safe="")


def _configuration_path(artifact_id: str, version: str, key: str) -> str:
    return (
        f"IntegrationDesigntimeArtifacts(Id='{_q(artifact_id)}',Version='{_q(version)}')"
        f"/$links/Configurations('{_q(key)}')"
    )


class CpiClient(RemoteClient):
    def __init__(
        self,
        host: str,
        username: str = "",
        password: str = "",
        *,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        base = host if host.startswith(("http://", "https://")) else f"https://{host}"
        self._base_url = base.rstrip("/") + "/api/v1"
        self._timeout = timeout
        self._session = session or requests.Session()
        if username:
            self._session.auth = (username, password)
        self._session.headers.update({"Accept": "application/json"})
        self._csrf_token: Optional[str] = None
        self._csrf_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: RunSettings) -> "CpiClient":
        if not settings.cpi_host:
            raise ValueError("CPI_HOST 가 설정되지 않았습니다.")
        return cls(
            settings.cpi_host,
            settings.cpi_username,
            settings.cpi_password,
            timeout=settings.request_timeout,
        )

    # -----------------------------
    # http helpers
    # -----------------------------
    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path}"

    def _fetch_csrf_token(self, stale: Optional[str] = None) -> str:
        """
        쓰기 요청용 CSRF 토큰. 한 번 받은 토큰을 스레드 간에 공유한다.
        stale 이 현재 토큰과 같으면 새로 받는다. (다른 스레드가 이미 갱신했다면 그대로 사용)
        """
        with self._csrf_lock:
            if self._csrf_token is None or self._csrf_token == stale:
                try:
                    resp = self._session.get(
                        self._base_url + "/",
                        headers={"X-CSRF-Token": "Fetch"},
                        timeout=self._timeout,
                    )
                except requests.RequestException as e:
                    raise RemoteError(f"CSRF 토큰 조회 실패: {e}") from e
                token = resp.headers.get("X-CSRF-Token", "")
                if resp.status_code != 200 or not token:
                    raise RemoteError(f"CSRF 토큰 조회 실패 (status={resp.status_code})")
                self._csrf_token = token
            return self._csrf_token

    def _send(self, method: str, path: str, headers: Dict[str, str], **kwargs) -> requests.Response:  # noqa: ANN003
        logger.debug("%s %s", method, path)
        try:
            return self._session.request(method, self._url(path), headers=headers, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise RemoteError(f"{method} {path} 요청 실패: {e}") from e

    def _request(self, method: str, path: str, *, expected: Tuple[int, ...], **kwargs) -> requests.Response:  # noqa: ANN003
        headers = dict(kwargs.pop("headers", {}) or {})
        if method not in ("GET", "HEAD"):
            headers["X-CSRF-Token"] = self._fetch_csrf_token()

        resp = self._send(method, path, headers, **kwargs)
        if resp.status_code == 403 and "X-CSRF-Token" in headers:
            # 토큰이 만료된 경우 한 번만 새로 받아 다시 보낸다.
            headers["X-CSRF-Token"] = self._fetch_csrf_token(stale=headers["X-CSRF-Token"])
            resp = self._send(method, path, headers, **kwargs)

        if resp.status_code not in expected:
            raise RemoteError(
                f"{method} {path} 응답 오류 (status={resp.status_code}): {resp.text[:500]}"
            )
        return resp

    # -----------------------------
    # RemoteClient
    # -----------------------------
    def get_parameters(self, artifact_id: str, version: str) -> Dict[str, str]:
        path = f"IntegrationDesigntimeArtifacts(Id='{_q(artifact_id)}',Version='{_q(version)}')/Configurations"
        resp = self._request("GET", path, expected=(200,))
        results = resp.json().get("d", {}).get("results", [])
        return {r["ParameterKey"]: r.get("ParameterValue", "") for r in results}

    def set_parameter(self, artifact_id: str, version: str, key: str, value: str) -> None:
        self._request(
            "PUT",
            _configuration_path(artifact_id, version, key),
            expected=(200, 202, 204),
            json={"ParameterValue": value},
        )

    def execute_batch(self, operations: Sequence[SetParameterOperation], chunk_size: int) -> BatchResult:
        return execute_in_chunks(operations, chunk_size, self._send_batch_chunk)

    def _send_batch_chunk(self, chunk: List[SetParameterOperation]) -> List[OperationResult]:
        batch_boundary = f"batch_{uuid.uuid4()}"
        changeset_boundary = f"changeset_{uuid.uuid4()}"

        parts: List[str] = [
            f"--{batch_boundary}",
            f"Content-Type: multipart/mixed; boundary={changeset_boundary}",
            "",
        ]
        for idx, op in enumerate(chunk):
            body = json.dumps({"ParameterValue": op.value})
            parts.extend(
                [
                    f"--{changeset_boundary}",
                    "Content-Type: application/http",
                    "Content-Transfer-Encoding: binary",
                    f"Content-ID: param_{idx}",
                    "",
                    f"PUT {_configuration_path(op.artifact_id, op.version, op.key)} HTTP/1.1",
                    "Content-Type: application/json",
                    "Accept: application/json",
                    "",
                    body,
                ]
            )
        parts.extend([f"--{changeset_boundary}--", f"--{batch_boundary}--", ""])
        payload = "\r\n".join(parts)

        try:
            resp = self._request(
                "POST",
                "$batch",
                expected=(200, 202),
                data=payload.encode("utf-8"),
                headers={"Content-Type": f"multipart/mixed; boundary={batch_boundary}"},
            )
        except RemoteError as e:
            raise BatchTransportError(str(e)) from e

        codes = [int(c) for c in _STATUS_LINE.findall(resp.text)]
        # changeset 이 실패하면 응답에는 상태 라인이 하나만 온다.
        if len(codes) == 1 and len(chunk) > 1:
            codes = codes * len(chunk)
        if len(codes) != len(chunk):
            raise BatchTransportError(
                f"배치 응답의 오퍼레이션 수가 맞지 않습니다: {len(codes)} != {len(chunk)}"
            )

        return [
            OperationResult(
                operation=op,
                ok=200 <= code < 300,
                status_code=code,
                error=None if 200 <= code < 300 else f"HTTP {code}",
            )
            for op, code in zip(chunk, codes)
        ]

    def deploy(self, artifact_id: str, artifact_type: str) -> None:
        endpoint = _DEPLOY_ENDPOINTS.get(artifact_type)
        if endpoint is None:
            raise RemoteError(f"지원하지 않는 아티팩트 타입입니다: {artifact_type}")
        self._request(
            "POST",
            f"{endpoint}?Id='{_q(artifact_id)}'&Version='active'",
            expected=(200, 202),
        )

    def get_runtime_status(self, artifact_id: str) -> Tuple[str, str]:
        path = f"IntegrationRuntimeArtifacts('{_q(artifact_id)}')"
        resp = self._request("GET", path, expected=(200, 404))
        if resp.status_code == 404:
            return NOT_DEPLOYED_VERSION, ""
        data = resp.json().get("d", {})
        return data.get("Version", ""), data.get("Status", "")

    def get_error_info(self, artifact_id: str) -> str:
        path = f"IntegrationRuntimeArtifacts('{_q(artifact_id)}')/ErrorInformation/$value"
        resp = self._request("GET", path, expected=(200,))
        try:
            data = resp.json()
        except ValueError:
            return resp.text.strip()
        message = data.get("message", {}) if isinstance(data, dict) else {}
        if isinstance(message, dict) and message.get("messageId"):
            params = ", ".join(str(p) for p in data.get("parameter", []))
            return f"{message.get('messageId')}: {params}" if params else str(message.get("messageId"))
        return json.dumps(data, ensure_ascii=False)
