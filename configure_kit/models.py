"""
models
------

설정 파일(YAML)의 패키지/아티팩트/파라미터 모델.

파싱과 기본값 적용은 두 단계로 분리한다.

1. parse_configuration: dict 구조를 검증하고 dataclass 로 변환한다.
   지정되지 않은 선택 필드는 None 으로 남긴다.
2. apply_defaults: None 필드에 기본값을 채운 새 Configuration 을 반환한다.

두 함수 모두 입력을 변경하지 않는 순수 함수이며, 결과 모델은 frozen 이다.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional, Tuple

import yaml


ARTIFACT_TYPES: Tuple[str, ...] = (
    "Integration",
    "MessageMapping",
    "ScriptCollection",
    "ValueMapping",
)

DEFAULT_VERSION = "active"
DEFAULT_BATCH_ENABLED = True
DEFAULT_BATCH_SIZE = 90

_TRUE_WORDS = {"true", "yes", "on"}
_FALSE_WORDS = {"false", "no", "off"}
_INT_TEXT = re.compile(r"^[0-9]+$")


class ConfigurationError(ValueError):
    """설정 파일 구조가 올바르지 않을 때 발생한다."""


@dataclass(frozen=True)
class Parameter:
    key: str
    value: str


@dataclass(frozen=True)
class BatchSettings:
    enabled: Optional[bool] = None
    batch_size: Optional[int] = None


@dataclass(frozen=True)
class Artifact:
    id: str
    type: str
    display_name: str = ""
    version: Optional[str] = None
    deploy: Optional[bool] = None
    parameters: Tuple[Parameter, ...] = ()
    batch: Optional[BatchSettings] = None


@dataclass(frozen=True)
class Package:
    id: str
    display_name: str = ""
    deploy: Optional[bool] = None
    artifacts: Tuple[Artifact, ...] = ()


@dataclass(frozen=True)
class Configuration:
    deployment_prefix: str = ""
    packages: Tuple[Package, ...] = ()


@dataclass(frozen=True)
class DeploymentTask:
    """1단계(설정)에서 만들어져 2단계(배포)에서 소비되는 작업 단위. id 는 prefix 적용 후 값."""

    artifact_id: str
    package_id: str
    artifact_type: str
    display_name: str = ""


def effective_id(prefix: str, declared_id: str) -> str:
    """원격 호출에 사용할 id. prefix 가 비어 있으면 선언된 id 그대로."""
    return f"{prefix}{declared_id}" if prefix else declared_id


def should_deploy(package: Package, artifact: Artifact) -> bool:
    return bool(artifact.deploy) or bool(package.deploy)


# -----------------------------
# parse
# -----------------------------
def _require_str(raw: Mapping[str, Any], key: str, where: str) -> str:
    value = raw.get(key)
    if value is None or str(value).strip() == "":
        raise ConfigurationError(f"{where}.{key} 는 필수 항목입니다.")
    return str(value)


def _optional_str(raw: Mapping[str, Any], key: str) -> Optional[str]:
    value = raw.get(key)
    return None if value is None else str(value)


def _optional_bool(raw: Mapping[str, Any], key: str, where: str) -> Optional[bool]:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    if not isinstance(value, bool):
        raise ConfigurationError(f"{where}.{key} 는 true/false 여야 합니다: {value!r}")
    return value


def _as_list(raw: Mapping[str, Any], key: str, where: str) -> list:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError(f"{where}.{key} 는 리스트여야 합니다.")
    return value


def _as_mapping(value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"{where} 는 매핑(dict)이어야 합니다.")
    return value


def _parse_batch(raw: Any, where: str) -> BatchSettings:
    raw = _as_mapping(raw, where)
    size = raw.get("batchSize")
    if isinstance(size, str) and _INT_TEXT.match(size.strip()):
        size = int(size.strip())
    if size is not None:
        if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
            raise ConfigurationError(f"{where}.batchSize 는 0 보다 큰 정수여야 합니다: {size!r}")
    return BatchSettings(enabled=_optional_bool(raw, "enabled", where), batch_size=size)


def _parse_parameter(raw: Any, where: str) -> Parameter:
    raw = _as_mapping(raw, where)
    key = _require_str(raw, "key", where)
    if raw.get("value") is None:
        raise ConfigurationError(f"{where}.value 는 필수 항목입니다.")
    return Parameter(key=key, value=str(raw["value"]))


def _parse_artifact(raw: Any, where: str) -> Artifact:
    raw = _as_mapping(raw, where)
    artifact_type = _require_str(raw, "type", where)
    if artifact_type not in ARTIFACT_TYPES:
        raise ConfigurationError(
            f"{where}.type 값이 올바르지 않습니다: {artifact_type!r} ({' | '.join(ARTIFACT_TYPES)})"
        )

    batch = None
    if raw.get("batch") is not None:
        batch = _parse_batch(raw["batch"], f"{where}.batch")

    parameters = tuple(
        _parse_parameter(p, f"{where}.parameters[{i}]")
        for i, p in enumerate(_as_list(raw, "parameters", where))
    )

    return Artifact(
        id=_require_str(raw, "artifactId", where),
        type=artifact_type,
        display_name=_optional_str(raw, "displayName") or "",
        version=_optional_str(raw, "version"),
        deploy=_optional_bool(raw, "deploy", where),
        parameters=parameters,
        batch=batch,
    )


def _parse_package(raw: Any, where: str) -> Package:
    raw = _as_mapping(raw, where)
    artifacts = tuple(
        _parse_artifact(a, f"{where}.artifacts[{i}]")
        for i, a in enumerate(_as_list(raw, "artifacts", where))
    )
    return Package(
        id=_require_str(raw, "integrationSuiteId", where),
        display_name=_optional_str(raw, "displayName") or "",
        deploy=_optional_bool(raw, "deploy", where),
        artifacts=artifacts,
    )


def parse_configuration(raw: Any) -> Configuration:
    """
    YAML 로드 결과(dict)를 Configuration 으로 변환한다. 기본값은 적용하지 않는다.
    빈 문서(None)는 패키지가 없는 설정으로 본다.
    """
    if raw is None:
        return Configuration()
    raw = _as_mapping(raw, "root")
    packages = tuple(
        _parse_package(p, f"packages[{i}]")
        for i, p in enumerate(_as_list(raw, "packages", "root"))
    )
    return Configuration(
        deployment_prefix=_optional_str(raw, "deploymentPrefix") or "",
        packages=packages,
    )


# -----------------------------
# defaults
# -----------------------------
def _artifact_defaults(artifact: Artifact) -> Artifact:
    batch = artifact.batch
    if batch is not None:
        batch = BatchSettings(
            enabled=DEFAULT_BATCH_ENABLED if batch.enabled is None else batch.enabled,
            batch_size=DEFAULT_BATCH_SIZE if batch.batch_size is None else batch.batch_size,
        )
    return replace(
        artifact,
        version=artifact.version or DEFAULT_VERSION,
        deploy=bool(artifact.deploy),
        batch=batch,
    )


def apply_defaults(cfg: Configuration) -> Configuration:
    packages = tuple(
        replace(
            pkg,
            deploy=bool(pkg.deploy),
            artifacts=tuple(_artifact_defaults(a) for a in pkg.artifacts),
        )
        for pkg in cfg.packages
    )
    return replace(cfg, deployment_prefix=cfg.deployment_prefix or "", packages=packages)


class _TextLoader(yaml.SafeLoader):
    """
    따옴표 없는 스칼라도 원문 문자열 그대로 읽는 로더.
    (true -> "true", 1.10 -> "1.10", 010 -> "010")

    null 과 merge key(<<) 만 해석하고, bool/int 필드는 parse 단계에서 변환한다.
    """


_TextLoader.yaml_implicit_resolvers = {
    first: [
        (tag, regexp)
        for tag, regexp in resolvers
        if tag in ("tag:yaml.org,2002:null", "tag:yaml.org,2002:merge")
    ]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_configuration_text(text: str) -> Configuration:
    """YAML 텍스트 -> parse -> apply_defaults"""
    try:
        raw = yaml.load(text, Loader=_TextLoader)  # noqa: S506
    except yaml.YAMLError as e:
        raise ConfigurationError(f"YAML 파싱 실패: {e}") from e
    return apply_defaults(parse_configuration(raw))
