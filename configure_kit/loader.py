"""
loader
------

설정 파일(단일 파일 또는 디렉토리)을 읽어 하나의 Configuration 으로 병합한다.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Sequence

from .logging_utils import get_logger
from .models import Configuration, load_configuration_text


logger = get_logger(__name__)

CONFIG_FILE_EXTENSIONS = (".yml", ".yaml")


class ConfigLoadError(RuntimeError):
    """설정 소스를 하나도 읽을 수 없을 때 발생한다."""


@dataclass(frozen=True)
class LoadedSource:
    config: Configuration
    source: str
    file_name: str


def _read_source(path: str) -> LoadedSource:
    with open(path, "r", encoding="utf-8") as f:
        # ${VAR} 형태의 환경변수 치환은 파싱 전에 처리
        text = os.path.expandvars(f.read())
    return LoadedSource(
        config=load_configuration_text(text),
        source=path,
        file_name=os.path.basename(path),
    )


def _load_folder(folder: str) -> List[LoadedSource]:
    sources: List[LoadedSource] = []

    for name in sorted(os.listdir(folder)):
        path = os.path.join(folder, name)
        if os.path.isdir(path) or not name.endswith(CONFIG_FILE_EXTENSIONS):
            continue
        try:
            sources.append(_read_source(path))
        except (OSError, ValueError) as e:
            logger.warning("설정 파일을 읽지 못해 건너뜁니다: %s (%s)", name, e)
            continue

    if not sources:
        raise ConfigLoadError(f"유효한 설정 파일이 없습니다: {folder}")

    logger.info("디렉토리에서 설정 파일 %d 개를 로드했습니다.", len(sources))
    return sources


def load_sources(path: str) -> List[LoadedSource]:
    """
    path 가 디렉토리면 *.yml / *.yaml 을 모두 읽고 (실패한 파일은 경고 후 건너뜀),
    파일이면 해당 파일 하나만 읽는다. 단일 파일의 오류는 그대로 치명적이다.
    """
    if not os.path.exists(path):
        raise ConfigLoadError(f"설정 경로에 접근할 수 없습니다: {path}")

    if os.path.isdir(path):
        return _load_folder(path)

    try:
        return [_read_source(path)]
    except (OSError, ValueError) as e:
        raise ConfigLoadError(f"설정 파일 로드 실패: {path} ({e})") from e


def merge_sources(sources: Sequence[LoadedSource], override_prefix: str = "") -> Configuration:
    """
    패키지 목록을 발견 순서대로 이어 붙인다. (중복 id 는 제거하지 않는다)

    prefix 우선순위: override_prefix > 첫 번째 소스의 deploymentPrefix > ""
    """
    prefix = override_prefix
    if not prefix and sources:
        prefix = sources[0].config.deployment_prefix

    packages = []
    for src in sources:
        logger.info("  패키지 병합: %s", src.file_name)
        packages.extend(src.config.packages)

    return Configuration(deployment_prefix=prefix or "", packages=tuple(packages))
