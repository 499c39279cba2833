from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple

from .models import Artifact, Package


def parse_filter(text: str | None) -> Tuple[str, ...]:
    """쉼표로 구분된 이름 목록. 빈 항목은 버린다."""
    if not text:
        return ()
    return tuple(p.strip() for p in text.split(",") if p.strip())


def should_include(name: str, names: Iterable[str]) -> bool:
    names = tuple(names)
    if not names:
        return True
    return name in names


@dataclass(frozen=True)
class ArtifactFilter:
    """
    패키지/아티팩트 이름 필터.
    prefix 가 붙기 전의 선언된 id 와 대소문자까지 정확히 비교한다.
    """

    packages: Tuple[str, ...] = ()
    artifacts: Tuple[str, ...] = ()

    @classmethod
    def from_strings(cls, package_filter: str | None, artifact_filter: str | None) -> "ArtifactFilter":
        return cls(packages=parse_filter(package_filter), artifacts=parse_filter(artifact_filter))

    def include_package(self, package: Package) -> bool:
        return should_include(package.id, self.packages)

    def include_artifact(self, artifact: Artifact) -> bool:
        return should_include(artifact.id, self.artifacts)
