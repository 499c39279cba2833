from __future__ import annotations

from dataclasses import dataclass
from typing import List


@dataclass
class RunStats:
    """
    한 번의 실행에 대한 집계 카운터.
    1단계 루프와 2단계 결과 수집기만 값을 변경한다. (동시에 쓰지 않음)
    """

    packages_processed: int = 0
    packages_with_errors: int = 0
    artifacts_processed: int = 0
    artifacts_configured: int = 0
    artifacts_failed: int = 0
    parameters_updated: int = 0
    parameters_failed: int = 0
    batch_requests_executed: int = 0
    individual_requests_used: int = 0
    deployment_tasks_queued: int = 0
    deployment_tasks_successful: int = 0
    deployment_tasks_failed: int = 0
    artifacts_deployed: int = 0

    @property
    def has_failures(self) -> bool:
        return self.artifacts_failed > 0 or self.deployment_tasks_failed > 0


def format_summary(stats: RunStats, dry_run: bool = False) -> str:
    lines: List[str] = []
    lines.append("# Dry run summary" if dry_run else "# Configure summary")
    lines.append("")

    lines.append("## Configuration")
    lines.append(f"- packages processed: {stats.packages_processed}")
    lines.append(f"- packages with errors: {stats.packages_with_errors}")
    lines.append(f"- artifacts processed: {stats.artifacts_processed}")
    lines.append(f"- artifacts configured: {stats.artifacts_configured}")
    lines.append(f"- artifacts failed: {stats.artifacts_failed}")
    lines.append(f"- parameters updated: {stats.parameters_updated}")
    lines.append(f"- parameters failed: {stats.parameters_failed}")

    if not dry_run:
        lines.append("")
        lines.append("## Performance")
        lines.append(f"- batch requests executed: {stats.batch_requests_executed}")
        lines.append(f"- individual requests used: {stats.individual_requests_used}")

    if stats.deployment_tasks_queued > 0:
        lines.append("")
        lines.append("## Deployment")
        lines.append(f"- deployment tasks queued: {stats.deployment_tasks_queued}")
        if not dry_run:
            lines.append(f"- deployments successful: {stats.deployment_tasks_successful}")
            lines.append(f"- deployments failed: {stats.deployment_tasks_failed}")
            lines.append(f"- artifacts deployed: {stats.artifacts_deployed}")

    lines.append("")
    if stats.has_failures:
        lines.append("- 상태: 설정/배포 중 오류가 있었습니다.")
    elif dry_run:
        lines.append("- 상태: dry run 완료 (실제 변경 없음)")
    else:
        lines.append("- 상태: 설정/배포 완료")

    return "\n".join(lines)
