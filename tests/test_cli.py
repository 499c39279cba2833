import os
from pathlib import Path

import pytest
from click.testing import CliRunner

from configure_kit import cli


_CONFIG = """
deploymentPrefix: DEV_
packages:
  - integrationSuiteId: Pkg1
    artifacts:
      - artifactId: Flow1
        type: Integration
        deploy: true
        parameters:
          - key: Endpoint
            value: https://example.com
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith(("CONFIGURE_", "CPI_")):
            monkeypatch.delenv(key)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yml"
    path.write_text(_CONFIG, encoding="utf-8")
    return path


def test_plan_prints_dry_run_summary(tmp_path: Path, config_file: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli.main, ["-C", str(tmp_path), "plan", "-c", str(config_file)])

    assert result.exit_code == 0, result.output
    assert "# Dry run summary" in result.output
    assert "deployment tasks queued: 1" in result.output


def test_missing_config_path_exits_with_error(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli.main, ["-C", str(tmp_path), "plan"])

    assert result.exit_code == 1


def test_invalid_prefix_exits_with_error(tmp_path: Path, config_file: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli.main, ["-C", str(tmp_path), "plan", "-c", str(config_file), "-p", "DEV-"])

    assert result.exit_code == 1


def test_configure_uses_client_and_fails_on_parameter_error(
    tmp_path: Path,
    config_file: Path,
    fake_client,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    class _StubClient:
        @staticmethod
        def from_settings(_settings):  # noqa: ANN001, ANN205
            return fake_client

    monkeypatch.setattr(cli, "CpiClient", _StubClient)
    # 개별 요청 실패는 아티팩트 실패로 이어진다.
    fake_client.set_fail_keys = {"Endpoint"}

    runner = CliRunner()
    result = runner.invoke(
        cli.main,
        ["-C", str(tmp_path), "configure", "-c", str(config_file), "--disable-batch"],
    )

    assert result.exit_code == 1
    assert "# Configure summary" in result.output
    assert fake_client.calls_named("set_parameter") == [
        ("set_parameter", "DEV_Flow1", "active", "Endpoint", "https://example.com")
    ]
    assert fake_client.calls_named("deploy") == []


def test_configure_dry_run_flag_skips_client(
    tmp_path: Path,
    config_file: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    class _NoClient:
        @staticmethod
        def from_settings(_settings):  # noqa: ANN001, ANN205
            raise AssertionError("dry run 에서는 호출되지 않아야 한다")

    monkeypatch.setattr(cli, "CpiClient", _NoClient)

    runner = CliRunner()
    result = runner.invoke(
        cli.main,
        ["-C", str(tmp_path), "configure", "-c", str(config_file), "--dry-run"],
    )

    assert result.exit_code == 0, result.output
    assert "# Dry run summary" in result.output
