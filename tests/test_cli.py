"""Tests for the complement command line."""

from pathlib import Path

import pytest
from click.testing import CliRunner
from rich.console import Console

from complement import cli as cli_module
from complement.cli import cli
from complement.config import ComplementConfig
from complement.docker.builder import Builder


@pytest.fixture
def cli_builder(fake_docker, runners, versions_up, monkeypatch):
    """Route the CLI to a Builder backed by the docker fake."""
    config = ComplementConfig(base_image_uri="complement-base:latest", version_check_iterations=3)
    builder = Builder(config, docker_client=fake_docker, runner_factory=runners())
    monkeypatch.setattr(cli_module, "_builder", lambda show_progress=False: builder)
    monkeypatch.setattr(cli_module, "console", Console(width=200))
    return builder


@pytest.fixture
def blueprints_file(tmp_path: Path) -> Path:
    path = tmp_path / "blueprints.yaml"
    path.write_text(
        "- name: one_to_one_room\n"
        "  homeservers:\n"
        "    - name: hs1\n"
        "      users: [alice, bob]\n"
    )
    return path


def test_build(cli_builder, fake_docker, blueprints_file):
    result = CliRunner().invoke(cli, ["build", "--quiet", str(blueprints_file)])

    assert result.exit_code == 0, result.output
    (image,) = fake_docker.images_.values()
    assert image["Labels"]["complement_blueprint"] == "one_to_one_room"


def test_build_skips_existing_unless_forced(cli_builder, fake_docker, blueprints_file):
    runner = CliRunner()
    runner.invoke(cli, ["build", "-q", str(blueprints_file)])
    runner.invoke(cli, ["build", "-q", str(blueprints_file)])
    assert len(fake_docker.images_) == 1

    result = runner.invoke(cli, ["build", "-q", "--force", str(blueprints_file)])

    assert result.exit_code == 0, result.output
    assert len(fake_docker.images_) == 2


def test_build_reports_errors(cli_builder, fake_docker, blueprints_file):
    from docker.errors import APIError

    fake_docker.fail["create_network"] = APIError("no more address pools")

    result = CliRunner().invoke(cli, ["build", str(blueprints_file)])

    assert result.exit_code == 1
    assert "no more address pools" in result.output


def test_images_lists_built_blueprints(cli_builder, blueprints_file):
    runner = CliRunner()
    runner.invoke(cli, ["build", "-q", str(blueprints_file)])

    result = runner.invoke(cli, ["images"])

    assert result.exit_code == 0, result.output
    assert "one_to_one_room" in result.output
    assert "one_to_one_room.hs1" in result.output


def test_cleanup(cli_builder, fake_docker, blueprints_file):
    runner = CliRunner()
    runner.invoke(cli, ["build", "-q", str(blueprints_file)])

    result = runner.invoke(cli, ["cleanup"])

    assert result.exit_code == 0, result.output
    assert "Cleaned up" in result.output
    assert fake_docker.images_ == {}
