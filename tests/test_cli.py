"""CLI commands through typer's CliRunner."""

import json

import pytest
from typer.testing import CliRunner

from calcflow.cli.main import app
from calcflow.version import __version__

runner = CliRunner()


WORKFLOW_YAML = """
title: post read
trigger:
  collection: posts
  mode: create
collections:
  - name: posts
    defaults:
      read: 0
nodes:
  - key: n1
    type: calculation
    config:
      expression: "{{$context.data.read}} + 1"
"""


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


class TestEval:

    def test_math(self):
        result = runner.invoke(app, ["eval", "1 + 1"])
        assert result.exit_code == 0
        assert json.loads(result.output) == 2

    def test_context(self):
        result = runner.invoke(app, ["eval", "{{$context.data.read}} + 1", "-c", '{"data": {"read": 1}}'])
        assert result.exit_code == 0
        assert json.loads(result.output) == 2

    def test_formula(self):
        result = runner.invoke(
            app, ["eval", "CONCATENATE('a', {{$jobsMapByNodeKey.n1}})", "-e", "formula.js", "-j", '{"n1": "b"}']
        )
        assert result.exit_code == 0
        assert json.loads(result.output) == "ab"

    def test_error_exit_code(self):
        result = runner.invoke(app, ["eval", "1 1"])
        assert result.exit_code == 1
        assert "SyntaxError" in result.output

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]"])
    def test_bad_context(self, raw):
        result = runner.invoke(app, ["eval", "1", "-c", raw])
        assert result.exit_code == 2


def test_engines():
    result = runner.invoke(app, ["engines"])
    assert result.exit_code == 0
    assert "math.js" in result.output
    assert "formula.js" in result.output


def test_config():
    result = runner.invoke(app, ["config"])
    assert result.exit_code == 0
    assert "CALCFLOW_" in result.output


class TestRun:

    def test_resolved(self, tmp_path):
        path = tmp_path / "wf.yaml"
        path.write_text(WORKFLOW_YAML)
        result = runner.invoke(app, ["run", str(path), "--record", '{"read": 2}'])
        assert result.exit_code == 0, result.output
        assert "RESOLVED" in result.output

    def test_error(self, tmp_path):
        path = tmp_path / "wf.yaml"
        path.write_text(WORKFLOW_YAML.replace("+ 1", "+"))
        result = runner.invoke(app, ["run", str(path)])
        assert result.exit_code == 1
        assert "ERROR" in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["run", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_bad_record(self, tmp_path):
        path = tmp_path / "wf.yaml"
        path.write_text(WORKFLOW_YAML)
        result = runner.invoke(app, ["run", str(path), "--record", "[]"])
        assert result.exit_code == 2
