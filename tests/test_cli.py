"""Tests for the parambuf CLI.

End-to-end testing of the layout, check, init and version commands,
and of the [tool.parambuf] configuration in pyproject.toml.
"""

import json
import textwrap

import pytest
import toml
from typer.testing import CliRunner

from modelops_parambuf.cli.__main__ import app
from modelops_parambuf.cli.config import read_pyproject, validate_config, write_config

SYSTEM_YAML = textwrap.dedent("""\
    name: decay
    parameters:
      - k
      - {name: p, shape: [2]}
      - {name: c, type: int}
      - {name: z}
      - {name: d}
    discrete:
      - clock: {kind: periodic, dt: 1.0}
        inputs: [z]
    dependencies:
      - {lhs: d, rhs: {op: add, args: [k, c]}}
    defaults:
      k: 0.5
      p: [1.0, 2.0]
      z: 0.0
""")


@pytest.fixture
def project(tmp_path, monkeypatch):
    """Project directory holding a system description."""
    (tmp_path / "decay.yaml").write_text(SYSTEM_YAML)
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestLayoutCommand:
    """Tests for 'parambuf layout'."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_table(self, project):
        result = self.runner.invoke(app, ["layout", "decay.yaml"])
        assert result.exit_code == 0
        assert "tunable" in result.output
        assert "discrete" in result.output
        assert "constants" in result.output

    def test_csv(self, project):
        result = self.runner.invoke(app, ["layout", "decay.yaml", "--format", "csv"])
        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert lines[0] == "name,portion,clock,group,offset,length,type"
        assert len(lines) == 5
        assert lines[1].startswith("k,tunable,")

    def test_json(self, project):
        result = self.runner.invoke(app, ["layout", "decay.yaml", "-f", "json"])
        assert result.exit_code == 0
        json.loads(result.output)
        assert '"p"' in result.output

    def test_unsupported_format(self, project):
        result = self.runner.invoke(app, ["layout", "decay.yaml", "--format", "xml"])
        assert result.exit_code == 1
        assert "Unsupported format" in result.output

    def test_missing_file(self, project):
        result = self.runner.invoke(app, ["layout", "missing.yaml"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_no_system(self, project):
        result = self.runner.invoke(app, ["layout"])
        assert result.exit_code == 1
        assert "No system given" in result.output

    def test_layout_error(self, project):
        (project / "bad.yaml").write_text(textwrap.dedent("""\
            name: bad
            parameters: [k, d]
            discrete:
              - clock: {kind: periodic, dt: 1.0}
                inputs: [d]
            dependencies:
              - {lhs: d, rhs: k}
        """))
        result = self.runner.invoke(app, ["layout", "bad.yaml"])
        assert result.exit_code == 1
        assert "cannot be discrete" in result.output


class TestCheckCommand:
    """Tests for 'parambuf check'."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_missing_values(self, project):
        result = self.runner.invoke(app, ["check", "decay.yaml"])
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "c" in result.output

    def test_with_values(self, project):
        (project / "values.yaml").write_text("c: 3\n")
        result = self.runner.invoke(app, ["check", "decay.yaml", "--values", "values.yaml"])
        assert result.exit_code == 0
        assert "✓ decay: parameter store built" in result.output
        assert "Tunable    : 3 values" in result.output
        assert "Dependent  : 1 parameters" in result.output
        assert "Buffers    : 3" in result.output

    def test_values_file_missing(self, project):
        result = self.runner.invoke(app, ["check", "decay.yaml", "--values", "nope.yaml"])
        assert result.exit_code == 1
        assert "Values file not found" in result.output

    def test_wrong_value_type(self, project):
        (project / "values.yaml").write_text("c: 1.5\n")
        result = self.runner.invoke(app, ["check", "decay.yaml", "--values", "values.yaml"])
        assert result.exit_code == 1
        assert "Error:" in result.output


class TestConfiguredProject:
    """Tests for commands reading [tool.parambuf]."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_init_then_layout(self, project):
        result = self.runner.invoke(app, ["init", "decay.yaml", "--format", "csv"])
        assert result.exit_code == 0
        assert "Configured system decay.yaml" in result.output
        assert read_pyproject(project) == {"system": "decay.yaml", "format": "csv"}

        result = self.runner.invoke(app, ["layout"])
        assert result.exit_code == 0
        assert result.output.startswith("name,portion,clock,group,offset,length,type")

    def test_init_rejects_format(self, project):
        result = self.runner.invoke(app, ["init", "decay.yaml", "--format", "xml"])
        assert result.exit_code == 1
        assert not (project / "pyproject.toml").exists()

    def test_invalid_config(self, project):
        (project / "pyproject.toml").write_text('[tool.parambuf]\nsystem = "decay.yaml"\nformat = "xml"\n')
        result = self.runner.invoke(app, ["layout"])
        assert result.exit_code == 1
        assert "Unsupported format: xml" in result.output

    def test_argument_overrides_config(self, project):
        (project / "other.yaml").write_text("name: other\nparameters: [q]\n")
        write_config("decay.yaml", "csv", root=project)
        result = self.runner.invoke(app, ["layout", "other.yaml"])
        assert result.exit_code == 0
        assert "q,tunable," in result.output


class TestMainApp:
    """Tests for the top-level app."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_version(self):
        result = self.runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "parambuf version" in result.output

    def test_no_command(self):
        result = self.runner.invoke(app, [])
        assert result.exit_code == 1
        assert "Missing command" in result.output

    def test_verbose_flag(self, project):
        result = self.runner.invoke(app, ["--verbose", "layout", "decay.yaml"])
        assert result.exit_code == 0


class TestConfig:
    """Tests for pyproject.toml configuration helpers."""

    def test_read_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="pyproject.toml not found"):
            read_pyproject(tmp_path)

    def test_read_without_table(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text('[project]\nname = "x"\n')
        assert read_pyproject(tmp_path) == {}

    def test_write_preserves_other_tables(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text('[project]\nname = "x"\n')
        write_config("models/decay.yaml", root=tmp_path)
        data = toml.load(tmp_path / "pyproject.toml")
        assert data["project"]["name"] == "x"
        assert data["tool"]["parambuf"] == {"system": "models/decay.yaml", "format": "table"}

    def test_validate_valid(self):
        assert validate_config({"system": "decay.yaml", "format": "json"}) == []
        assert validate_config({}) == []

    def test_validate_errors(self):
        errors = validate_config({"system": 3, "format": "xml", "extra": True})
        assert len(errors) == 3
        assert any("'system' must be a path string" in e for e in errors)
        assert any("Unknown configuration keys: ['extra']" in e for e in errors)
