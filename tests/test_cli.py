"""Tests for the command line interface."""

import json

from click.testing import CliRunner

from main import main, parse_batch


DROP_HANDLER_SOURCE = """\
export function handleDrop(data) {
  if (!data.rawPointerEvent) {
    return null;
  }
  return data.elementId;
}
"""


class TestCli:
    """Test the flow-contracts command."""

    def test_requires_root_or_batch(self):
        """Test running without a target is a usage error."""
        result = CliRunner().invoke(main, [])
        assert result.exit_code == 2
        assert "--root or --batch is required" in result.output

    def test_clean_module_json(self, flow_module):
        """Test a clean module exits 0 and prints a JSON report."""
        result = CliRunner().invoke(main, ["--root", str(flow_module), "--json"])
        assert result.exit_code == 0
        report = json.loads(result.stdout)
        assert report["module_name"] == "canvas"
        assert report["findings"] == []
        assert report["confidence_level"] == "medium"

    def test_clean_module_text(self, flow_module):
        """Test the rich rendering of a clean module."""
        result = CliRunner().invoke(main, ["--root", str(flow_module), "--module", "canvas"])
        assert result.exit_code == 0
        assert "No data contract violations found" in result.output

    def test_blocking_findings_exit_1(self, flow_module):
        """Test critical findings give exit status 1."""
        (flow_module / "dropHandler.js").write_text(DROP_HANDLER_SOURCE)
        result = CliRunner().invoke(main, ["--root", str(flow_module), "--json", "--workers", "2"])
        assert result.exit_code == 1
        report = json.loads(result.stdout)
        assert [f["kind"] for f in report["findings"]] == ["missing_property"]

    def test_missing_root(self, tmp_path):
        """Test a missing root is reported, not raised."""
        result = CliRunner().invoke(main, ["--root", str(tmp_path / "missing"), "--json"])
        assert result.exit_code == 1
        assert '"discovery_failure"' in result.output

    def test_batch_json(self, flow_module):
        """Test batch validation output."""
        result = CliRunner().invoke(main, [
            "--batch", f"canvas={flow_module}",
            "--batch", f"copy={flow_module}",
            "--json",
        ])
        assert result.exit_code == 0
        batch = json.loads(result.stdout)
        assert batch["summary"]["total_modules"] == 2
        assert set(batch["reports"]) == {"canvas", "copy"}

    def test_bad_batch_entry(self):
        """Test malformed batch entries are a usage error."""
        result = CliRunner().invoke(main, ["--batch", "nonsense"])
        assert result.exit_code == 2
        assert "Expected name=path" in result.output


class TestParseBatch:
    """Test name=path parsing."""

    def test_parse(self):
        assert parse_batch(("a=./x", " b = ./y ")) == {"a": "./x", "b": "./y"}
