"""
Tests for the notebook-go CLI.
"""

import shutil

import pytest
from click.testing import CliRunner

from notebook_go.cli import WELCOME_CELL, main
from notebook_go.notebook import CellType, Notebook

requires_go = pytest.mark.skipif(shutil.which("go") is None, reason="go toolchain not installed")


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("NOTEBOOK_GO_SESSIONS_DIR", str(tmp_path / "sessions"))
    return CliRunner()


class TestCli:
    """Test cases for CLI commands that do not need Go."""

    def test_new(self, runner, tmp_path):
        result = runner.invoke(main, ["new"])

        assert result.exit_code == 0, result.output
        nb = Notebook.load(tmp_path / "notebook.nbgo")
        assert nb.metadata["name"] == "notebook"
        assert nb.cells[0].source == WELCOME_CELL
        assert nb.cells[1].type == CellType.MARKDOWN

    def test_new_with_name(self, runner, tmp_path):
        result = runner.invoke(main, ["new", "demo.nbgo", "--name", "Demo"])

        assert result.exit_code == 0, result.output
        assert Notebook.load(tmp_path / "demo.nbgo").metadata["name"] == "Demo"

    def test_show(self, runner):
        runner.invoke(main, ["new", "demo.nbgo"])
        result = runner.invoke(main, ["show", "demo.nbgo"])

        assert result.exit_code == 0, result.output
        assert "import" in result.output
        assert "markdown" in result.output

    def test_run_without_code_cells(self, runner, tmp_path):
        nb = Notebook.new()
        nb.add_cell(type=CellType.MARKDOWN, source="only notes")
        nb.save(tmp_path / "empty.nbgo")

        result = runner.invoke(main, ["run", "empty.nbgo"])

        assert result.exit_code == 0
        assert "No code cells" in result.output

    def test_sessions_empty(self, runner):
        result = runner.invoke(main, ["sessions"])

        assert result.exit_code == 0
        assert "No saved sessions found" in result.output

    def test_delete_unknown_session(self, runner):
        result = runner.invoke(main, ["sessions", "--delete", "nope"])

        assert result.exit_code == 1
        assert "No saved session named nope" in result.output


class TestCliSessions:
    """Saving, restoring and deleting notebook sessions, on a stand-in `go`."""

    @pytest.fixture(autouse=True)
    def _setup(self, runner, fake_go, tmp_path):
        self.runner = runner
        self.tmp_path = tmp_path
        self.go_options = ["--go", str(fake_go), "--work-dir", str(tmp_path / "work")]

        nb = Notebook.new(name="decls")
        nb.add_cell(source="func f() {}\n\ntype T int")
        nb.save(tmp_path / "decls.nbgo")

    def invoke(self, *args):
        return self.runner.invoke(main, [*self.go_options, *args])

    def test_save_list_restore_delete(self):
        result = self.invoke("run", "decls.nbgo", "--save-session")
        assert result.exit_code == 0, result.output
        assert "Session saved" in result.output

        result = self.invoke("sessions")
        assert "decls" in result.output
        assert "checkpoint" in result.output

        result = self.invoke("run", "decls.nbgo", "--restore-session")
        assert result.exit_code == 0, result.output
        assert "Restored session with 2 declarations" in result.output

        result = self.invoke("sessions", "--delete", "decls")
        assert result.exit_code == 0, result.output
        assert not (self.tmp_path / "sessions" / "checkpoints" / "decls.checkpoint").exists()

    def test_restore_without_checkpoint(self):
        result = self.invoke("run", "decls.nbgo", "--restore-session")

        assert result.exit_code == 0, result.output
        assert "No saved session for this notebook" in result.output


@requires_go
@pytest.mark.go
class TestCliWithGo:
    """CLI commands running the real Go toolchain."""

    def test_run(self, runner, tmp_path):
        runner.invoke(main, ["new", "demo.nbgo"])

        result = runner.invoke(main, ["--work-dir", str(tmp_path / "work"), "run", "demo.nbgo", "--save-session"])

        assert result.exit_code == 0, result.output
        assert "Hello, notebook-go!" in result.output
        cell = Notebook.load(tmp_path / "demo.nbgo").cells[0]
        assert cell.execution_count == 1
        assert cell.metadata["state"] == "succeeded"
        assert (tmp_path / "sessions" / "checkpoints" / "demo.checkpoint").exists()

    def test_exec_failure(self, runner, tmp_path):
        result = runner.invoke(main, ["--work-dir", str(tmp_path / "work"), "exec"], input="%%\nundefinedThing()\n")

        assert result.exit_code == 1
        assert "cell[1]:2:1" in result.output
