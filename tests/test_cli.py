from pathlib import Path

import pytest
from click.testing import CliRunner

from rulegraph.cli import cli


WORKFLOW = """
from rulegraph import wf, rule

SAMPLES = config.get("samples", ["a"])

def workflow():
    return wf(
        rule("all", input=[f"counts/{s}.txt" for s in SAMPLES]),
        rule("count", output="counts/{sample}.txt", input="copies/{sample}.txt", shell="wc -l < {input} > {output}"),
        rule("copy", output="copies/{sample}.txt", input="reads/{sample}.txt", shell="cp {input} {output}"),
    )
"""


@pytest.fixture
def project(tmp_path, monkeypatch):
    (tmp_path / "rulegraph_workflow.py").write_text(WORKFLOW)
    (tmp_path / "reads").mkdir()
    (tmp_path / "reads" / "a.txt").write_text("one\ntwo\nthree\n")
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def runner(monkeypatch):
    # each invocation installs its own console; drop it again afterwards
    monkeypatch.setattr("rulegraph.ui.console._console", None)
    return CliRunner()


# -------------------------------------------------------
# run
# -------------------------------------------------------

def test_dry_run_prints_plan_only(runner, project):
    result = runner.invoke(cli, ["run", "-n", "counts/a.txt"])

    assert result.exit_code == 0, result.output
    assert "JOB PLAN" in result.output
    assert "count[sample=a] (run: updated input from copies/a.txt)" in result.output
    assert "<- reads/a.txt" in result.output
    assert "2 of 2 job(s) would run" in result.output
    assert not (project / "counts").exists()


def test_run_builds_target(runner, project):
    result = runner.invoke(cli, ["run", "counts/a.txt"])

    assert result.exit_code == 0, result.output
    assert (project / "counts" / "a.txt").read_text().strip() == "3"
    assert "BUILD STARTED" in result.output
    assert "counts/a.txt: SUCCESS" in result.output


def test_run_defaults_to_first_rule(runner, project):
    result = runner.invoke(cli, ["run", "-j", "2"])

    assert result.exit_code == 0, result.output
    assert "Targets: all" in result.output
    assert (project / "copies" / "a.txt").exists()


def test_second_run_is_up_to_date(runner, project):
    runner.invoke(cli, ["run", "counts/a.txt"])

    result = runner.invoke(cli, ["run", "-n", "counts/a.txt"])

    assert "0 of 2 job(s) would run" in result.output


def test_config_reaches_workflow(runner, project):
    result = runner.invoke(cli, ["run", "-n", "--config", 'samples=["x","y"]'])

    assert result.exit_code == 0, result.output
    assert "count[sample=x]" in result.output
    assert "count[sample=y]" in result.output


def test_bad_config_item(runner, project):
    result = runner.invoke(cli, ["run", "-n", "--config", "samples"])

    assert result.exit_code == 1
    assert "expected KEY=VALUE" in result.output


def test_unknown_target_fails(runner, project):
    result = runner.invoke(cli, ["run", "nothing.csv"])

    assert result.exit_code == 1
    assert "no rule produces 'nothing.csv'" in result.output


def test_failing_job_sets_exit_code(runner, project):
    (project / "reads" / "a.txt").unlink()

    result = runner.invoke(cli, ["run", "counts/a.txt"])

    assert result.exit_code == 1
    assert "JOB FAILED: copy[sample=a]" in result.output
    assert "counts/a.txt: SKIPPED" in result.output


def test_directory_option(runner, tmp_path, monkeypatch):
    work = tmp_path / "work"
    work.mkdir()
    (work / "rulegraph_workflow.py").write_text(WORKFLOW)
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(cli, ["run", "-n", "-d", str(work), "copies/a.txt"])

    assert result.exit_code == 0, result.output
    assert "copy[sample=a]" in result.output


# -------------------------------------------------------
# list / dag
# -------------------------------------------------------

def test_list_rules(runner, project):
    result = runner.invoke(cli, ["list"])

    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == [
        "all",
        "count",
        "  counts/{sample}.txt",
        "copy",
        "  copies/{sample}.txt",
    ]


def test_dag_prints_dot(runner, project):
    result = runner.invoke(cli, ["dag", "counts/a.txt"])

    assert result.exit_code == 0, result.output
    assert result.output.startswith("digraph rulegraph {")
    assert "    0 -> 1" in result.output


# -------------------------------------------------------
# Workflow discovery
# -------------------------------------------------------

def test_missing_workflow(runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(cli, ["run"])

    assert result.exit_code == 1
    assert "No workflow file found" in result.output


def test_explicit_workflow_without_suffix(runner, project):
    Path("other_workflow.py").write_text(WORKFLOW)

    result = runner.invoke(cli, ["list", "--workflow", "other_workflow"])

    assert result.exit_code == 0, result.output
    assert "copy" in result.output


def test_multiple_workflows_need_a_choice(runner, project):
    Path("other_workflow.py").write_text(WORKFLOW)

    result = runner.invoke(cli, ["list"])

    assert result.exit_code == 1
    assert "Multiple workflow files found" in result.output


@pytest.mark.parametrize("workers", ["0", "-2"])
def test_workers_must_be_positive(runner, project, workers):
    result = runner.invoke(cli, ["run", "-j", workers, "counts/a.txt"])

    assert result.exit_code == 2
    assert "BUILD STARTED" not in result.output
    assert not (project / "copies").exists()


def test_debug_shows_rule_matching(runner, project):
    result = runner.invoke(cli, ["--debug", "run", "-n", "counts/a.txt"])

    assert result.exit_code == 0, result.output
    assert "[DEBUG] counts/a.txt <- rule count {'sample': 'a'}" in result.output
    assert "[DEBUG] source: reads/a.txt" in result.output
