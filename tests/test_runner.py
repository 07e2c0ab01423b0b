import os
import time
from pathlib import Path

import pytest

from rulegraph.dag import build_graph
from rulegraph.dsl import rule
from rulegraph.errors import MissingOutputError, MissingSourceError
from rulegraph.registry import RuleRegistry
from rulegraph.runner import _run_job, plan_jobs, run_graph


# -------------------------------------------------------
# Helpers
# -------------------------------------------------------

def write_upper(job):
    text = Path(job.inputs[0]).read_text()
    Path(job.outputs[0]).write_text(text.upper())


def pipeline():
    return RuleRegistry([
        rule("all", input=["counts/a.txt"]),
        rule("count", output="counts/{sample}.txt", input="trimmed/{sample}.fq", shell="wc -l < {input} > {output}"),
        rule(
            "trim",
            output="trimmed/{sample}.fq",
            input=lambda wc: f"reads/{wc.sample}.fq",
            run=write_upper,
            message="trimming {wildcards.sample}",
        ),
    ])


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    (tmp_path / "reads").mkdir()
    (tmp_path / "reads" / "a.fq").write_text("acgt\nttga\n")
    monkeypatch.chdir(tmp_path)
    return tmp_path


def build(registry, *targets):
    return build_graph(registry, list(targets))


# -------------------------------------------------------
# Running
# -------------------------------------------------------

def test_run_builds_every_job(workdir, capsys):
    graph = build(pipeline(), "all")

    results = run_graph(graph, max_workers=2)

    assert results == {"trimmed/a.fq": "ok", "counts/a.txt": "ok", "all": "ok"}
    assert (workdir / "trimmed" / "a.fq").read_text() == "ACGT\nTTGA\n"
    assert (workdir / "counts" / "a.txt").read_text().strip() == "2"
    out = capsys.readouterr().out
    assert "trimming a" in out
    assert "$ wc -l < trimmed/a.fq > counts/a.txt" in out


def test_second_run_is_up_to_date(workdir):
    graph = build(pipeline(), "all")
    run_graph(graph, max_workers=1)

    results = run_graph(graph, max_workers=1)

    assert set(results.values()) == {"up-to-date"}


def test_newer_source_reruns_downstream(workdir):
    graph = build(pipeline(), "counts/a.txt")
    run_graph(graph, max_workers=1)

    later = time.time() + 60
    os.utime(workdir / "reads" / "a.fq", (later, later))
    plan = plan_jobs(graph)

    assert plan["trimmed/a.fq"] == "input newer than output"
    assert plan["counts/a.txt"] == "updated input from trimmed/a.fq"
    assert run_graph(graph, max_workers=1) == {"trimmed/a.fq": "ok", "counts/a.txt": "ok"}


def test_force_runs_everything(workdir):
    graph = build(pipeline(), "counts/a.txt")
    run_graph(graph, max_workers=1)

    assert set(plan_jobs(graph, force=True).values()) == {"forced"}
    assert set(run_graph(graph, max_workers=1, force=True).values()) == {"ok"}


def test_plan_reports_missing_outputs(workdir):
    graph = build(pipeline(), "counts/a.txt")

    plan = plan_jobs(graph)

    assert plan["trimmed/a.fq"] == "missing output trimmed/a.fq"


# -------------------------------------------------------
# Failures
# -------------------------------------------------------

def test_missing_source_fails_job_and_skips_dependents(workdir, capsys):
    graph = build(pipeline(), "counts/zz.txt")

    results = run_graph(graph, max_workers=1)

    assert results == {"trimmed/zz.fq": "failed", "counts/zz.txt": "skipped"}
    out = capsys.readouterr().out
    assert "JOB FAILED: trim[sample=zz]" in out
    assert "reads/zz.fq" in out


def test_missing_source_error_type(workdir):
    graph = build(pipeline(), "counts/zz.txt")

    with pytest.raises(MissingSourceError) as exc:
        _run_job(graph.jobs["trimmed/zz.fq"], graph, workdir)

    assert exc.value.path == "reads/zz.fq"


def test_failed_command_removes_partial_output(workdir, capsys):
    registry = RuleRegistry([
        rule("broken", output="out/{s}.txt", input="reads/{s}.fq", shell="echo partial > {output}; exit 3"),
    ])
    graph = build(registry, "out/a.txt")

    results = run_graph(graph, max_workers=1)

    assert results == {"out/a.txt": "failed"}
    assert not (workdir / "out" / "a.txt").exists()
    assert "Exit code: 3" in capsys.readouterr().out


def test_action_that_writes_nothing_is_an_error(workdir):
    registry = RuleRegistry([rule("lazy", output="out/{s}.txt", input="reads/{s}.fq", shell="true")])
    graph = build(registry, "out/a.txt")

    with pytest.raises(MissingOutputError) as exc:
        _run_job(graph.jobs["out/a.txt"], graph, workdir)
    assert exc.value.paths == ["out/a.txt"]

    assert run_graph(graph, max_workers=1) == {"out/a.txt": "failed"}


def test_keep_going_finishes_independent_jobs(workdir):
    registry = RuleRegistry([
        rule("bad", output="bad/{s}.txt", input="reads/{s}.fq", shell="exit 1"),
        rule("count", output="counts/{sample}.txt", input="trimmed/{sample}.fq", shell="wc -l < {input} > {output}"),
        rule("trim", output="trimmed/{sample}.fq", input="reads/{sample}.fq", run=write_upper),
    ])
    graph = build(registry, "bad/a.txt", "counts/a.txt")

    results = run_graph(graph, max_workers=1, keep_going=True)

    assert results == {"bad/a.txt": "failed", "trimmed/a.fq": "ok", "counts/a.txt": "ok"}


def test_message_sees_the_same_fields_as_shell_actions(workdir, capsys):
    registry = RuleRegistry([
        rule(
            "mk",
            output="made/{s}.txt",
            input="reads/{s}.fq",
            params={"n": 2},
            shell="head -n {params.n} {input} > {output}",
            message="running {rule} for {wildcards.s}: {input} -> {output}",
        ),
    ])
    graph = build(registry, "made/a.txt")

    assert run_graph(graph, max_workers=1) == {"made/a.txt": "ok"}
    assert "running mk for a: reads/a.fq -> made/a.txt" in capsys.readouterr().out
