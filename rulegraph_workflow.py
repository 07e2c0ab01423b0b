# rulegraph_workflow.py
# Example workflow: count and trim the yeast read files under reads/.
#
#   rulegraph run -n                         # dry run of the default target
#   rulegraph run --config min_len=30        # build everything
#   rulegraph dag | dot -Tpng > dag.png
from __future__ import annotations

from rulegraph import wf, rule, expand, glob_wildcards

# `config` is injected by the loader; --config KEY=VALUE fills it
MIN_LEN = config.get("min_len", 20)  # noqa: F821

# file system order is arbitrary, so sort for a stable target list
CONDITIONS = sorted(set(glob_wildcards("reads/{condition}_1.fq").condition))


def both_ends(wildcards):
    """Read pair for one condition, end 1 before end 2."""
    return [f"reads/{wildcards.condition}_1.fq", f"reads/{wildcards.condition}_2.fq"]


def min_len_for(wildcards):
    # reference samples are shorter reads
    return MIN_LEN // 2 if wildcards.condition.startswith("ref") else MIN_LEN


def workflow():
    return wf(
        rule(
            "all",
            input=expand("counts/{condition}.txt", condition=CONDITIONS),
        ),
        rule(
            "count_pair",
            output="counts/{condition}.txt",
            input={"trimmed": lambda wc: expand("trimmed/{condition}_{end}.fq", condition=wc.condition, end=[1, 2])},
            shell="wc -l {input.trimmed} > {output}",
        ),
        rule(
            "trim_reads",
            output="trimmed/{condition}_{end,[12]}.fq",
            input="reads/{condition}_{end}.fq",
            params={"min_len": min_len_for},
            message="trimming {wildcards.condition} end {wildcards.end}",
            shell="awk 'length($0) >= {params.min_len}' {input} > {output}",
        ),
        rule(
            "pair_report",
            output="reports/{condition}.pair.txt",
            input={"pair": both_ends},
            shell="cat {input.pair} | wc -c > {output}",
        ),
    )
