import pytest

from rulegraph.dsl import RuleBuilder, rule
from rulegraph.errors import InputFunctionError, UnboundWildcardError
from rulegraph.model import InputFunction, WildcardBinding
from rulegraph.resolver import resolve
from rulegraph.runner import format_action


# -------------------------------------------------------
# Helpers
# -------------------------------------------------------

def both_ends(wildcards):
    return ["in/{sample}_a.txt", "in/{sample}_b.txt"]


# -------------------------------------------------------
# Inputs
# -------------------------------------------------------

def test_input_function_result_is_resolved_in_order():
    r = rule("R", output="out/{sample}.txt", input=both_ends, shell="cat {input} > {output}")

    job = resolve(r, WildcardBinding(sample="s1"))

    assert list(job.inputs) == ["in/s1_a.txt", "in/s1_b.txt"]
    assert list(job.outputs) == ["out/s1.txt"]
    assert job.rule == "R"
    assert job.key == "out/s1.txt"


def test_input_function_called_only_with_binding():
    seen = []

    def reads(wildcards):
        seen.append(dict(wildcards))
        return f"reads/{wildcards.sample}.fq"

    r = rule("trim", output="trimmed/{sample}.fq", input=reads)
    assert seen == []

    resolve(r, {"sample": "etoh60"})
    assert seen == [{"sample": "etoh60"}]


def test_resolve_is_idempotent():
    r = rule("R", output="out/{sample}.txt", input={"pair": both_ends, "ref": "ref/genome.fa"})
    binding = WildcardBinding(sample="s1")

    first = resolve(r, binding)
    second = resolve(r, binding)

    assert tuple(first.inputs) == tuple(second.inputs)
    assert first == second


def test_inputs_follow_declaration_order_and_keep_duplicates():
    r = rule(
        "merge",
        output="merged/{sample}.txt",
        input={
            "late": lambda wc: ["b/{sample}.txt", "a/{sample}.txt", "b/{sample}.txt"],
            "early": "z/{sample}.txt",
        },
    )

    job = resolve(r, {"sample": "x"})

    assert list(job.inputs) == ["b/x.txt", "a/x.txt", "b/x.txt", "z/x.txt"]
    assert list(job.inputs.late) == ["b/x.txt", "a/x.txt", "b/x.txt"]
    assert job.inputs.early == "z/x.txt"


def test_static_list_input():
    r = rule("pair", output="out/{s}.txt", input=["reads/{s}_1.fq", "reads/{s}_2.fq"])

    job = resolve(r, {"s": "ref1"})

    assert list(job.inputs) == ["reads/ref1_1.fq", "reads/ref1_2.fq"]


def test_unbound_wildcard_names_the_rule():
    r = rule("count", output="counts/{sample}.txt", input="trimmed/{sample}.fq")

    with pytest.raises(UnboundWildcardError) as exc:
        resolve(r, {"condition": "x"})

    assert exc.value.rule == "count"
    assert exc.value.wildcard == "sample"


# -------------------------------------------------------
# Input function failures
# -------------------------------------------------------

def test_input_function_exception_is_wrapped():
    def broken(wildcards):
        raise KeyError(wildcards.sample)

    r = rule("R", output="out/{sample}.txt", input={"reads": broken})

    with pytest.raises(InputFunctionError) as exc:
        resolve(r, {"sample": "s9"})

    assert exc.value.rule == "R"
    assert exc.value.name == "reads"
    assert exc.value.wildcards == {"sample": "s9"}
    assert "KeyError" in exc.value.message
    assert isinstance(exc.value.__cause__, KeyError)


@pytest.mark.parametrize("bad", [42, None, {"a": "b"}, ["ok.txt", 3]])
def test_input_function_wrong_type(bad):
    r = rule("R", output="out/{sample}.txt", input=lambda wc: bad)

    with pytest.raises(InputFunctionError):
        resolve(r, {"sample": "s1"})


def test_input_function_empty_result():
    r = rule("R", output="out/{sample}.txt", input=lambda wc: [])

    with pytest.raises(InputFunctionError) as exc:
        resolve(r, {"sample": "s1"})
    assert "no paths" in str(exc.value)


def test_input_function_empty_result_allowed_when_marked():
    r = rule("R", output="out/{sample}.txt", input={"extra": InputFunction(lambda wc: [], allow_empty=True)})

    job = resolve(r, {"sample": "s1"})

    assert list(job.inputs) == []


# -------------------------------------------------------
# Params / actions
# -------------------------------------------------------

def test_params_static_and_function():
    r = rule(
        "trim",
        output="trimmed/{sample}.fq",
        input="reads/{sample}.fq",
        params={
            "min_len": 20,
            "tag": "{sample}-trimmed",
            "quality": lambda wc: 10 if wc.sample.startswith("ref") else 30,
        },
    )

    job = resolve(r, {"sample": "ref1"})

    assert job.params == {"min_len": 20, "tag": "ref1-trimmed", "quality": 10}
    assert job.params.quality == 10


def test_param_function_failure():
    r = rule("R", output="out/{s}.txt", params={"x": lambda wc: 1 / 0})

    with pytest.raises(InputFunctionError) as exc:
        resolve(r, {"s": "a"})
    assert exc.value.name == "x"


def test_shell_action_formats_with_job_values():
    r = (
        RuleBuilder("count")
        .outputs(report="counts/{sample}.txt")
        .inputs(reads="trimmed/{sample}.fq")
        .with_params(flag="-l")
        .shell("wc {params.flag} {input.reads} > {output.report} # {wildcards.sample}")
        .build()
    )

    job = resolve(r, {"sample": "etoh60"})

    assert format_action(job) == "wc -l trimmed/etoh60.fq > counts/etoh60.txt # etoh60"


def test_positional_inputs_format_in_order():
    r = rule("cat", output="all/{s}.txt", input=["b/{s}", "a/{s}"], shell="cat {input} > {output}")

    assert format_action(resolve(r, {"s": "1"})) == "cat b/1 a/1 > all/1.txt"


def test_builder_input_fn_run_and_message():
    calls = []

    def extra(wildcards):
        return []

    def touch(job):
        calls.append(job.key)

    r = (
        RuleBuilder("mk")
        .outputs("made/{s}.txt")
        .inputs("reads/{s}.fq")
        .input_fn("extra", extra, allow_empty=True)
        .with_message("making {output}")
        .run(touch)
        .build()
    )

    job = resolve(r, {"s": "a"})

    assert list(job.inputs) == ["reads/a.fq"]
    assert job.inputs.groups["extra"] == ()
    assert job.message == "making {output}"
    job.action(job)
    assert calls == ["made/a.txt"]


def test_builder_input_fn_rejects_empty_by_default():
    r = RuleBuilder("mk").outputs("made/{s}.txt").input_fn("extra", lambda wc: []).build()

    with pytest.raises(InputFunctionError) as exc:
        resolve(r, {"s": "a"})
    assert exc.value.name == "extra"


def test_format_action_needs_a_shell_command():
    job = resolve(rule("mk", output="made/{s}.txt", run=lambda job: None), {"s": "a"})

    with pytest.raises(TypeError):
        format_action(job)
