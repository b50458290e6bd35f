"""Unit tests for templating and context assembly (chainflow/pipeline/prompt.py)."""

import pytest

from chainflow.pipeline import (
    MemoryContext,
    Run,
    build_l2_context,
    build_template_vars,
    render_template,
    truncate_summary,
)
from chainflow.pipeline.prompt import TRUNCATION_MARKER


class TestRenderTemplate:

    @pytest.mark.unit
    def test_unknown_placeholders_left_verbatim(self):
        assert render_template("{{prev.output}}+{{unknown.x}}", {"prev": {"output": "A"}}) == "A+{{unknown.x}}"

    @pytest.mark.unit
    def test_all_namespaces(self):
        variables = build_template_vars(MemoryContext(l2="up", l3="facts"), "question", "Writer")
        template = "{{node.label}} | {{user.input}} | {{global.facts}} | {{prev.output}}"
        assert render_template(template, variables) == "Writer | question | facts | up"

    @pytest.mark.unit
    def test_non_word_keys_not_matched(self):
        assert render_template("{{prev.out-put}}", {"prev": {"out-put": "x"}}) == "{{prev.out-put}}"

    @pytest.mark.unit
    def test_non_string_value_left_verbatim(self):
        assert render_template("{{a.b}}", {"a": {"b": 3}}) == "{{a.b}}"

    @pytest.mark.unit
    def test_empty_memory_renders_empty_strings(self):
        variables = build_template_vars(MemoryContext(), "", "")
        assert render_template("[{{prev.output}}][{{global.facts}}]", variables) == "[][]"


class TestTruncateSummary:

    @pytest.mark.unit
    def test_short_text_unchanged(self):
        assert truncate_summary("hello", 10) == "hello"

    @pytest.mark.unit
    def test_cuts_at_late_sentence_boundary(self):
        text = "a" * 70 + ". " + "b" * 100
        result = truncate_summary(text, 100)
        assert result == "a" * 70 + "." + TRUNCATION_MARKER

    @pytest.mark.unit
    def test_ignores_early_boundary(self):
        text = "a" * 10 + ". " + "b" * 200
        result = truncate_summary(text, 100)
        assert result == text[:100] + TRUNCATION_MARKER

    @pytest.mark.unit
    def test_cjk_full_stop_boundary(self):
        text = "字" * 80 + "。" + "字" * 50
        assert truncate_summary(text, 100) == "字" * 80 + "。" + TRUNCATION_MARKER

    @pytest.mark.unit
    @pytest.mark.parametrize("length", [1, 99, 100, 101, 5000])
    def test_bounded(self, length):
        result = truncate_summary("x. " * length, 100)
        assert len(result) <= 100 + len(TRUNCATION_MARKER)


class TestL2Context:

    @pytest.mark.unit
    def test_empty(self):
        assert build_l2_context([]) == ""

    @pytest.mark.unit
    def test_numbered_headers(self):
        assert build_l2_context(["one", "two"]) == (
            "[Upstream node 1 output]:\none\n\n[Upstream node 2 output]:\ntwo"
        )

    @pytest.mark.unit
    def test_truncated_to_budget(self):
        result = build_l2_context(["x" * 5000])
        assert result.endswith(TRUNCATION_MARKER)
        assert len(result) <= 4000 + len(TRUNCATION_MARKER)


class TestRun:

    @pytest.mark.unit
    def test_outputs_are_write_once(self):
        run = Run()
        run.record("A", "first")
        with pytest.raises(RuntimeError):
            run.record("A", "second")
        assert run.output("A") == "first"

    @pytest.mark.unit
    def test_parent_outputs_drop_missing_and_empty(self):
        run = Run()
        run.record("A", "alpha")
        run.record("B", "")
        assert run.parent_outputs(["A", "B", "missing"]) == ["alpha"]
