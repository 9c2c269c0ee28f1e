"""Unit tests for doccompare.services.llm.prompt_engine."""
import json

import pytest

from doccompare.services.diff.engine import diff_texts
from doccompare.services.diff.structured import diff_structured
from doccompare.services.diff.summary import summarize
from doccompare.services.diff.tokenizer import DiffUnit
from doccompare.services.llm.prompt_engine import (
    PromptEngine,
    build_insights_input,
    load_prompt_template,
    render_template,
)


# ─── render_template ──────────────────────────────────────────────────────────

def test_render_replaces_placeholders():
    assert render_template("Hi {{name}}, {{ greeting }}!", {"name": "Ada", "greeting": "welcome"}) == (
        "Hi Ada, welcome!"
    )


def test_render_unknown_and_none_become_empty():
    assert render_template("[{{ missing }}][{{ nothing }}]", {"nothing": None}) == "[][]"


def test_render_leaves_other_braces_alone():
    assert render_template('{"a": 1} {{ x }}', {"x": 2}) == '{"a": 1} 2'


def test_render_repeated_placeholder():
    assert render_template("{{ x }}-{{x}}", {"x": "y"}) == "y-y"


# ─── load_prompt_template ─────────────────────────────────────────────────────

def test_default_template_ships_with_package():
    template = load_prompt_template()
    assert "{{ input_json }}" in template


def test_missing_template_returns_empty(tmp_path):
    assert load_prompt_template(tmp_path / "nope.txt") == ""


# ─── build_insights_input ─────────────────────────────────────────────────────

def _digest(settings, left_text, right_text, **names):
    segments = diff_texts(left_text, right_text, DiffUnit.WORDS)
    return build_insights_input(
        left_name=names.get("left_name"),
        right_name=names.get("right_name"),
        summary=summarize(segments, DiffUnit.WORDS),
        segments=segments,
        structured_changes=[],
        settings=settings,
    )


def test_digest_meta_counts(settings):
    digest = _digest(
        settings,
        "Payment due in 30 days",
        "Payment due in 45 days",
        left_name="v1.pdf",
        right_name="v2.pdf",
    )
    assert digest["meta"] == {
        "left_name": "v1.pdf",
        "right_name": "v2.pdf",
        "diff_mode": "words",
        "unit": "words",
        "additions": 1,
        "removals": 1,
        "diff_chunks": 4,
        "structured_changes": 0,
    }
    assert digest["structured_diff_sample"] == []


def test_digest_default_names(settings):
    digest = _digest(settings, "a", "b")
    assert digest["meta"]["left_name"] == "Document A"
    assert digest["meta"]["right_name"] == "Document B"


def test_digest_excerpts_are_cleaned(settings):
    digest = _digest(settings, "The old wording stays.", "The brand new wording stays.")
    assert digest["excerpts"]["added"] == ["brand new"]
    # "old" is under the minimum excerpt length
    assert digest["excerpts"]["removed"] == []


def test_digest_samples_structured_changes(settings):
    settings = settings.model_copy(
        update={"structured_sample_size": 2, "structured_sample_value_len": 10}
    )
    left = {"a": "x" * 50, "b": 1, "c": 1}
    right = {"a": "y" * 50, "b": 2, "c": 2}
    segments = diff_texts("", "", DiffUnit.WORDS)
    changes = diff_structured(left, right)
    digest = build_insights_input(
        left_name=None,
        right_name=None,
        summary=summarize(segments, DiffUnit.WORDS),
        segments=segments,
        structured_changes=changes,
        settings=settings,
    )
    assert digest["meta"]["structured_changes"] == 3
    sample = digest["structured_diff_sample"]
    assert [s["path"] for s in sample] == ["a", "b"]
    assert sample[0]["left"] == "x" * 9 + "…"
    assert sample[1] == {"path": "b", "type": "changed", "left": 1, "right": 2}


# ─── PromptEngine ─────────────────────────────────────────────────────────────

@pytest.fixture()
def engine() -> PromptEngine:
    return PromptEngine("Summarise:\n{{ input_json }}\nEnd.")


def test_engine_available_only_with_template():
    assert PromptEngine("x").available
    assert not PromptEngine("   \n").available


def test_compile_embeds_pretty_json(engine):
    digest = {"meta": {"additions": 1}, "excerpts": {"added": ["ünïcode"], "removed": []}}
    prompt = engine.compile(digest)
    assert prompt.user_prompt.startswith("Summarise:\n{\n")
    assert json.dumps(digest, indent=2, ensure_ascii=False) in prompt.user_prompt
    assert prompt.user_prompt.endswith("\nEnd.")
    assert "JSON" in prompt.system_prompt


def test_compile_hash_is_stable(engine):
    digest = {"meta": {"additions": 2}}
    assert engine.compile(digest).prompt_hash == engine.compile(digest).prompt_hash
    assert engine.compile(digest).prompt_hash != engine.compile({"meta": {}}).prompt_hash
    assert len(engine.compile(digest).prompt_hash) == 64
