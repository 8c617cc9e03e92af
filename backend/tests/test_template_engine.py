"""
Tests for the template renderer.

Covers interpolation, conditionals, loops, nesting, literal passthrough of
non-expression tags, and the syntax / depth error paths.
"""

import copy
import pytest

import sys
from pathlib import Path

backend_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_root))

from dappforge.services.template_engine import (
    MAX_TEMPLATE_DEPTH,
    TemplateDepthError,
    TemplateSyntaxError,
    dedent,
    evaluate_condition,
    get_path,
    render_template,
)


class TestInterpolation:
    def test_simple_variable(self):
        assert render_template("Hello {{ name }}!", {"name": "Forge"}) == "Hello Forge!"

    def test_dotted_path(self):
        ctx = {"project": {"network": {"chainId": 421614}}}
        assert render_template("{{ project.network.chainId }}", ctx) == "421614"

    def test_missing_variable_renders_empty(self):
        assert render_template("[{{ missing.value }}]", {}) == "[]"

    def test_booleans_render_lowercase(self):
        assert render_template("{{ a }}/{{ b }}", {"a": True, "b": False}) == "true/false"

    def test_list_index_path(self):
        assert render_template("{{ items.1 }}", {"items": ["x", "y"]}) == "y"

    def test_non_expression_tag_is_kept_verbatim(self):
        template = "<div style={{ color: 'red' }}>{{ label }}</div>"
        assert render_template(template, {"label": "hi"}) == "<div style={{ color: 'red' }}>hi</div>"


class TestConditionals:
    def test_if_true_and_false(self):
        template = "{{# if enabled }}on{{/ if }}"
        assert render_template(template, {"enabled": True}) == "on"
        assert render_template(template, {"enabled": False}) == ""

    def test_if_else(self):
        template = "{{# if ok }}yes{{ else }}no{{/ if }}"
        assert render_template(template, {"ok": 0}) == "no"
        assert render_template(template, {"ok": 1}) == "yes"

    def test_unless(self):
        template = "{{# unless items }}empty{{/ unless }}"
        assert render_template(template, {"items": []}) == "empty"
        assert render_template(template, {"items": [1]}) == ""

    def test_negation(self):
        assert render_template("{{# if !flag }}x{{/ if }}", {"flag": False}) == "x"

    def test_string_comparison(self):
        template = "{{# if kind == 'erc20' }}token{{ else }}other{{/ if }}"
        assert render_template(template, {"kind": "erc20"}) == "token"
        assert render_template(template, {"kind": "erc721"}) == "other"

    def test_numeric_comparison(self):
        template = "{{# if count > 2 }}many{{ else }}few{{/ if }}"
        assert render_template(template, {"count": 3}) == "many"
        assert render_template(template, {"count": 2}) == "few"

    def test_numeric_comparison_with_non_number_is_false(self):
        assert evaluate_condition("count > 2", {"count": "abc"}) is False

    def test_equality_is_strict_about_booleans(self):
        assert evaluate_condition("flag == 1", {"flag": True}) is False
        assert evaluate_condition("flag == true", {"flag": True}) is True


class TestLoops:
    def test_each_with_last_marker(self):
        template = "{{# each items as item }}{{ item }}{{# unless itemLast }}, {{/ unless }}{{/ each }}"
        assert render_template(template, {"items": ["a", "b", "c"]}) == "a, b, c"

    def test_each_exposes_index_and_first(self):
        template = "{{# each xs as x }}{{# if xFirst }}*{{/ if }}{{ xIndex }}={{ x }};{{/ each }}"
        assert render_template(template, {"xs": ["p", "q"]}) == "*0=p;1=q;"

    def test_each_over_non_list_renders_nothing(self):
        assert render_template("{{# each xs as x }}{{ x }}{{/ each }}", {"xs": "nope"}) == ""

    def test_nested_loops_and_conditionals(self):
        template = (
            "{{# each contracts as c }}"
            "{{ c.name }}:"
            "{{# if c.functions }}"
            "{{# each c.functions as fn }}{{ fn }}{{# unless fnLast }}|{{/ unless }}{{/ each }}"
            "{{ else }}none{{/ if }};"
            "{{/ each }}"
        )
        ctx = {
            "contracts": [
                {"name": "Token", "functions": ["mint", "burn"]},
                {"name": "Vault", "functions": []},
            ]
        }
        assert render_template(template, ctx) == "Token:mint|burn;Vault:none;"

    def test_outer_scope_visible_inside_loop(self):
        template = "{{# each xs as x }}{{ prefix }}{{ x }} {{/ each }}"
        assert render_template(template, {"xs": [1, 2], "prefix": "#"}) == "#1 #2 "


class TestPurity:
    def test_same_input_same_output_and_no_mutation(self):
        template = "{{# each xs as x }}{{ x.v }}{{/ each }}"
        ctx = {"xs": [{"v": 1}, {"v": 2}]}
        snapshot = copy.deepcopy(ctx)
        first = render_template(template, ctx)
        second = render_template(template, ctx)
        assert first == second == "12"
        assert ctx == snapshot


class TestErrors:
    def test_unclosed_block(self):
        with pytest.raises(TemplateSyntaxError):
            render_template("{{# if a }}x", {"a": True})

    def test_mismatched_close(self):
        with pytest.raises(TemplateSyntaxError):
            render_template("{{# if a }}x{{/ each }}", {"a": True})

    def test_stray_close(self):
        with pytest.raises(TemplateSyntaxError):
            render_template("x{{/ if }}", {})

    def test_else_outside_block(self):
        with pytest.raises(TemplateSyntaxError):
            render_template("a{{ else }}b", {})

    def test_unknown_block_tag(self):
        with pytest.raises(TemplateSyntaxError):
            render_template("{{# with a }}x{{/ with }}", {})

    def test_nesting_beyond_limit(self):
        depth = MAX_TEMPLATE_DEPTH + 5
        template = "{{# if a }}" * depth + "x" + "{{/ if }}" * depth
        with pytest.raises(TemplateDepthError):
            render_template(template, {"a": True})

    def test_nesting_at_limit_is_fine(self):
        depth = MAX_TEMPLATE_DEPTH
        template = "{{# if a }}" * depth + "x" + "{{/ if }}" * depth
        assert render_template(template, {"a": True}) == "x"


class TestHelpers:
    def test_get_path_on_objects(self):
        class Obj:
            name = "thing"

        assert get_path({"o": Obj()}, "o.name") == "thing"

    def test_dedent_strips_surrounding_newlines(self):
        text = """
            line one
              line two
        """
        assert dedent(text) == "line one\n  line two"
