"""
Tests for the rule language: lexer, expressions, field resolver, parser.
"""

import pytest

from ..errors import RuleParseError
from ..rules.expression import EvalContext, evaluate, is_true, parse_expression, to_text
from ..rules.lexer import TokenType, tokenize
from ..rules.parser import ActionEntry, ListCallEntry, VariableEntry, parse, parse_apl


def _eval(text, resolver, state, variables=None):
    return evaluate(parse_expression(text, resolver), EvalContext(state, dict(variables or {})))


class TestLexer:
    """Tests for tokenize."""

    def test_tokens(self):
        tokens = tokenize("buff.x.up&fury>=40")
        assert [t.type for t in tokens] == [
            TokenType.IDENT, TokenType.OP, TokenType.IDENT, TokenType.OP, TokenType.NUMBER, TokenType.EOF,
        ]
        assert tokens[3].text == ">="

    def test_min_max_operators_are_single_tokens(self):
        assert [t.text for t in tokenize("a>?b<?c")][:5] == ["a", ">?", "b", "<?", "c"]

    def test_stray_character(self):
        with pytest.raises(RuleParseError, match="unexpected character"):
            tokenize("fury>=40;")


class TestExpressions:
    """Tests for parsing and evaluating conditions."""

    def test_arithmetic_precedence(self, toy_resolver, toy_state):
        assert _eval("1+2*3", toy_resolver, toy_state) == 7.0
        assert _eval("(1+2)*3", toy_resolver, toy_state) == 9.0
        assert _eval("10-4-3", toy_resolver, toy_state) == 3.0

    def test_division_by_zero_is_zero(self, toy_resolver, toy_state):
        assert _eval("8%2", toy_resolver, toy_state) == 4.0
        assert _eval("8%0", toy_resolver, toy_state) == 0.0

    def test_min_and_max_operators(self, toy_resolver, toy_state):
        """'>?' takes the smaller operand, '<?' the larger."""
        assert _eval("5>?3", toy_resolver, toy_state) == 3.0
        assert _eval("5<?3", toy_resolver, toy_state) == 5.0

    def test_logic(self, toy_resolver, toy_state):
        assert _eval("1&0|1", toy_resolver, toy_state) is True
        assert _eval("!(1&0)", toy_resolver, toy_state) is True
        assert _eval("1^1", toy_resolver, toy_state) is False
        assert _eval("-2<0&3>=3", toy_resolver, toy_state) is True

    def test_comparison_binds_looser_than_arithmetic(self, toy_resolver, toy_state):
        toy_state.resources["resource"].value = 30.0
        assert _eval("resource+10>=40", toy_resolver, toy_state) is True
        assert _eval("resource.deficit=70", toy_resolver, toy_state) is True

    def test_chained_comparison_rejected(self, toy_resolver):
        with pytest.raises(RuleParseError):
            parse_expression("1<2<3", toy_resolver)

    def test_malformed(self, toy_resolver):
        for text in ("resource>=", "(resource", "resource)", "&1", ""):
            with pytest.raises(RuleParseError):
                parse_expression(text, toy_resolver)

    def test_none_condition_is_true(self, toy_state):
        assert is_true(None, EvalContext(toy_state))

    def test_to_text_parenthesizes(self, toy_resolver):
        expr = parse_expression("resource>=40&!prev_gcd.1.spender_b", toy_resolver)
        assert to_text(expr) == "((resource>=40)&!prev_gcd.1.spender_b)"


class TestFieldResolver:
    """Tests for dotted field lookups."""

    def test_unknown_root(self, toy_resolver):
        with pytest.raises(RuleParseError, match="unknown field") as exc_info:
            toy_resolver.resolve("mana")
        assert "known roots:" in str(exc_info.value)
        assert "resource" in toy_resolver.roots
        assert "cooldown" in toy_resolver.roots

    def test_unmodeled_aura_reads_absent(self, toy_resolver, toy_state):
        assert _eval("buff.bloodlust.up", toy_resolver, toy_state) is False
        assert _eval("buff.bloodlust.down", toy_resolver, toy_state) is True
        assert _eval("dot.fiery_brand.remains", toy_resolver, toy_state) == 0.0

    def test_bad_aura_property(self, toy_resolver):
        with pytest.raises(RuleParseError):
            toy_resolver.resolve("buff.x.colour")
        with pytest.raises(RuleParseError):
            toy_resolver.resolve("buff.ticking.ticking")

    def test_cooldown_fields(self, vengeance_resolver, vengeance_state):
        assert _eval("cooldown.sigil_of_flame.remains", vengeance_resolver, vengeance_state) == 30.0
        assert _eval("cooldown.fracture.charges", vengeance_resolver, vengeance_state) == 2
        assert _eval("cooldown.immolation_aura.charges_fractional", vengeance_resolver, vengeance_state) == pytest.approx(1 + 2 / 30)
        assert _eval("cooldown.unknown.ready", vengeance_resolver, vengeance_state) is True

    def test_build_fields(self, vengeance_resolver, vengeance_state):
        assert _eval("talent.fiery_demise", vengeance_resolver, vengeance_state) == 1.0
        assert _eval("talent.darkglare_boon.enabled", vengeance_resolver, vengeance_state) == 0.0
        assert _eval("hero_tree.annihilator", vengeance_resolver, vengeance_state) is True
        assert _eval("build.apex_rank", vengeance_resolver, vengeance_state) == 3

    def test_clock_fields(self, toy_resolver, toy_state):
        assert _eval("fight_remains", toy_resolver, toy_state) == 30.0
        assert _eval("target.time_to_die", toy_resolver, toy_state) == 30.0
        assert _eval("gcd.max", toy_resolver, toy_state) == 1.5
        assert _eval("active_enemies", toy_resolver, toy_state) == 1

    def test_variable_default(self, toy_resolver, toy_state):
        assert _eval("variable.pool", toy_resolver, toy_state) == 0.0
        assert _eval("variable.pool", toy_resolver, toy_state, {"pool": 2.0}) == 2.0

    def test_prev_gcd(self, toy_engine, toy_resolver, toy_state):
        toy_engine.apply_ability(toy_state, "generator_a")
        assert _eval("prev_gcd.1.generator_a", toy_resolver, toy_state) is True
        assert _eval("prev_gcd.2.generator_a", toy_resolver, toy_state) is False
        with pytest.raises(RuleParseError):
            toy_resolver.resolve("prev_gcd.0.generator_a")


class TestParser:
    """Tests for APL text parsing."""

    def test_basic_lists(self, toy_adapter):
        rule_set = parse_apl(
            "actions=spender_b,if=resource>=40\n"
            "actions+=/generator_a\n",
            toy_adapter,
        )
        entries = rule_set.default.entries
        assert [type(e) for e in entries] == [ActionEntry, ActionEntry]
        assert entries[0].condition_text == "resource>=40"
        assert entries[0].line == 1
        assert entries[1].condition is None

    def test_comments_profile_lines_and_skipped_actions(self, toy_adapter):
        rule_set = parse_apl(
            "# header\n"
            "toy=\"My Character\"\n"
            "actions=auto_attack\n"
            "actions+=/generator_a\n",
            toy_adapter,
        )
        assert [e.ability for e in rule_set.default.entries] == ["generator_a"]

    def test_parentheses_protect_commas(self):
        from ..rules.parser import split_modifiers
        assert split_modifiers("x,if=(a,b),line_cd=2") == ["x", "if=(a,b)", "line_cd=2"]

    def test_missing_default_list(self, toy_adapter):
        with pytest.raises(RuleParseError, match="no default action list"):
            parse_apl("actions.other=generator_a\n", toy_adapter)

    @pytest.mark.parametrize("bad_line", [
        "actions.aoe-st=spender_b",
        "actons+=/spender_b",
        "action=spender_b",
        "actions.aoe st=spender_b",
    ])
    def test_malformed_action_line_is_fatal(self, toy_adapter, bad_line):
        """A mistyped action line raises instead of leaving a partial rule set."""
        with pytest.raises(RuleParseError, match="malformed action line") as exc_info:
            parse_apl(f"actions=generator_a\n{bad_line}\n", toy_adapter)
        assert exc_info.value.line == 2
        assert exc_info.value.entry == bad_line

    def test_profile_lines_still_ignored(self, toy_adapter):
        rule_set = parse_apl(
            "talents=ABCDEF\nspec=toy\nlevel=80\nactions=generator_a\n",
            toy_adapter,
        )
        assert [e.ability for e in rule_set.default.entries] == ["generator_a"]

    def test_error_names_line_and_list(self, toy_adapter):
        text = "actions=generator_a\nactions.burst=spender_b,if=resource>=\n"
        with pytest.raises(RuleParseError) as exc_info:
            parse_apl(text, toy_adapter)
        err = exc_info.value
        assert err.line == 2
        assert err.list_name == "burst"
        assert "line 2" in str(err)

    def test_unknown_field_is_fatal(self, toy_adapter):
        with pytest.raises(RuleParseError, match="unknown field"):
            parse_apl("actions=generator_a,if=mana>10\n", toy_adapter)

    def test_duplicate_and_empty_modifiers(self, toy_adapter):
        with pytest.raises(RuleParseError, match="duplicate"):
            parse_apl("actions=generator_a,if=1,if=0\n", toy_adapter)
        with pytest.raises(RuleParseError, match="empty modifier"):
            parse_apl("actions=generator_a,,if=1\n", toy_adapter)
        with pytest.raises(RuleParseError, match="empty 'if='"):
            parse_apl("actions=generator_a,if=\n", toy_adapter)

    def test_line_cd(self, toy_adapter):
        rule_set = parse_apl("actions=generator_a,line_cd=4.5\n", toy_adapter)
        assert rule_set.default.entries[0].line_cd == 4.5
        with pytest.raises(RuleParseError, match="line_cd"):
            parse_apl("actions=generator_a,line_cd=soon\n", toy_adapter)

    def test_unknown_ability_warns(self, toy_adapter):
        rule_set = parse_apl("actions=fireball\nactions+=/generator_a\n", toy_adapter)
        assert rule_set.default.entries[0].known is False
        assert len(rule_set.warnings) == 1
        assert "fireball" in rule_set.warnings[0]

    def test_list_references(self, toy_adapter):
        rule_set = parse_apl(
            "actions=call_action_list,name=spend,if=resource>=40\n"
            "actions+=/run_action_list,name=build\n"
            "actions.spend=spender_b\n"
            "actions.build=generator_a\n",
            toy_adapter,
        )
        call, run = rule_set.default.entries
        assert isinstance(call, ListCallEntry) and call.mode == "call"
        assert isinstance(run, ListCallEntry) and run.mode == "run"

    def test_unknown_list_reference(self, toy_adapter):
        with pytest.raises(RuleParseError, match="unknown action list 'missing'"):
            parse_apl("actions=run_action_list,name=missing\n", toy_adapter)

    def test_list_cycle(self, toy_adapter):
        with pytest.raises(RuleParseError, match="cycle"):
            parse_apl(
                "actions=call_action_list,name=a\n"
                "actions.a=call_action_list,name=b\n"
                "actions.b=call_action_list,name=a\n",
                toy_adapter,
            )

    def test_variables(self, toy_adapter):
        rule_set = parse_apl(
            "actions=variable,name=pool,op=setif,condition=resource<40,value=1,value_else=0,default=1\n"
            "actions+=/generator_a\n",
            toy_adapter,
        )
        (var,) = rule_set.variables()
        assert isinstance(var, VariableEntry)
        assert var.op == "setif"
        assert var.default == 1.0

    def test_variable_errors(self, toy_adapter):
        for line, message in (
            ("actions=variable,value=1", "requires name"),
            ("actions=variable,name=x,op=pow,value=1", "unknown variable op"),
            ("actions=variable,name=x,op=add", "requires value"),
            ("actions=variable,name=x,op=setif,value=1", "setif requires"),
            ("actions=variable,name=x,value=1,default=lots", "default must be a number"),
        ):
            with pytest.raises(RuleParseError, match=message):
                parse_apl(line + "\n", toy_adapter)

    def test_to_text_round_trip(self, toy_adapter, toy_resolver):
        text = (
            "actions=variable,name=pool,value=resource>=40\n"
            "actions+=/call_action_list,name=spend,if=variable.pool\n"
            "actions+=/generator_a\n"
            "actions.spend=spender_b,if=resource>=40,line_cd=3\n"
        )
        rule_set = parse(text, toy_resolver)
        again = parse(rule_set.to_text(), toy_resolver)
        assert again.to_text() == rule_set.to_text()
        assert set(again.lists) == {"default", "spend"}

    def test_source_hash_tracks_text(self, toy_adapter):
        a = parse_apl("actions=generator_a\n", toy_adapter)
        b = parse_apl("actions=generator_a\n", toy_adapter)
        c = parse_apl("actions=generator_a,if=1\n", toy_adapter)
        assert a.source_hash == b.source_hash
        assert a.source_hash != c.source_hash
