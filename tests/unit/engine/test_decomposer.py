"""
Tests for compound instruction decomposition.
"""

from nl_step_engine.engine.decomposer import (
    InstructionDecomposer,
    SubInstructionType,
    decompose,
    looks_like_instruction,
)


class TestConditionals:
    """Test if/when/unless handling."""

    def test_if_visible(self):
        """A visibility guard with a comma."""
        result = decompose("If the Cookie banner is visible, click Accept")
        assert result.was_decomposed is True
        step = result.steps[0]
        assert step.type == SubInstructionType.CONDITIONAL
        assert step.text == "click Accept"
        assert step.condition.element == "Cookie banner"
        assert step.condition.check == "visible"
        assert step.condition.negate is False

    def test_disabled_is_negated_enabled(self):
        """'disabled' checks enabled and negates."""
        step = decompose("When the Save button is disabled then click Edit").steps[0]
        assert step.condition.check == "enabled"
        assert step.condition.negate is True

    def test_unless_flips_negation(self):
        """'unless' inverts the guard."""
        step = decompose("Unless the Save button is disabled, click Save").steps[0]
        assert step.condition.check == "enabled"
        assert step.condition.negate is False

    def test_non_instruction_body_is_not_conditional(self):
        """The guarded clause must start with an action verb."""
        result = decompose("If the banner is visible, do a little dance")
        assert result.was_decomposed is False
        assert result.steps[0].text == "If the banner is visible, do a little dance"


class TestLoops:
    """Test repeat handling."""

    def test_repeat_prefix(self):
        """Repeat N times: action."""
        step = decompose("Repeat 3 times: click Next").steps[0]
        assert step.type == SubInstructionType.LOOP
        assert step.loop_count == 3
        assert step.text == "click Next"

    def test_times_suffix(self):
        """Action N times."""
        step = decompose("Click Next 2 times").steps[0]
        assert step.type == SubInstructionType.LOOP
        assert step.loop_count == 2
        assert step.text == "Click Next"

    def test_count_is_capped(self):
        """Absurd counts are not treated as loops."""
        result = decompose("Click Next 500 times")
        assert result.was_decomposed is False


class TestSequences:
    """Test conjunction splitting."""

    def test_and_then(self):
        """'and then' splits two instructions."""
        result = decompose("Click Login and then verify the Dashboard heading is visible")
        assert [s.text for s in result.steps] == [
            "Click Login",
            "verify the Dashboard heading is visible",
        ]
        assert all(s.type == SubInstructionType.ACTION for s in result.steps)

    def test_plain_and(self):
        """A bare 'and' splits when both halves are instructions."""
        result = InstructionDecomposer().decompose("Click A and type 'x' in B")
        assert [s.text for s in result.steps] == ["Click A", "type 'x' in B"]

    def test_quoted_and_is_protected(self):
        """'and' inside quotes never splits."""
        result = decompose("Type 'salt and pepper' in the Search field")
        assert result.was_decomposed is False
        assert result.steps[0].text == "Type 'salt and pepper' in the Search field"

    def test_and_inside_a_label(self):
        """A noun phrase with 'and' stays whole."""
        result = decompose("Click Terms and Conditions")
        assert result.was_decomposed is False

    def test_followed_by(self):
        """'followed by' is a sequence too."""
        result = decompose("Click Next followed by click Finish")
        assert len(result.steps) == 2
        assert result.steps[1].text == "click Finish"

    def test_original_kept(self):
        """The trimmed original is recorded."""
        assert decompose("  Click Login  ").original == "Click Login"


class TestLooksLikeInstruction:
    """Test the verb check."""

    def test_verbs(self):
        """Known verbs start instructions."""
        assert looks_like_instruction("click Save") is True
        assert looks_like_instruction("  Verify the title") is True
        assert looks_like_instruction("Conditions") is False
