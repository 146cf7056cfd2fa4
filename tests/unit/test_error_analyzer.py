"""Tests for ErrorAnalyzer classification."""

import pytest

from repair_loop.core.error_analyzer import (
    CLASSIFICATION_RULES,
    ErrorAnalyzer,
    extract_location,
)
from repair_loop.models.errors import ErrorCategory


class TestClassification:
    """Test category assignment."""

    @pytest.mark.parametrize(
        "message",
        [
            "SyntaxError: Unexpected token '}'",
            "Unexpected '<'",
            "Expected ';' but found 'return'",
            "Parsing error: Unterminated string constant",
            "Unterminated regular expression",
            "Expression expected.",
            "Invalid or unexpected token",
            "Unexpected end of input",
            "Missing closing tag for <div>",
            "Unclosed JSX element",
            "Expected corresponding closing tag: does not match opening",
            "syntaxerror: lower case still matches",
        ],
    )
    def test_syntax_errors(self, message: str) -> None:
        """Test that syntax patterns classify as syntax."""
        assert ErrorAnalyzer.analyze(message).category == ErrorCategory.SYNTAX

    @pytest.mark.parametrize(
        "message",
        [
            "ReferenceError: foo is not defined",
            "TypeError: Cannot read property 'map' of undefined",
            "undefined is not a function",
            "Invalid hook call. Hooks can only be called inside a component",
            "Rendered more hooks than during the previous render",
        ],
    )
    def test_semantic_errors(self, message: str) -> None:
        """Test that semantic patterns classify as semantic."""
        assert ErrorAnalyzer.analyze(message).category == ErrorCategory.SEMANTIC

    @pytest.mark.parametrize(
        "message",
        [
            "Module not found: Can't resolve 'lodash'",
            "Import error in bundle",
            "process is not defined",
        ],
    )
    def test_environment_errors(self, message: str) -> None:
        """Test that environment patterns classify as environment."""
        assert ErrorAnalyzer.analyze(message).category == ErrorCategory.ENVIRONMENT

    def test_rule_order_prefers_earlier_category(self) -> None:
        """Test that a message matching several rules takes the first."""
        # "is not defined" is environment, but ReferenceError is checked first
        analysis = ErrorAnalyzer.analyze("ReferenceError: x is not defined")
        assert analysis.category == ErrorCategory.SEMANTIC

    def test_unknown_error(self) -> None:
        """Test that unmatched text is unknown with no location."""
        analysis = ErrorAnalyzer.analyze("Something weird happened at line 3")
        assert analysis.category == ErrorCategory.UNKNOWN
        assert analysis.root_cause == "Unclassified error"
        assert analysis.suggestion == "Review the error log manually."
        assert analysis.line is None
        assert analysis.column is None

    def test_empty_text(self) -> None:
        """Test that empty text degrades to unknown."""
        analysis = ErrorAnalyzer.analyze("")
        assert analysis.category == ErrorCategory.UNKNOWN
        assert analysis.original_message == ""

    def test_message_is_trimmed(self) -> None:
        """Test that surrounding whitespace is removed."""
        analysis = ErrorAnalyzer.analyze("  SyntaxError: bad  \n")
        assert analysis.original_message == "SyntaxError: bad"

    def test_root_cause_and_suggestion(self) -> None:
        """Test canned root cause and suggestion per category."""
        analysis = ErrorAnalyzer.analyze("Module not found: 'x'")
        assert analysis.root_cause == "Missing dependency or environment mismatch"
        assert "imported" in analysis.suggestion

    def test_analyze_is_idempotent(self) -> None:
        """Test that the same input yields equal output."""
        message = "TypeError: x is undefined at App.tsx:12:5"
        assert ErrorAnalyzer.analyze(message) == ErrorAnalyzer.analyze(message)


class TestLocationExtraction:
    """Test line and column extraction."""

    def test_line_with_colon_column(self) -> None:
        """Test 'line N:C' form."""
        analysis = ErrorAnalyzer.analyze("Error at line 42:10: Unexpected token")
        assert analysis.category == ErrorCategory.SYNTAX
        assert analysis.line == 42
        assert analysis.column == 10

    def test_file_position(self) -> None:
        """Test 'file:L:C' form."""
        analysis = ErrorAnalyzer.analyze("App.tsx:12:5: Unterminated string")
        assert analysis.line == 12
        assert analysis.column == 5

    def test_line_with_column_word(self) -> None:
        """Test 'line N, column C' form."""
        assert extract_location("JSX error on line 7, column 3") == (7, 3)

    def test_line_only(self) -> None:
        """Test 'line N' with no column."""
        assert extract_location("SyntaxError on line 9") == (9, None)

    def test_no_location(self) -> None:
        """Test text without a location."""
        assert extract_location("Unexpected token") == (None, None)


class TestClassificationRules:
    """Test the rule table itself."""

    def test_rule_order(self) -> None:
        """Test that rules are evaluated syntax, semantic, environment."""
        assert [rule.category for rule in CLASSIFICATION_RULES] == [
            ErrorCategory.SYNTAX,
            ErrorCategory.SEMANTIC,
            ErrorCategory.ENVIRONMENT,
        ]

    def test_capability_never_assigned(self) -> None:
        """Test that no rule produces the capability category."""
        assert all(rule.category != ErrorCategory.CAPABILITY for rule in CLASSIFICATION_RULES)
