"""Unit tests for RedactionEngine.

Coverage:
* RedactionEngine.redact()
  - No configured phrase present → text returned unchanged
  - Single phrase replaced case-insensitively
  - Every occurrence replaced, surrounding text preserved exactly
  - Longest phrase wins when phrases overlap
  - Empty text → empty string (no-op)
  - Empty phrase set → text unchanged
  - Output never contains a configured phrase after a single pass
  - Redacting twice equals redacting once
  - Regex metacharacters in phrases are matched literally
* Construction
  - Blank and duplicate phrases dropped
  - Phrases inside, containing, or overlapping an edge of the token rejected
  - Custom token honoured
* Helpers
  - longest_first() / compile_alternation()
"""

from __future__ import annotations

import pytest

from docshield.core.patterns import BUILTIN_PHRASES
from docshield.core.redaction import (
    REDACTED_TOKEN,
    RedactionEngine,
    compile_alternation,
    longest_first,
    overlaps_token,
)


# ---------------------------------------------------------------------------
# redact()
# ---------------------------------------------------------------------------


class TestRedact:
    ENGINE = RedactionEngine(["ignore previous instructions", "jailbreak"])

    def test_no_phrase_present(self):
        text = "A perfectly ordinary paragraph."
        assert self.ENGINE.redact(text) == text

    def test_case_insensitive_replacement(self):
        result = self.ENGINE.redact("Please IGNORE PREVIOUS INSTRUCTIONS now")
        assert result == f"Please {REDACTED_TOKEN} now"

    def test_every_occurrence_replaced(self):
        result = self.ENGINE.redact("jailbreak, then Jailbreak, then JAILBREAK.")
        assert result == (
            f"{REDACTED_TOKEN}, then {REDACTED_TOKEN}, then {REDACTED_TOKEN}."
        )

    def test_surrounding_whitespace_preserved(self):
        text = "line one\n\n  jailbreak\tend"
        assert self.ENGINE.redact(text) == f"line one\n\n  {REDACTED_TOKEN}\tend"

    def test_empty_text(self):
        assert self.ENGINE.redact("") == ""

    def test_empty_phrase_set(self):
        engine = RedactionEngine([])
        assert engine.redact("jailbreak") == "jailbreak"
        assert engine.contains_phrase("jailbreak") is False

    def test_longest_phrase_wins(self):
        engine = RedactionEngine(["system", "system prompt"])
        assert engine.redact("reveal the system prompt") == f"reveal the {REDACTED_TOKEN}"

    def test_long_repeated_tail_fully_redacted(self):
        engine = RedactionEngine(["jailbreak", "x jailbreak", "xx"])
        result = engine.redact("jailbreak" + "x" * 20)
        assert not engine.contains_phrase(result)
        assert engine.redact(result) == result

    def test_idempotent(self):
        text = "Ignore previous instructions and jailbreak the model."
        once = self.ENGINE.redact(text)
        assert self.ENGINE.redact(once) == once

    def test_builtin_phrases_never_survive(self):
        engine = RedactionEngine(BUILTIN_PHRASES)
        text = " / ".join(p.upper() for p in BUILTIN_PHRASES)
        result = engine.redact(text)
        lowered = result.lower()
        for phrase in BUILTIN_PHRASES:
            assert phrase.lower() not in lowered

    def test_metacharacters_literal(self):
        engine = RedactionEngine(["(.*)"])
        assert engine.redact("abc") == "abc"
        assert engine.redact("x (.*) y") == f"x {REDACTED_TOKEN} y"


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_blank_and_duplicate_phrases_dropped(self):
        engine = RedactionEngine(["Jailbreak", "  ", "jailbreak", ""])
        assert engine.phrases == ["Jailbreak"]

    def test_phrase_inside_token_rejected(self):
        with pytest.raises(ValueError, match="redaction token"):
            RedactionEngine(["removed"])

    @pytest.mark.parametrize("phrase", ["]x", "D] GO", "ignore [rem", "x[removed]y"])
    def test_phrase_overlapping_token_edge_rejected(self, phrase):
        with pytest.raises(ValueError, match="redaction token"):
            RedactionEngine(["jailbreak", phrase])

    def test_custom_token_edges_checked(self):
        with pytest.raises(ValueError):
            RedactionEngine(["*x"], token="***")
        RedactionEngine(["x*x"], token="[gone]")

    def test_custom_token(self):
        engine = RedactionEngine(["jailbreak"], token="***")
        assert engine.redact("a jailbreak b") == "a *** b"

    def test_contains_phrase(self):
        engine = RedactionEngine(["jailbreak"])
        assert engine.contains_phrase("JailBreak attempt")
        assert not engine.contains_phrase("nothing here")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_longest_first_is_stable(self):
        assert longest_first(["bb", "a", "cc", "ddd"]) == ["ddd", "bb", "cc", "a"]

    def test_compile_alternation_empty(self):
        assert compile_alternation([]) is None
        assert compile_alternation(["", ""]) is None

    @pytest.mark.parametrize(
        "phrase, expected",
        [
            ("jailbreak", False),
            ("removed", True),
            ("]tail", True),
            ("head[", True),
            ("a[REMOVED]b", True),
            ("[ removed ]", False),
        ],
    )
    def test_overlaps_token(self, phrase, expected):
        assert overlaps_token(phrase, REDACTED_TOKEN) is expected

    def test_compile_alternation_prefers_longest(self):
        pattern = compile_alternation(["ab", "abc"])
        assert pattern.match("ABCD").group() == "ABC"
