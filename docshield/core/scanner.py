"""Scanner: applies the configured detection rules to a stream of runs.

:class:`Scanner` is stateless after construction.  It evaluates every rule
against every run in encounter order and concatenates the resulting
:class:`~docshield.core.rules.Issue` objects.  A run that triggers several
rules yields several issues; there is no cross-rule suppression unless the
``dedupe_per_run`` policy is switched on, in which case each run keeps only
its first highest-severity issue.

Usage::

    from docshield.core.scanner import Scanner

    scanner = Scanner.from_settings(get_settings())
    issues = scanner.scan(extraction_result.runs)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Sequence

from docshield.core.document_extractor import TextRun
from docshield.core.patterns.injection_phrases import normalise_phrases
from docshield.core.rules import (
    DetectionRule,
    HiddenColorRule,
    Issue,
    KeywordRule,
    MicroTextRule,
)

if TYPE_CHECKING:
    from docshield.config import Settings

logger = logging.getLogger(__name__)


def build_rules(
    phrases: Iterable[str],
    micro_text_threshold_pt: float = 4.0,
    hidden_colors: Iterable[str] = ("FFFFFF", "FFFFFF00"),
) -> list[DetectionRule]:
    """Return the standard rule set: hidden colour, micro-text, then keywords.

    Phrases are stripped and deduplicated case-insensitively, one keyword
    rule per distinct phrase.
    """
    rules: list[DetectionRule] = [
        HiddenColorRule(hidden_colors),
        MicroTextRule(micro_text_threshold_pt),
    ]
    rules.extend(KeywordRule(p) for p in normalise_phrases(phrases))
    return rules


class Scanner:
    """Applies detection rules to runs.

    Args:
        rules: Rules evaluated against every run, in order.
        dedupe_per_run: When ``True``, keep only one issue per run (the first
            with the highest severity).
    """

    def __init__(
        self,
        rules: Sequence[DetectionRule],
        *,
        dedupe_per_run: bool = False,
    ) -> None:
        self._rules = list(rules)
        self.dedupe_per_run = dedupe_per_run
        logger.debug(
            "Scanner initialised with %d rule(s), dedupe_per_run=%s",
            len(self._rules),
            dedupe_per_run,
        )

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        phrases: Iterable[str] | None = None,
    ) -> "Scanner":
        """Build a scanner from application settings.

        *phrases* overrides ``settings.resolved_phrases()`` when supplied.
        """
        if phrases is None:
            phrases = settings.resolved_phrases()
        return cls(
            build_rules(
                phrases,
                micro_text_threshold_pt=settings.micro_text_threshold_pt,
                hidden_colors=settings.hidden_colors,
            ),
            dedupe_per_run=settings.dedupe_issues_per_run,
        )

    @property
    def rules(self) -> list[DetectionRule]:
        return list(self._rules)

    def scan_run(self, run: TextRun) -> list[Issue]:
        """Return every issue raised by the rules on a single *run*."""
        issues: list[Issue] = []
        for rule in self._rules:
            issues.extend(rule.evaluate(run))

        if self.dedupe_per_run and len(issues) > 1:
            top = max(i.severity_rank for i in issues)
            issues = [next(i for i in issues if i.severity_rank == top)]
        return issues

    def scan(self, runs: Iterable[TextRun]) -> list[Issue]:
        """Return the issues for all *runs*, in run-encounter order."""
        issues: list[Issue] = []
        for run in runs:
            issues.extend(self.scan_run(run))
        return issues
