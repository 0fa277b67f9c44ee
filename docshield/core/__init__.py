"""DocShield core threat-detection components.

This package contains the format adapters, detection rules, scanner,
aggregator, sanitizer, highlighter, scan pipeline and session state used to
inspect documents for prompt-injection phrases and hidden text.
"""
