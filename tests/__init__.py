"""Test package for streamchat.

Structure:
    - unit/: Individual function and class tests
    - integration/: HTTP endpoint and end-to-end conversation tests

The inference provider is always replaced by a scripted fake, so no test
needs network access or an API key. Leverages pytest with pytest-check for
soft assertions.
"""
