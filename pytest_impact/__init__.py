"""Run only the tests of the monorepo modules affected by a change."""

__version__ = "0.1.0"
