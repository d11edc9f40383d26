"""napcoach: infant sleep-pattern learning and schedule synthesis."""

__version__ = "0.1.0"
