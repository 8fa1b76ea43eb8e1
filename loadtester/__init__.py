"""Scenario-replay HTTP load tester.

Virtual users replay a recorded request scenario against an API while a
coordinator staggers their start and enforces a hard deadline; a single
collector folds every outcome into the end-of-run report.
"""

__version__ = "0.1.0"
