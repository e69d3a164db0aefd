"""
Test package for Blunder Trainer.

Unit tests for puzzle reconstruction, the evaluation gateway, grading, the
session state machines, statistics, puzzle providers and the terminal UI.
"""
