"""Course extraction from noisy timetable cells (rule-based + LLM-assisted)."""

__version__ = "0.1.0"
