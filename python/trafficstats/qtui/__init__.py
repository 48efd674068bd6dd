"""Qt models for the statistics tables; requires PySide6."""
