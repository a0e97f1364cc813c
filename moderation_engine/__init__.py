"""
Moderation engine: report intake, risk scoring, review queue,
enforcement ladder and appeals.
"""

__version__ = "0.1.0"
