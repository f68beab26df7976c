"""Networking classification components.

This package provides conversation classification:
- Claude classifier with forced tool use
- Keyword heuristic used as the fallback
- Prompt and tool definitions
"""

from networking_hub.classifier.heuristic import heuristic_verdict, matched_keywords
from networking_hub.classifier.networking_classifier import NetworkingClassifier
from networking_hub.classifier.prompts import (
    ASSESS_NETWORKING_TOOL,
    VALID_CATEGORIES,
    build_user_message,
)
from networking_hub.classifier.verdict import Verdict

__all__ = [
    # Classifier
    "NetworkingClassifier",
    "Verdict",
    # Heuristic
    "heuristic_verdict",
    "matched_keywords",
    # Prompts
    "ASSESS_NETWORKING_TOOL",
    "VALID_CATEGORIES",
    "build_user_message",
]
