"""
Agent status detection.

Two signals are combined by the poller:
- pane text patterns (prompts, completion and error markers)
- the agent tool's own on-disk transcript (who spoke last)
"""

from .detector import StatusDetector, detect_transcript_status
from .patterns import detect_status, extract_prompt

__all__ = [
    "StatusDetector",
    "detect_transcript_status",
    "detect_status",
    "extract_prompt",
]
