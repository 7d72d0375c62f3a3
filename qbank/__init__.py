"""
Infinite Question Bank
======================
Personal study tool for bulk-generated multiple-choice questions.

Architecture:
    - Text Parser: Turns delimiter-formatted LLM output into Question records
    - Bank Manager: Capacity-bounded, persisted question sequence with eviction
    - Session Controller: Two-phase (new, then review) practice state machine
    - Storage: JSON file / SQLite / in-memory load-save collaborators

Version: 1.0.0
"""

__version__ = "1.0.0"
