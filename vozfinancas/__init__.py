"""
VozFinanças - Voice Expense Tracker

A personal expense tracker driven by speech. The user talks, a hosted
conversational model (Gemini Live) answers by voice and records, lists,
deletes and summarizes expenses through tool calls executed locally.

DESIGN PRINCIPLES:
1. The local store is the source of truth
2. The summary is always derived, never stored
3. One recording session at a time, torn down completely
4. Remote replication is best-effort and never blocks the user
5. Every significant step is auditable
"""

__version__ = "1.0.0"
__author__ = "VozFinanças Team"
