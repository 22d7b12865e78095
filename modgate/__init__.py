"""
ModGate
=======

Discord moderation bot: an ordered rule pipeline over every inbound
message, a per-user violator state machine and an external spam
classifier with reviewer feedback.
"""

__version__ = "1.0.0"
