"""
ModGate - Utilities Package
===========================

Async helpers, metrics and keyed locks.
"""
