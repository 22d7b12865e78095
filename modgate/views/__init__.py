"""
ModGate - Views Package
=======================

Persistent Discord UI components.
"""
