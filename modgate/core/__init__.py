"""
ModGate - Core Package
======================

Configuration, logging and shared constants.
"""
