"""
ModGate - Services Package
==========================

Platform adapters that connect the moderation core to Discord.
"""
