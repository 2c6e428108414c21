"""
pinpoint — Adaptive Location & Connectivity Coordinator.

Tracks device position, tunes sampling density to detected activity, keeps
the last known fix across restarts and relays positions to a broker over a
time-bounded messaging session while the app is in the background.
"""

__version__ = '1.0.0'
