"""
Cricket Live Match Instrumentation

Turns a camera feed into ball-by-ball cricket scoring: object detection
on each frame, a rule engine that interprets detections as runs and
wickets, a live scoring engine backed by a durable match store, and
prediction and career statistics read back from the stored history.
"""

__version__ = "0.1.0"
