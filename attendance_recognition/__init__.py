"""
Attendance Recognition - Face Recognition and Attendance Logging

Recognizes enrolled people in a camera stream, keeps a persistent index of
their face embeddings and writes de-duplicated attendance events.
"""

__version__ = "1.0.0"
