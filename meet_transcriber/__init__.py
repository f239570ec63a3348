"""
Meet Transcriber - schedules a bot into Google Meet meetings, captures live
captions and delivers speaker-attributed transcripts to a webhook.
"""

__version__ = "1.0.0"
