"""
HTTP API for the Meet Transcriber.
"""
