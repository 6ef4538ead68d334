"""
Core package for the voice clip catalog.

This package scans a Cloud Storage bucket of voice clips, loads the text
transcript that belongs to each recording, converts recordings that lack an
MP3 rendition, and serves random ``(clip, transcript)`` pairs once the
catalog is ready.
"""
