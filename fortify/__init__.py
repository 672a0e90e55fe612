"""
FORTify - Voice reminder assistant package

Root package for the FORTify assistant, a senior-friendly chat and reminder
helper that can be driven hands-free by voice.

Core modules:
- utils: Environment parsing helpers and small async utilities
- datetime_utils: Local date/time helpers and display formatting
- assistant: REST backend, reminder extraction and the voice dialogue client
"""

__version__ = "0.4.2"
