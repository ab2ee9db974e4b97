"""
Cross-cutting pieces: errors raised by the loader, and settings for the CLI.
"""
