"""
Lumina - natural-language lighting control

Turns untrusted lighting and scheduling requests into validated WLED
commands using Claude, with per-user rate limiting and usage records.
"""

__version__ = "0.1.0"
