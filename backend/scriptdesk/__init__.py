"""scriptdesk backend: session and identity management"""

__version__ = "0.1.0"
