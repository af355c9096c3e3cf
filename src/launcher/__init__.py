"""
Saturn executor launcher.

Brings the executor runtime up inside isolated loading domains and tears it
down again.
"""
__version__ = "0.1.0"
