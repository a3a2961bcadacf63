"""
neurontainer

Lets Neuro manage Docker containers through the Neuro game API, gated by
per-action permissions the operator controls.
"""

__version__ = "0.3.0"
