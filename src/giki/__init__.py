"""
Giki auth core: wallet sign-in, access/refresh tokens, sessions and role gating.
"""

__version__ = "0.3.0"
