"""User-account backend: registration, login, JWT session tokens and profile media."""

__version__ = "0.1.0"
