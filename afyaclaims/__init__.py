"""AfyaClaims - claims and policy adjudication core."""

__version__ = "1.0.0"
