"""Registration back-office: import, reconciliation and normalization of participant records."""

__version__ = "1.0.0"
