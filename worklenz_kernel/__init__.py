"""
Worklenz Kernel

Shared foundation for the project finance packages:
- Typed exceptions with machine-readable codes
- Structured JSON logging with request-scoped context
- SQLAlchemy declarative base, engine and session scope
- ISO 4217 currency precision
"""

__version__ = "0.1.0"
