"""
Compliance Services
===================

Microservices for the compliance platform.

Services:
- risk_scoring: Risk score calculation, history, trends and notifications
"""

__all__ = [
    "risk_scoring",
]
