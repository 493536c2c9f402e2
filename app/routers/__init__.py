"""
Payroll Readiness Engine - Routers Package

FastAPI route handlers.

Routers:
- payroll_tracking: Claims, disputes and refunds
- payroll_readiness: Readiness gate, cutoff scheduler, downstream data
"""

from app.routers import payroll_readiness, payroll_tracking

__all__ = ["payroll_readiness", "payroll_tracking"]
