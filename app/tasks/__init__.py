"""
Payroll Readiness Engine - Background Tasks Package

Celery tasks for the periodic payroll cutoff jobs.
"""
