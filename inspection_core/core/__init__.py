"""
Core utilities shared across the inspection core.

This package provides:
- Application-level settings (separate from DB settings)
- Structured logging with correlation/tenant enrichment
- The error taxonomy raised by services
- The tenant context guard
"""
