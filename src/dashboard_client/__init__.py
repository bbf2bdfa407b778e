"""
Dashboard Client - resilient data access for the agent monitoring dashboard.

Provides the HTTP transport pipeline with error normalization and bounded
retry, plus reusable controllers for async operations, pagination state and
periodic update polling.
"""

__version__ = "1.0.0"
