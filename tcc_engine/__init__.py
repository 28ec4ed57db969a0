"""
TCC Engine Package.

Physician total cash compensation (TCC) engine: percentile benchmarking
against market surveys, scenario modeling, batch runs, specialty conversion
factor optimization with governance, and productivity targets.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration and dependencies
    - models: Pydantic schemas and enums
    - services: Business logic services
"""

__version__ = "1.0.0"
