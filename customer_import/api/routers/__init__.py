"""
FastAPI routers for organizing API endpoints.

Import trigger and job polling endpoints live in ``imports``.
"""
