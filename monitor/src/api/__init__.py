"""
HTTP surface package.

FastAPI routers that wrap query service results in the dashboard's
``{success, data, error}`` envelope, plus the application factory.

CHANGELOG:
- 2026-10-09: Initial creation (STORY-013)

TODO:
- None
"""
