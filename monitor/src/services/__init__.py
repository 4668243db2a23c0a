"""
Read-side query services.

Plain functions that take the metrics cache, validate their arguments and
return a Result. The HTTP layer wraps them; the poller never calls them.

CHANGELOG:
- 2026-10-08: Initial creation (STORY-011)

TODO:
- None
"""
