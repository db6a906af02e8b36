"""
Tests for remarkable_capture

Test coverage:
- Address validation and ping probe (no network)
- Pipeline controller state machine with fake process stages
- Stage commands, kill idempotence, byte-exact limiter (real head if present)
- Configuration layering and device profiles
- Raw dump inspection and the SQLite manifest
"""
