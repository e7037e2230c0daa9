"""FarmPass Push Test Suite

This package contains all tests for the FarmPass push subscription service.

Test organization:
- unit/: Unit tests for individual modules
  - push/: Server-side push tests (vapid, registrar, cleanup, web push, settings)
  - client/: Client library tests (worker, orchestrator, device id, session)
- integration/: Integration tests for the push REST API

Running tests:
    # All tests
    pytest

    # Specific module
    pytest tests/unit/push/
"""
