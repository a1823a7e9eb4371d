"""
Shared module for cross-cutting concerns of the realtime gateway.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging and connection audit trail

- shared.infrastructure: Request plumbing
  - correlation.py: X-Request-ID middleware and log filter

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging

IMPORT EXAMPLES:
    from shared.config.settings import settings
    from shared.config.logging import get_logger
    from shared.utils.exceptions import NotFoundError, ValidationError
"""
