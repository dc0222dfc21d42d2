"""
Composed FastAPI Dependencies

The trigger service is built once in the application lifespan and kept on
app.state. Route handlers import from here and never touch app.state
directly, so tests can swap the service by setting app.state.triggers.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from docsummary.services.triggers import SummaryTriggers


def get_triggers(request: Request) -> SummaryTriggers:
    return request.app.state.triggers


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

Triggers = Annotated[SummaryTriggers, Depends(get_triggers)]
