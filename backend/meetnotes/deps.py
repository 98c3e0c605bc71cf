from __future__ import annotations

from typing import Iterator

from fastapi import Depends, Request
from sqlmodel import Session

from meetnotes.context import AppContext


def get_context(request: Request) -> AppContext:
    return request.app.state.ctx


def get_session(ctx: AppContext = Depends(get_context)) -> Iterator[Session]:
    with Session(ctx.engine) as session:
        yield session
