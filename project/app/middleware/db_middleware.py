# app/middleware/db_middleware.py

from app.utils.database import AsyncSessionLocal

class DBSessionMiddleware:
    """
    Opens one AsyncSession per HTTP request as request.state.db and closes it when the
    response is done, also on errors. Uncommitted work is rolled back by close().
    """

    def __init__(self, app, session_factory=None):
        self.app = app
        self.session_factory = session_factory

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        # app.state.session_factory overrides the default engine
        factory = self.session_factory or getattr(scope["app"].state, "session_factory", None) or AsyncSessionLocal

        state = scope.setdefault("state", {})
        state["db"] = factory()
        try:
            await self.app(scope, receive, send)
        finally:
            await state["db"].close()
