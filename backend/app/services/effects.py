"""
Post-commit side effects.

A workflow commits its core write first, then registers follow-up effects
(emails, payment sessions, XP, outbox rows, notifications) and runs them in
order. Each effect commits on its own. A failing effect is rolled back,
logged and counted, and the remaining effects still run; the core write is
never affected.

Rolling back expires every instance in the session, so effects must capture
plain values (ids, names, emails) rather than ORM objects loaded before
the run.
"""

from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.core.metrics import record_side_effect_failure

logger = get_logger(__name__)

Effect = Callable[[], Awaitable[Any]]


class PostCommitEffects:
    def __init__(self, db: AsyncSession, operation: str):
        self.db = db
        self.operation = operation
        self._effects: list[tuple[str, Effect]] = []

    def add(self, name: str, effect: Effect) -> None:
        self._effects.append((name, effect))

    def __len__(self) -> int:
        return len(self._effects)

    async def run(self) -> dict[str, Any]:
        """Run effects in registration order; failed effects map to None."""
        results: dict[str, Any] = {}
        for name, effect in self._effects:
            try:
                outcome = await effect()
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                record_side_effect_failure(name)
                logger.warning(
                    "side_effect_failed",
                    operation=self.operation,
                    effect=name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                results[name] = None
                continue
            results[name] = outcome
        self._effects.clear()
        return results
