from sqlalchemy.exc import SQLAlchemyError


class BaseRepo:
    """Writes are flushed, never committed; the calling service owns the transaction."""

    def __init__(self, db):
        self.db = db

    async def _add(self, obj):
        self.db.add(obj)
        try:
            await self.db.flush()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return obj

    async def db_commit(self):
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def db_commit_and_refresh(self, value):
        try:
            await self.db.commit()
            await self.db.refresh(value)
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return value

    async def db_rollback(self):
        await self.db.rollback()
