import logging
from datetime import date, datetime, timezone
from sqlalchemy.orm import Session


class BaseService:
    """
    Common plumbing for services that work against one request-scoped session.
    Services flush; only the outermost operation commits.
    """

    def __init__(self, db: Session):
        self.db = db
        self._logger = logging.getLogger(self.__class__.__module__)

    def commit(self):
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def rollback(self):
        self.db.rollback()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utc_today() -> date:
    return utcnow().date()
