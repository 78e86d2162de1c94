from .records_dao import RecordsDAO
from .service import DatabaseService

__all__ = ["DatabaseService", "RecordsDAO"]
