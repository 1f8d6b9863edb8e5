# app/errors.py
from typing import Optional


class NotFoundError(Exception):
    def __init__(self, message: str = "not found", user_id: Optional[str] = None):
        super().__init__(message)
        self.user_id = user_id

class InternalError(Exception): pass
class ExternalSyncError(Exception): pass
