"""Idempotency service for handling duplicate commands."""

import hashlib
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from fastapi.responses import JSONResponse
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import with_timeout
from ..core.exceptions import PROBLEM_BASE_URI, ProblemDetailsException
from ..models.idempotency import IdempotencyRecord

logger = logging.getLogger(__name__)


class IdempotencyMismatchError(ProblemDetailsException):
    """Exception when idempotency key is reused with different request body."""

    def __init__(self, method: str):
        super().__init__(
            status_code=422,
            title="Idempotency Key Mismatch",
            detail=f"Idempotency key was already used for '{method}' with a different request body",
            type_uri=f"{PROBLEM_BASE_URI}/idempotency-key-mismatch",
            code="IDEMPOTENCY_KEY_MISMATCH",
            retryable=False,
            extensions={"method": method},
        )


class IdempotencyService:
    """Service replaying stored responses for repeated commands."""

    def __init__(self, db: AsyncSession, ttl_hours: int | None = None):
        self.db = db
        self.ttl_hours = ttl_hours or settings.idempotency_ttl_hours

    def _compute_request_hash(self, request_body: dict[str, Any]) -> str:
        """Compute SHA-256 hash of normalized request body."""
        normalized = json.dumps(request_body, sort_keys=True, separators=(',', ':'), default=str)
        return hashlib.sha256(normalized.encode('utf-8')).hexdigest()

    async def check_idempotency(
        self,
        idempotency_key: str,
        method: str,
        request_body: dict[str, Any]
    ) -> tuple[int, dict[str, Any]] | None:
        """
        Return the stored response for a repeated command.

        Returns:
            Tuple of (status_code, response_body) if a live record exists,
            None if this is a new request

        Raises:
            IdempotencyMismatchError: If key exists with different request body
        """
        request_hash = self._compute_request_hash(request_body)

        stmt = select(IdempotencyRecord).where(
            IdempotencyRecord.idempotency_key == idempotency_key,
            IdempotencyRecord.method == method,
            IdempotencyRecord.expires_at > datetime.utcnow()
        )
        result = await with_timeout(self.db.execute(stmt), "idempotency.check")
        existing_record = result.scalar_one_or_none()

        if existing_record is None:
            return None

        if existing_record.request_body_hash != request_hash:
            logger.warning(
                "Idempotency key mismatch",
                extra={
                    "method": method,
                    "existing_hash": existing_record.request_body_hash[:8],
                    "new_hash": request_hash[:8]
                }
            )
            raise IdempotencyMismatchError(method)

        logger.info(
            "Returning cached idempotent response",
            extra={
                "method": method,
                "status_code": existing_record.response_status_code,
                "created_at": existing_record.created_at.isoformat()
            }
        )
        return existing_record.response_status_code, json.loads(existing_record.response_body)

    async def store_response(
        self,
        idempotency_key: str,
        method: str,
        request_body: dict[str, Any],
        status_code: int,
        response_body: dict[str, Any]
    ) -> None:
        """Store the response of a command. A concurrent duplicate keeps the first one."""
        expires_at = datetime.utcnow() + timedelta(hours=self.ttl_hours)

        record = IdempotencyRecord(
            idempotency_key=idempotency_key,
            method=method,
            request_body_hash=self._compute_request_hash(request_body),
            response_status_code=status_code,
            response_body=json.dumps(response_body, sort_keys=True, separators=(',', ':')),
            expires_at=expires_at
        )

        try:
            self.db.add(record)
            await with_timeout(self.db.commit(), "idempotency.store")
        except IntegrityError as e:
            await self.db.rollback()
            logger.info(
                "Idempotency record already exists (race condition)",
                extra={"method": method, "error": str(e)}
            )
            return

        logger.info(
            "Stored idempotency record",
            extra={"method": method, "status_code": status_code, "expires_at": expires_at.isoformat()}
        )

    async def run(
        self,
        method: str,
        idempotency_key: str | None,
        request_body: dict[str, Any],
        operation: Callable[[], Awaitable[dict[str, Any]]],
        status_code: int = 200
    ) -> JSONResponse:
        """
        Execute a command at most once per idempotency key.

        Without a key the command simply runs. Business rejections are stored
        and replayed like successes; retryable ones are not, so a retry with
        the same key gets a fresh attempt.
        """
        if idempotency_key is None:
            return JSONResponse(status_code=status_code, content=await operation())

        cached_response = await self.check_idempotency(idempotency_key, method, request_body)
        if cached_response:
            cached_status, cached_body = cached_response
            return JSONResponse(status_code=cached_status, content=cached_body)

        try:
            response_body = await operation()
        except ProblemDetailsException as e:
            if not e.retryable:
                await self.store_response(idempotency_key, method, request_body, e.status_code, e.problem_details)
            raise

        await self.store_response(idempotency_key, method, request_body, status_code, response_body)
        return JSONResponse(status_code=status_code, content=response_body)

    async def cleanup_expired_records(self) -> int:
        """
        Delete expired idempotency records.

        Returns:
            Number of records deleted
        """
        stmt = delete(IdempotencyRecord).where(IdempotencyRecord.expires_at <= datetime.utcnow())
        result = await with_timeout(self.db.execute(stmt), "idempotency.cleanup")
        deleted_count = result.rowcount
        await with_timeout(self.db.commit(), "idempotency.cleanup")

        if deleted_count > 0:
            logger.info("Cleaned up expired idempotency records", extra={"deleted_count": deleted_count})

        return deleted_count
