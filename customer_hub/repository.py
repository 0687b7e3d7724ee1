"""Database repository for loyalty member verification."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from psycopg import sql
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.contracts import LoginInput, LoginResult
from .domain.member import Member

logger = logging.getLogger(__name__)

MEMBER_NOT_FOUND = "MEMBER_NOT_FOUND"


@dataclass(slots=True)
class CardLoginRecord:
    """Row projection of the card login function's result set."""

    error_code: str | None
    error_message: str | None
    result: bool | None
    crn: str | None
    card_number: str | None
    email: str | None
    mobile: str | None
    first_name: str | None
    last_name: str | None


class MemberRepository:
    """Postgres-backed member lookup through the card login stored function."""

    def __init__(self, pool: ConnectionPool, function_name: str) -> None:
        """Store the connection pool and the (optionally schema-qualified) function name."""
        self._pool = pool
        self._query = sql.SQL(
            """
            SELECT error_code, error_message, result, crn, card_number,
                   email, mobile, first_name, last_name
            FROM {}(%s, %s, %s)
            """
        ).format(sql.Identifier(*function_name.split(".")))

    def verify_member(self, payload: LoginInput) -> LoginResult:
        """Call the stored function for the login preference and map its result."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(self._query, (payload.preferred.value, payload.email, payload.mobile))
                row = cur.fetchone()

        if not row:
            logger.info("card login function returned no row for channel %s", payload.preferred.value)
            return LoginResult(
                error_code=MEMBER_NOT_FOUND,
                error_message="Member not found",
                result=False,
            )
        return self._map_record(CardLoginRecord(*row))

    def _map_record(self, record: CardLoginRecord) -> LoginResult:
        """Convert a function row into the domain ``LoginResult``."""
        if not record.result:
            return LoginResult(
                error_code=record.error_code,
                error_message=record.error_message,
                result=False,
            )
        return LoginResult(
            error_code=record.error_code,
            error_message=record.error_message,
            result=True,
            member=Member(
                crn=record.crn or "",
                card_number=record.card_number or "",
                email=record.email,
                mobile=record.mobile,
                first_name=record.first_name,
                last_name=record.last_name,
            ),
        )
