"""
Postgres-backed store for firms, memberships, profiles and access grants.

Security:
- Runs behind the privileged boundary with a service-role DSN (Supabase).
  Every call is preceded by an Authorization Guard check in the services;
  this module performs no authorization of its own.
- The `auth.users` lookup by email uses the provider's unique email index.

Design:
- Minimal psycopg3 usage; each call opens a short-lived connection.
  Connect and statement timeouts are bounded (ADVISORY_DB_CONNECT_TIMEOUT,
  ADVISORY_DB_STATEMENT_TIMEOUT_MS) so an unreachable database surfaces as
  `StoreUnavailable`.
- Uniqueness is enforced by the schema (see supabase/migrations); conflicts
  are resolved with `on conflict` clauses so concurrent callers converge.
- Driver errors surface as `StoreUnavailable`; unique violations as
  `AlreadyExists`.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Tuple
import logging
import os

try:
    import psycopg
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional in some dev envs
    psycopg = None  # type: ignore
    HAVE_PSYCOPG = False

from identity_access.domain import Identity, normalize_email

from .errors import AlreadyExists, StoreUnavailable
from .models import AccessGrant, Firm, Membership, Profile

logger = logging.getLogger("rollover.advisory.repo_db")

DEFAULT_CONNECT_TIMEOUT = 5
DEFAULT_STATEMENT_TIMEOUT_MS = 5000

_TS = "to_char({col} at time zone 'utc', 'YYYY-MM-DD\"T\"HH24:MI:SS\"+00:00\"')"


def _ts(col: str) -> str:
    return _TS.format(col=col)


def _dsn() -> str:
    """Resolve the service-role DSN for the advisory store."""
    candidates = [
        os.getenv("ADVISORY_DATABASE_URL"),
        os.getenv("SERVICE_ROLE_DSN"),
        os.getenv("DATABASE_URL"),
        os.getenv("SUPABASE_DB_URL"),
    ]
    for dsn in candidates:
        if dsn:
            return dsn
    raise RuntimeError("Database DSN unavailable for DBAdvisoryRepo")


def _int_env(name: str, default: int) -> int:
    try:
        value = int(os.getenv(name, "") or default)
    except ValueError:
        return default
    return value if value > 0 else default


def _connect_kwargs() -> dict:
    """Bounded connect and statement timeouts; an unreachable database must fail, not hang."""
    connect_timeout = _int_env("ADVISORY_DB_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT)
    statement_ms = _int_env("ADVISORY_DB_STATEMENT_TIMEOUT_MS", DEFAULT_STATEMENT_TIMEOUT_MS)
    return {"connect_timeout": connect_timeout, "options": f"-c statement_timeout={statement_ms}"}


def _is_unique_violation(exc: Exception) -> bool:
    sqlstate = getattr(exc, "sqlstate", None)
    if sqlstate == "23505":
        return True
    diag = getattr(exc, "diag", None)
    return getattr(diag, "sqlstate", None) == "23505"


def _firm(row) -> Firm:
    return Firm(id=row[0], name=row[1], owner_id=row[2], created_at=row[3])


def _membership(row) -> Membership:
    return Membership(firm_id=row[0], user_id=row[1], role=row[2], created_at=row[3])


def _grant(row) -> AccessGrant:
    return AccessGrant(firm_id=row[0], client_id=row[1], advisor_id=row[2], granted_by=row[3], created_at=row[4])


_FIRM_COLUMNS = f"id::text, name, owner_id::text, {_ts('created_at')}"
_MEMBERSHIP_COLUMNS = f"firm_id::text, user_id::text, role, {_ts('created_at')}"
_GRANT_COLUMNS = f"firm_id::text, client_id::text, advisor_id::text, granted_by::text, {_ts('created_at')}"


class DBAdvisoryRepo:
    def __init__(self, dsn: Optional[str] = None) -> None:
        """Initialize a Postgres-backed store.

        Parameters:
            dsn: Optional explicit DSN. When omitted, resolves from env
                 (ADVISORY_DATABASE_URL, SERVICE_ROLE_DSN, DATABASE_URL, SUPABASE_DB_URL).

        Behavior:
            Does not open a connection eagerly; connections are per-call.
        """
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBAdvisoryRepo")
        self._dsn = dsn or _dsn()

    @contextmanager
    def _cursor(self) -> Iterator["psycopg.Cursor"]:
        """Yield a cursor inside a transaction; map driver errors to error kinds."""
        try:
            with psycopg.connect(self._dsn, **_connect_kwargs()) as conn:
                with conn.cursor() as cur:
                    yield cur
                conn.commit()
        except psycopg.Error as exc:
            if _is_unique_violation(exc):
                raise AlreadyExists("unique_violation") from exc
            logger.warning("Advisory store call failed: %s", exc.__class__.__name__)
            raise StoreUnavailable("store_unavailable", "The data store is unavailable, please retry.") from exc

    # --- Firms --------------------------------------------------------------------
    def get_firm(self, firm_id: str) -> Optional[Firm]:
        with self._cursor() as cur:
            cur.execute(f"select {_FIRM_COLUMNS} from public.firms where id = %s", (firm_id,))
            row = cur.fetchone()
        return _firm(row) if row else None

    def get_firm_by_name(self, name: str) -> Optional[Firm]:
        with self._cursor() as cur:
            cur.execute(f"select {_FIRM_COLUMNS} from public.firms where name = %s", (name,))
            row = cur.fetchone()
        return _firm(row) if row else None

    def insert_firm_if_absent(self, name: str) -> Tuple[Firm, bool]:
        """Create the firm unless a row with the same name exists.

        The unique index on `firms.name` decides the race: the loser's insert
        returns no row and it reads the winner's row instead.
        """
        with self._cursor() as cur:
            cur.execute(
                f"""
                insert into public.firms (name) values (%s)
                on conflict (name) do nothing
                returning {_FIRM_COLUMNS}
                """,
                (name,),
            )
            row = cur.fetchone()
            if row:
                return _firm(row), True
            cur.execute(f"select {_FIRM_COLUMNS} from public.firms where name = %s", (name,))
            row = cur.fetchone()
        if not row:
            raise StoreUnavailable("firm_lookup_failed", "The data store is unavailable, please retry.")
        return _firm(row), False

    def claim_firm_owner(self, firm_id: str, user_id: str) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "update public.firms set owner_id = %s where id = %s and owner_id is null returning id::text",
                (user_id, firm_id),
            )
            return cur.fetchone() is not None

    # --- Memberships --------------------------------------------------------------
    def get_membership(self, user_id: str) -> Optional[Membership]:
        with self._cursor() as cur:
            cur.execute(
                f"select {_MEMBERSHIP_COLUMNS} from public.firm_memberships where user_id = %s",
                (user_id,),
            )
            row = cur.fetchone()
        return _membership(row) if row else None

    def upsert_membership(self, firm_id: str, user_id: str, role: str) -> Membership:
        with self._cursor() as cur:
            cur.execute(
                f"""
                insert into public.firm_memberships (firm_id, user_id, role)
                values (%s, %s, %s)
                on conflict (user_id) do update
                   set firm_id = excluded.firm_id,
                       role = excluded.role
                returning {_MEMBERSHIP_COLUMNS}
                """,
                (firm_id, user_id, role),
            )
            row = cur.fetchone()
        return _membership(row)

    def list_memberships(self, firm_id: str, roles: Iterable[str]) -> List[Membership]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                select {_MEMBERSHIP_COLUMNS}
                from public.firm_memberships
                where firm_id = %s and role = any(%s)
                order by created_at asc, user_id
                """,
                (firm_id, list(roles)),
            )
            rows = cur.fetchall() or []
        return [_membership(r) for r in rows]

    # --- Profiles -----------------------------------------------------------------
    def get_profile(self, user_id: str) -> Optional[Profile]:
        with self._cursor() as cur:
            cur.execute(
                "select id::text, email, first_name, last_name from public.profiles where id = %s",
                (user_id,),
            )
            row = cur.fetchone()
        if not row:
            return None
        return Profile(user_id=row[0], email=row[1] or "", first_name=row[2], last_name=row[3])

    def upsert_profile(self, profile: Profile) -> Profile:
        with self._cursor() as cur:
            cur.execute(
                """
                insert into public.profiles (id, email, first_name, last_name)
                values (%s, %s, %s, %s)
                on conflict (id) do update
                   set email = excluded.email,
                       first_name = excluded.first_name,
                       last_name = excluded.last_name
                """,
                (profile.user_id, normalize_email(profile.email), profile.first_name, profile.last_name),
            )
        return profile

    def find_identity_by_email(self, email: str) -> Optional[Identity]:
        """Indexed lookup of a provider identity by (lowercase) email."""
        key = normalize_email(email)
        if not key:
            return None
        with self._cursor() as cur:
            cur.execute(
                """
                select u.id::text, u.email, p.first_name, p.last_name
                from auth.users u
                left join public.profiles p on p.id = u.id
                where u.email = %s
                limit 1
                """,
                (key,),
            )
            row = cur.fetchone()
        if not row:
            return None
        return Identity(id=row[0], email=normalize_email(row[1]), first_name=row[2], last_name=row[3])

    # --- Access grants ------------------------------------------------------------
    def get_grant(self, client_id: str, advisor_id: str) -> Optional[AccessGrant]:
        with self._cursor() as cur:
            cur.execute(
                f"select {_GRANT_COLUMNS} from public.client_access where client_id = %s and advisor_id = %s",
                (client_id, advisor_id),
            )
            row = cur.fetchone()
        return _grant(row) if row else None

    def upsert_grant(self, firm_id: str, client_id: str, advisor_id: str, granted_by: str) -> Tuple[AccessGrant, bool]:
        """Insert or update the grant; identical rows are left untouched.

        The `where` on the conflict branch turns an identical re-grant into a
        no-op (no row returned), which we report as `changed=False`.
        """
        with self._cursor() as cur:
            cur.execute(
                f"""
                insert into public.client_access (firm_id, client_id, advisor_id, granted_by)
                values (%s, %s, %s, %s)
                on conflict (client_id, advisor_id) do update
                   set firm_id = excluded.firm_id,
                       granted_by = excluded.granted_by
                 where client_access.firm_id is distinct from excluded.firm_id
                    or client_access.granted_by is distinct from excluded.granted_by
                returning {_GRANT_COLUMNS}
                """,
                (firm_id, client_id, advisor_id, granted_by),
            )
            row = cur.fetchone()
            if row:
                return _grant(row), True
            cur.execute(
                f"select {_GRANT_COLUMNS} from public.client_access where client_id = %s and advisor_id = %s",
                (client_id, advisor_id),
            )
            row = cur.fetchone()
        if not row:
            raise StoreUnavailable("grant_lookup_failed", "The data store is unavailable, please retry.")
        return _grant(row), False

    def delete_grant(self, client_id: str, advisor_id: str) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "delete from public.client_access where client_id = %s and advisor_id = %s",
                (client_id, advisor_id),
            )
            return (cur.rowcount or 0) > 0

    def list_grants_for_advisor(self, advisor_id: str) -> List[AccessGrant]:
        with self._cursor() as cur:
            cur.execute(
                f"select {_GRANT_COLUMNS} from public.client_access where advisor_id = %s order by created_at asc",
                (advisor_id,),
            )
            rows = cur.fetchall() or []
        return [_grant(r) for r in rows]

    def list_grants_for_client(self, client_id: str) -> List[AccessGrant]:
        with self._cursor() as cur:
            cur.execute(
                f"select {_GRANT_COLUMNS} from public.client_access where client_id = %s order by created_at asc",
                (client_id,),
            )
            rows = cur.fetchall() or []
        return [_grant(r) for r in rows]


__all__ = ["DBAdvisoryRepo"]
