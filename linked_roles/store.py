"""
Credential store: key-value entries with per-key expiry, backed by SQLAlchemy.
Typed accessors per key family; expired entries read as missing and are deleted lazily.
"""
import json
import logging
import time
from typing import Any, Callable

from sqlalchemy import delete, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from linked_roles.config import LINK_STATE_TTL, TOKEN_STORE_TTL
from linked_roles.database import init_db, make_engine
from linked_roles.models import StoreEntry
from linked_roles.token_store import DiscordTokenSet, LinkState, ScoutIDTokenSet

logger = logging.getLogger(__name__)

# Dialects with INSERT .. ON CONFLICT DO UPDATE
_UPSERT_DIALECTS = {"sqlite": sqlite, "postgresql": postgresql}


def discord_tokens_key(discord_user_id: str) -> str:
    return f"discord-{discord_user_id}"


def scoutid_tokens_key(subject_id: str) -> str:
    return f"scoutid-{subject_id}"


def link_state_key(state: str) -> str:
    return f"state-{state}"


def link_key(discord_user_id: str) -> str:
    return f"discord-link-{discord_user_id}"


class CredentialStore:
    """
    Single-key get/set/delete only; no multi-key transactions.
    Constructed once at startup and closed on shutdown.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        token_ttl: int | None = TOKEN_STORE_TTL,
        link_state_ttl: int = LINK_STATE_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self._engine = engine
        self._sessions = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        self.token_ttl = token_ttl
        self.link_state_ttl = link_state_ttl
        self._clock = clock

    @classmethod
    def from_url(cls, database_url: str, **kwargs) -> "CredentialStore":
        engine = make_engine(database_url)
        init_db(engine)
        return cls(engine, **kwargs)

    def close(self) -> None:
        self._engine.dispose()

    # --- raw key-value with TTL ---

    def get(self, key: str) -> Any | None:
        with self._sessions() as db:
            entry = db.get(StoreEntry, key)
            if entry is None:
                return None
            if entry.expires_at is not None and self._clock() >= entry.expires_at:
                db.delete(entry)
                db.commit()
                return None
            return json.loads(entry.value)

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Single-statement upsert: concurrent writers of one key never conflict, the last one wins."""
        expires_at = self._clock() + ttl if ttl is not None else None
        values = {"key": key, "value": json.dumps(value), "expires_at": expires_at}
        dialect = _UPSERT_DIALECTS.get(self._engine.dialect.name)
        with self._sessions() as db:
            if dialect is not None:
                stmt = dialect.insert(StoreEntry).values(**values)
                db.execute(
                    stmt.on_conflict_do_update(
                        index_elements=[StoreEntry.key],
                        set_={"value": stmt.excluded.value, "expires_at": stmt.excluded.expires_at},
                    )
                )
                db.commit()
                return
            try:
                db.execute(StoreEntry.__table__.insert().values(**values))
                db.commit()
            except IntegrityError:
                db.rollback()
                db.execute(
                    update(StoreEntry)
                    .where(StoreEntry.key == key)
                    .values(value=values["value"], expires_at=expires_at)
                )
                db.commit()

    def delete(self, key: str) -> bool:
        with self._sessions() as db:
            result = db.execute(delete(StoreEntry).where(StoreEntry.key == key))
            db.commit()
            return result.rowcount > 0

    def purge_expired(self) -> int:
        """Delete every expired entry; returns how many were removed."""
        with self._sessions() as db:
            result = db.execute(
                delete(StoreEntry).where(
                    StoreEntry.expires_at.is_not(None),
                    StoreEntry.expires_at <= self._clock(),
                )
            )
            db.commit()
        if result.rowcount:
            logger.debug("Purged %s expired store entries", result.rowcount)
        return result.rowcount

    # --- Discord token sets (discord-<userId>) ---

    def get_discord_tokens(self, discord_user_id: str) -> DiscordTokenSet | None:
        data = self.get(discord_tokens_key(discord_user_id))
        return DiscordTokenSet.from_dict(data) if data else None

    def set_discord_tokens(self, discord_user_id: str, tokens: DiscordTokenSet) -> None:
        self.set(discord_tokens_key(discord_user_id), tokens.to_dict(), ttl=self.token_ttl)

    def delete_discord_tokens(self, discord_user_id: str) -> bool:
        return self.delete(discord_tokens_key(discord_user_id))

    # --- ScoutID token sets (scoutid-<subjectId>) ---

    def get_scoutid_tokens(self, subject_id: str) -> ScoutIDTokenSet | None:
        data = self.get(scoutid_tokens_key(subject_id))
        return ScoutIDTokenSet.from_dict(data) if data else None

    def set_scoutid_tokens(self, subject_id: str, tokens: ScoutIDTokenSet) -> None:
        self.set(scoutid_tokens_key(subject_id), tokens.to_dict(), ttl=self.token_ttl)

    def delete_scoutid_tokens(self, subject_id: str) -> bool:
        return self.delete(scoutid_tokens_key(subject_id))

    # --- Pending ScoutID leg (state-<correlationToken>) ---

    def get_link_state(self, state: str) -> LinkState | None:
        data = self.get(link_state_key(state))
        return LinkState.from_dict(data) if data else None

    def set_link_state(self, state: str, link_state: LinkState) -> None:
        self.set(link_state_key(state), link_state.to_dict(), ttl=self.link_state_ttl)

    def delete_link_state(self, state: str) -> bool:
        return self.delete(link_state_key(state))

    # --- Identity link (discord-link-<userId> -> ScoutID subject id), durable ---

    def get_link(self, discord_user_id: str) -> str | None:
        return self.get(link_key(discord_user_id))

    def set_link(self, discord_user_id: str, subject_id: str) -> None:
        self.set(link_key(discord_user_id), subject_id)

    def delete_link(self, discord_user_id: str) -> bool:
        return self.delete(link_key(discord_user_id))
