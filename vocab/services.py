# vocab/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import DatabaseError, IntegrityError, connection, transaction
from django.db.models import Count, Prefetch
from django.db.models.functions import Lower

from .exceptions import PersistenceError, SubmissionInvalid, SweepAborted, SweepAlreadyRunning
from .identity import derive_encounter_key, derive_sense_hash
from .models import Encounter, Sense

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "vocab:dedupe-encounters"

# Stored and matched in place of a missing context sentence.
NO_CONTEXT = ""


@dataclass(frozen=True)
class SavedOccurrence:
    sense: Sense
    encounter: Encounter
    created: bool  # True when the encounter row is new


def normalize_context(context: Optional[str]) -> str:
    """None and "" collapse to NO_CONTEXT; anything else is kept verbatim."""
    if context is None:
        return NO_CONTEXT
    return context


def _require(field: str, value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise SubmissionInvalid(field)
    return value


def get_or_create_sense(user_id: str, word: str, meaning: str) -> Sense:
    """
    Return the user's Sense for (word, meaning), creating it on first sight.

    An existing row is never touched, so the casing of the first submission wins.
    A concurrent insert of the same key loses on uq_user_sense_hash and
    get_or_create re-reads the winner's row.
    """
    sense_hash = derive_sense_hash(word, meaning)
    sense, created = Sense.objects.get_or_create(
        user_id=user_id,
        sense_hash=sense_hash,
        defaults={
            "word": word.strip(),
            "meaning": meaning.strip(),
        },
    )
    if created:
        logger.debug("new sense user=%s hash=%s word=%r", user_id, sense_hash[:12], sense.word)
    return sense


def find_matching_encounter(sense_id: int, source_url: str, context: Optional[str]) -> Optional[Encounter]:
    """First encounter of the sense with the same source and context; position is ignored."""
    context = normalize_context(context)
    return (
        Encounter.objects.filter(
            sense_id=sense_id,
            encounter_key=derive_encounter_key(source_url, context),
            source_url=source_url,
            context=context,
        )
        .order_by("created_at", "id")
        .first()
    )


def _bound_transaction() -> None:
    """Cap statement time for the current transaction (PostgreSQL only)."""
    if connection.vendor != "postgresql":
        return
    with connection.cursor() as cur:
        cur.execute(
            "SELECT set_config('statement_timeout', %s, true)",
            [str(settings.LEXIFY_SAVE_TIMEOUT_MS)],
        )


def _save_once(user_id, word, meaning, source_url, position, context) -> SavedOccurrence:
    with transaction.atomic():
        _bound_transaction()
        sense = get_or_create_sense(user_id, word, meaning)
        encounter = find_matching_encounter(sense.id, source_url, context)
        if encounter is not None:
            return SavedOccurrence(sense=sense, encounter=encounter, created=False)
        encounter = Encounter.objects.create(
            sense=sense,
            source_url=source_url,
            position=position or "",
            context=normalize_context(context),
        )
        logger.debug("new encounter sense=%s id=%s", sense.id, encounter.id)
        return SavedOccurrence(sense=sense, encounter=encounter, created=True)


def save_occurrence(
    user_id: str,
    word: str,
    meaning: str,
    source_url: str,
    position: Optional[str] = None,
    context: Optional[str] = None,
) -> SavedOccurrence:
    """
    Record that `user_id` met (word, meaning) at `source_url`.

    Idempotent on (user, normalized word+meaning, source_url, context):
    repeated or overlapping calls leave one Sense and one Encounter.
    Raises SubmissionInvalid before touching the store, PersistenceError
    when the transaction cannot complete. Nothing is retried on
    PersistenceError; a lost uniqueness race is resolved by re-reading.
    """
    if not user_id:
        raise SubmissionInvalid("user_id")
    _require("word", word)
    _require("meaning", meaning)
    _require("videoUrl", source_url)

    try:
        return _save_once(user_id, word, meaning, source_url, position, context)
    except IntegrityError:
        # Another request committed the same sense/encounter first; its rows are visible now.
        logger.info("save race lost user=%s word=%r, re-reading committed rows", user_id, word.strip())
        try:
            return _save_once(user_id, word, meaning, source_url, position, context)
        except DatabaseError as e:
            logger.exception("save failed after race user=%s", user_id)
            raise PersistenceError("could not save word, please retry") from e
    except DatabaseError as e:
        logger.exception("save failed user=%s", user_id)
        raise PersistenceError("could not save word, please retry") from e


def get_history(user_id: str) -> List[Sense]:
    """User's senses newest first, each with `.encounters.all()` newest first."""
    newest_first = Encounter.objects.order_by("-created_at", "-id")
    return list(
        Sense.objects.filter(user_id=user_id)
        .order_by("-created_at", "-id")
        .prefetch_related(Prefetch("encounters", queryset=newest_first))
    )


def _find_duplicate_groups(chunk_size: int) -> Dict[Tuple, List[int]]:
    """Scan encounters oldest first; map each key to the ids after its first row."""
    seen = set()
    dupes: Dict[Tuple, List[int]] = {}
    rows = (
        Encounter.objects.order_by("created_at", "id")
        .values_list("id", "sense_id", "source_url", "context")
        .iterator(chunk_size=chunk_size)
    )
    for pk, sense_id, source_url, context in rows:
        key = (sense_id, source_url, context)
        if key in seen:
            dupes.setdefault(key, []).append(pk)
        else:
            seen.add(key)
    return dupes


def deduplicate_encounters(*, chunk_size: int = 1000, dry_run: bool = False) -> int:
    """
    Delete every encounter that repeats an earlier (sense, source_url, context)
    row, keeping the earliest. Returns the number of rows removed (or that
    would be removed with dry_run=True).

    Only one sweep may run at a time; a second one raises SweepAlreadyRunning.
    A database failure raises SweepAborted with the rows deleted so far and
    the group being processed.
    """
    if not cache.add(SWEEP_LOCK_KEY, "1", timeout=settings.LEXIFY_SWEEP_LOCK_TTL):
        logger.warning("encounter sweep skipped, another run holds the lock")
        raise SweepAlreadyRunning("another encounter sweep is in progress")
    try:
        try:
            dupes = _find_duplicate_groups(chunk_size)
        except DatabaseError as e:
            logger.error("encounter sweep aborted while scanning")
            raise SweepAborted(0, None, e) from e
        if dry_run:
            return sum(len(ids) for ids in dupes.values())

        deleted = 0
        for key, ids in dupes.items():
            try:
                n, _ = Encounter.objects.filter(id__in=ids).delete()
            except DatabaseError as e:
                logger.error("encounter sweep aborted on %r after %d deletions", key, deleted)
                raise SweepAborted(deleted, key, e) from e
            deleted += n
            logger.info("encounter sweep removed %d rows for sense=%s", n, key[0])
        logger.info("encounter sweep done, %d duplicate rows removed", deleted)
        return deleted
    finally:
        cache.delete(SWEEP_LOCK_KEY)


def overview_stats() -> Dict[str, int]:
    return {
        "totalUsers": get_user_model().objects.count(),
        "totalWordsSaved": Sense.objects.count(),
        "totalEncounters": Encounter.objects.count(),
    }


def top_words(limit: Optional[int] = None) -> List[Dict]:
    """Most saved words across all users, grouped case-insensitively."""
    if limit is None:
        limit = settings.LEXIFY_TOP_WORDS_LIMIT
    qs = (
        Sense.objects.annotate(w=Lower("word"))
        .values("w")
        .annotate(count=Count("id"))
        .order_by("-count", "w")[:limit]
    )
    return [{"word": row["w"], "count": row["count"]} for row in qs]
