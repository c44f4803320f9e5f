import datetime as dt
import threading
from unittest import mock

import pytest
from django.db import OperationalError, connection
from django.utils import timezone

from vocab import services
from vocab.exceptions import PersistenceError, SubmissionInvalid
from vocab.identity import derive_encounter_key, derive_sense_hash
from vocab.models import Encounter, Sense
from vocab.services import (
    find_matching_encounter,
    get_history,
    get_or_create_sense,
    save_occurrence,
)

URL = "https://www.youtube.com/watch?v=abc123"


@pytest.mark.django_db
def test_first_submission_keeps_trimmed_original_casing():
    sense = get_or_create_sense("u1", "  Serendipity ", " A happy Accident  ")
    assert sense.word == "Serendipity"
    assert sense.meaning == "A happy Accident"
    assert sense.sense_hash == derive_sense_hash("serendipity", "a happy accident")


@pytest.mark.django_db
def test_later_casing_does_not_overwrite_stored_sense():
    first = get_or_create_sense("u1", "Run", "To move fast")
    again = get_or_create_sense("u1", "RUN ", "to move FAST")
    assert again.id == first.id
    again.refresh_from_db()
    assert again.word == "Run"
    assert again.meaning == "To move fast"
    assert Sense.objects.count() == 1


@pytest.mark.django_db
def test_senses_are_scoped_per_user():
    a = get_or_create_sense("u1", "run", "to move fast")
    b = get_or_create_sense("u2", "run", "to move fast")
    assert a.id != b.id
    assert a.sense_hash == b.sense_hash


@pytest.mark.django_db
def test_identical_saves_leave_one_sense_and_one_encounter():
    r1 = save_occurrence("u1", "run", "to move fast", URL, "0:05", "He can run.")
    r2 = save_occurrence("u1", "Run", "To move fast", URL, "0:07", "He can run.")
    assert r1.created is True
    assert r2.created is False
    assert r2.sense.id == r1.sense.id
    assert r2.encounter.id == r1.encounter.id
    assert Sense.objects.count() == 1
    assert Encounter.objects.count() == 1


@pytest.mark.django_db
def test_matched_encounter_keeps_its_first_position():
    save_occurrence("u1", "run", "to move fast", URL, "0:05", "He can run.")
    r = save_occurrence("u1", "run", "to move fast", URL, "0:42", "He can run.")
    r.encounter.refresh_from_db()
    assert r.encounter.position == "0:05"


@pytest.mark.django_db
def test_two_meanings_of_one_word_are_two_senses():
    save_occurrence("u", "bank", "a financial institution", URL)
    save_occurrence("u", "bank", "the side of a river", URL)
    assert Sense.objects.filter(user_id="u").count() == 2


@pytest.mark.django_db
def test_different_sources_are_separate_encounters():
    save_occurrence("u", "run", "to move fast", URL, "0:05")
    save_occurrence("u", "run", "to move fast", URL + "&t=1", "0:05")
    assert Sense.objects.count() == 1
    assert Encounter.objects.count() == 2


@pytest.mark.django_db
def test_null_and_empty_context_are_the_same_encounter():
    r1 = save_occurrence("u", "run", "to move fast", URL, "0:05", None)
    r2 = save_occurrence("u", "run", "to move fast", URL, "0:09", "")
    assert r2.encounter.id == r1.encounter.id
    assert Encounter.objects.count() == 1


@pytest.mark.django_db
def test_missing_context_never_matches_captured_context():
    save_occurrence("u", "run", "to move fast", URL, "0:05", None)
    save_occurrence("u", "run", "to move fast", URL, "0:05", "They run daily.")
    assert Encounter.objects.count() == 2


@pytest.mark.django_db
def test_context_match_is_exact():
    save_occurrence("u", "run", "to move fast", URL, "0:05", "They run daily.")
    save_occurrence("u", "run", "to move fast", URL, "0:05", "they run daily.")
    save_occurrence("u", "run", "to move fast", URL, "0:05", "They run daily. ")
    assert Encounter.objects.count() == 3


@pytest.mark.django_db
def test_find_matching_encounter_ignores_position():
    r = save_occurrence("u", "run", "to move fast", URL, "0:05", "ctx")
    assert find_matching_encounter(r.sense.id, URL, "ctx").id == r.encounter.id
    assert find_matching_encounter(r.sense.id, URL, None) is None
    assert find_matching_encounter(r.sense.id, "https://other", "ctx") is None


@pytest.mark.django_db
@pytest.mark.parametrize("field, args", [
    ("word", ("  ", "to move fast", URL)),
    ("meaning", ("run", "", URL)),
    ("videoUrl", ("run", "to move fast", " ")),
    ("videoUrl", ("run", "to move fast", None)),
])
def test_blank_required_fields_are_rejected_before_store(field, args):
    with pytest.raises(SubmissionInvalid) as exc:
        save_occurrence("u", *args)
    assert exc.value.field == field
    assert Sense.objects.count() == 0


@pytest.mark.django_db
def test_lost_encounter_race_resolves_to_winner_row():
    winner = save_occurrence("u", "run", "to move fast", URL, "0:05", "ctx")

    real = services.find_matching_encounter
    calls = []

    def stale_first_read(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            return None  # as if the winner had not committed yet
        return real(*args, **kwargs)

    with mock.patch("vocab.services.find_matching_encounter", side_effect=stale_first_read):
        r = save_occurrence("u", "run", "to move fast", URL, "0:09", "ctx")

    assert len(calls) == 2
    assert r.created is False
    assert r.encounter.id == winner.encounter.id
    assert Encounter.objects.count() == 1


@pytest.mark.django_db
def test_encounter_failure_rolls_back_new_sense():
    with mock.patch.object(Encounter.objects, "create", side_effect=OperationalError("disk I/O error")):
        with pytest.raises(PersistenceError):
            save_occurrence("u", "run", "to move fast", URL, "0:05")
    assert Sense.objects.count() == 0
    assert Encounter.objects.count() == 0


@pytest.mark.django_db
def test_history_is_newest_first_for_senses_and_encounters():
    t0 = timezone.datetime(2025, 10, 27, 10, 0, 0, tzinfo=dt.timezone.utc)
    words = ["alpha", "beta", "gamma"]
    for i, w in enumerate(words):
        r = save_occurrence("u", w, "meaning", URL)
        Sense.objects.filter(id=r.sense.id).update(created_at=t0 + dt.timedelta(minutes=i))
        Encounter.objects.filter(id=r.encounter.id).update(created_at=t0 + dt.timedelta(minutes=i))

    sense_id = Sense.objects.get(word="beta").id
    for i in range(3):
        r = save_occurrence("u", "beta", "meaning", f"{URL}&n={i}")
        Encounter.objects.filter(id=r.encounter.id).update(created_at=t0 + dt.timedelta(hours=1, minutes=i))

    history = get_history("u")
    assert [s.word for s in history] == ["gamma", "beta", "alpha"]
    beta = history[1]
    assert beta.id == sense_id
    urls = [e.source_url for e in beta.encounters.all()]
    assert urls == [f"{URL}&n=2", f"{URL}&n=1", f"{URL}&n=0", URL]


@pytest.mark.django_db
def test_history_for_unknown_user_is_empty():
    save_occurrence("someone", "run", "to move fast", URL)
    assert get_history("nobody") == []


@pytest.mark.django_db(transaction=True)
def test_concurrent_identical_saves_collapse_to_one_row_each():
    n = 8
    barrier = threading.Barrier(n)
    errors = []

    def worker(i):
        try:
            barrier.wait()
            save_occurrence("u-race", "run", "to move fast", URL, f"0:{i:02d}", "He can run.")
        except Exception as e:  # collected and asserted below
            errors.append(e)
        finally:
            connection.close()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert Sense.objects.filter(user_id="u-race").count() == 1
    assert Encounter.objects.filter(sense__user_id="u-race").count() == 1


@pytest.mark.django_db
def test_sqlite_takes_write_lock_at_begin():
    if connection.vendor != "sqlite":
        pytest.skip("sqlite-only option")
    assert connection.settings_dict["OPTIONS"]["transaction_mode"] == "IMMEDIATE"


@pytest.mark.django_db
def test_long_source_and_context_are_keyed_by_digest():
    url = URL + "&list=" + "x" * 5000
    ctx = "a very long subtitle line " * 400
    r1 = save_occurrence("u", "run", "to move fast", url, "0:05", ctx)
    r2 = save_occurrence("u", "run", "to move fast", url, "0:06", ctx)

    assert r2.created is False
    assert r2.encounter.id == r1.encounter.id
    r1.encounter.refresh_from_db()
    assert r1.encounter.encounter_key == derive_encounter_key(url, ctx)
    assert len(r1.encounter.encounter_key) == 64


@pytest.mark.django_db
def test_encounter_key_uses_canonical_empty_context():
    r = save_occurrence("u", "run", "to move fast", URL, "0:05", None)
    r.encounter.refresh_from_db()
    assert r.encounter.encounter_key == derive_encounter_key(URL, "")
