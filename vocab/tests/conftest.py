import pytest
from django.contrib.auth import get_user_model
from django.db import connection
from rest_framework.test import APIClient

from vocab.models import Encounter


@pytest.fixture
def user(db):
    return get_user_model().objects.create_user(username="viewer", password="pw-viewer")


@pytest.fixture
def client_for():
    """Build an APIClient authenticated as the given user."""
    def _make(u):
        c = APIClient()
        c.force_authenticate(user=u)
        return c
    return _make


@pytest.fixture
def legacy_encounter_table(transactional_db):
    """
    Encounter table without uq_sense_encounter_key, as in databases that
    predate the constraint. Lets tests insert exact-duplicate rows.

    SQLite drops a constraint by rebuilding the table from _meta, so the
    constraint is taken out of _meta for the duration of the test.
    """
    original = list(Encounter._meta.constraints)
    constraint = next(c for c in original if c.name == "uq_sense_encounter_key")
    Encounter._meta.constraints = [c for c in original if c is not constraint]
    try:
        with connection.schema_editor() as editor:
            editor.remove_constraint(Encounter, constraint)
        yield
    finally:
        Encounter.objects.all().delete()
        Encounter._meta.constraints = original
        with connection.schema_editor() as editor:
            editor.add_constraint(Encounter, constraint)
