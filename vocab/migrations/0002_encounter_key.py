import hashlib

from django.db import migrations, models


def fill_encounter_keys(apps, schema_editor):
    Encounter = apps.get_model("vocab", "Encounter")
    for e in Encounter.objects.only("id", "source_url", "context").iterator(chunk_size=1000):
        key = hashlib.sha256(f"{e.source_url}\x1f{e.context}".encode("utf-8")).hexdigest()
        Encounter.objects.filter(id=e.id).update(encounter_key=key)


class Migration(migrations.Migration):

    dependencies = [
        ("vocab", "0001_initial"),
    ]

    operations = [
        migrations.RemoveConstraint(
            model_name="encounter",
            name="uq_sense_source_context",
        ),
        migrations.AddField(
            model_name="encounter",
            name="encounter_key",
            field=models.CharField(default="", editable=False, max_length=64),
            preserve_default=False,
        ),
        migrations.RunPython(fill_encounter_keys, migrations.RunPython.noop),
        migrations.AddConstraint(
            model_name="encounter",
            constraint=models.UniqueConstraint(fields=("sense", "encounter_key"), name="uq_sense_encounter_key"),
        ),
    ]
