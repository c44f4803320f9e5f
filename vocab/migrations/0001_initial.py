import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Sense",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("user_id", models.CharField(db_index=True, max_length=64)),
                ("sense_hash", models.CharField(max_length=64)),
                ("word", models.TextField()),
                ("meaning", models.TextField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "indexes": [models.Index(fields=["user_id", "created_at"], name="idx_sense_user_created")],
                "constraints": [models.UniqueConstraint(fields=("user_id", "sense_hash"), name="uq_user_sense_hash")],
            },
        ),
        migrations.CreateModel(
            name="Encounter",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("source_url", models.TextField()),
                ("position", models.CharField(blank=True, max_length=64)),
                ("context", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "sense",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="encounters",
                        to="vocab.sense",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["sense", "created_at"], name="idx_encounter_sense_created")],
                "constraints": [
                    models.UniqueConstraint(fields=("sense", "source_url", "context"), name="uq_sense_source_context")
                ],
            },
        ),
    ]
