from django.db import models

from .identity import derive_encounter_key


class Sense(models.Model):
    user_id = models.CharField(max_length=64, db_index=True)        # Owner identifier
    sense_hash = models.CharField(max_length=64)                    # sha256 of normalized word + meaning
    word = models.TextField()                                       # Trimmed, original casing of first submission
    meaning = models.TextField()                                    # Trimmed definition text
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user_id", "sense_hash"],
                                    name="uq_user_sense_hash"),
        ]
        indexes = [
            models.Index(fields=["user_id", "created_at"], name="idx_sense_user_created"),
        ]

    def __str__(self):
        return f"{self.word}: {self.meaning[:40]}"


class Encounter(models.Model):
    sense = models.ForeignKey(Sense, on_delete=models.CASCADE, related_name="encounters")
    source_url = models.TextField()                                 # e.g. video URL
    position = models.CharField(max_length=64, blank=True)          # Playback timestamp, not part of identity
    context = models.TextField(blank=True)                          # "" means no context captured
    encounter_key = models.CharField(max_length=64, editable=False) # sha256 of source_url + context, always derived
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            # digest instead of the raw text columns: btree rows have a size limit
            models.UniqueConstraint(fields=["sense", "encounter_key"],
                                    name="uq_sense_encounter_key"),
        ]
        indexes = [
            models.Index(fields=["sense", "created_at"], name="idx_encounter_sense_created"),
        ]

    def save(self, *args, **kwargs):
        self.encounter_key = derive_encounter_key(self.source_url, self.context)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.source_url} @ {self.position or '-'}"
