# vocab/serializers.py
import datetime as dt

from django.utils import timezone
from rest_framework import serializers

from .models import Encounter, Sense


class LocalDateTimeField(serializers.DateTimeField):
    """
    Read-only datetime rendered as ISO-8601 in the timezone given by
    context["tz"] (a tzinfo, e.g. from pytz); UTC when absent.
    Naive values are assumed to be UTC.
    """
    def to_representation(self, value):
        if value is None:
            return None
        if timezone.is_naive(value):
            value = timezone.make_aware(value, dt.timezone.utc)
        tz = self.context.get("tz") or dt.timezone.utc
        return value.astimezone(tz).isoformat()


class OccurrenceSubmissionSerializer(serializers.Serializer):
    """
    Inbound word submission from the extension.
    Notes:
      - word / meaning / videoUrl must be non-blank after trimming.
      - videoUrl and contextSentence are kept verbatim (no trimming); matching is exact.
      - null and "" contextSentence both mean "no context".
    """
    word = serializers.CharField()
    meaning = serializers.CharField()
    videoUrl = serializers.CharField(trim_whitespace=False)
    timestamp = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, max_length=64
    )
    contextSentence = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, trim_whitespace=False
    )


class EncounterSerializer(serializers.ModelSerializer):
    videoUrl = serializers.CharField(source="source_url", read_only=True)
    timestamp = serializers.SerializerMethodField()
    contextSentence = serializers.SerializerMethodField()
    createdAt = LocalDateTimeField(source="created_at", read_only=True)

    class Meta:
        model = Encounter
        fields = ("id", "videoUrl", "timestamp", "contextSentence", "createdAt")

    def get_timestamp(self, obj):
        return obj.position or None

    def get_contextSentence(self, obj):
        return obj.context or None


class SenseSerializer(serializers.ModelSerializer):
    createdAt = LocalDateTimeField(source="created_at", read_only=True)

    class Meta:
        model = Sense
        fields = ("id", "word", "meaning", "createdAt")


class SenseHistorySerializer(SenseSerializer):
    """Sense with its encounters; expects encounters prefetched newest first."""
    encounters = EncounterSerializer(many=True, read_only=True)

    class Meta(SenseSerializer.Meta):
        fields = SenseSerializer.Meta.fields + ("encounters",)
