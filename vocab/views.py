# vocab/views.py
from __future__ import annotations

import pytz
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import PersistenceError, SubmissionInvalid
from .permissions import IsActiveStaff
from .serializers import (
    EncounterSerializer,
    OccurrenceSubmissionSerializer,
    SenseHistorySerializer,
    SenseSerializer,
)
from .services import get_history, overview_stats, save_occurrence, top_words


def _first_error(errors) -> str:
    """Flatten DRF serializer errors to a single 'field: message' line."""
    for field, msgs in errors.items():
        msg = msgs[0] if isinstance(msgs, list) and msgs else msgs
        return f"{field}: {msg}"
    return "invalid request."


def _retryable(e: PersistenceError) -> Response:
    return Response(
        {'detail': str(e), 'retryable': True},
        status=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


class WordSaveView(APIView):
    """POST /api/words/save (201 new encounter, 200 matched existing one)."""
    def post(self, request):
        ser = OccurrenceSubmissionSerializer(data=request.data or {})
        if not ser.is_valid():
            return Response(
                {'detail': _first_error(ser.errors), 'errors': ser.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )
        data = ser.validated_data

        try:
            saved = save_occurrence(
                str(request.user.pk),
                data['word'],
                data['meaning'],
                data['videoUrl'],
                position=data.get('timestamp'),
                context=data.get('contextSentence'),
            )
        except SubmissionInvalid as e:
            return Response({'detail': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        except PersistenceError as e:
            return _retryable(e)

        return Response({
            'sense': SenseSerializer(saved.sense).data,
            'encounter': EncounterSerializer(saved.encounter).data,
        }, status=status.HTTP_201_CREATED if saved.created else status.HTTP_200_OK)


class WordHistoryView(APIView):
    """
    GET /api/words
      ?tz=Asia/Tokyo   (optional, default UTC)
    Senses newest first, each with its encounters newest first.
    """
    def get(self, request):
        tzname = request.query_params.get('tz', 'UTC')
        try:
            tzinfo = pytz.timezone(tzname)
        except pytz.UnknownTimeZoneError:
            return Response({'detail': 'invalid tz.'}, status=status.HTTP_400_BAD_REQUEST)

        senses = get_history(str(request.user.pk))
        data = SenseHistorySerializer(senses, many=True, context={'tz': tzinfo}).data
        return Response(data, status=status.HTTP_200_OK)


class AdminOverviewView(APIView):
    """GET /api/admin/overview"""
    permission_classes = [IsActiveStaff]

    def get(self, request):
        return Response(overview_stats(), status=status.HTTP_200_OK)


class AdminWordAnalyticsView(APIView):
    """GET /api/admin/words (most saved words across all users)"""
    permission_classes = [IsActiveStaff]

    def get(self, request):
        return Response({'topWords': top_words()}, status=status.HTTP_200_OK)
