from django.urls import path
from .views import AdminOverviewView, AdminWordAnalyticsView, WordHistoryView, WordSaveView

urlpatterns = [
    path("words", WordHistoryView.as_view(), name="word-history"),
    path("words/save", WordSaveView.as_view(), name="word-save"),
    path("admin/overview", AdminOverviewView.as_view(), name="admin-overview"),
    path("admin/words", AdminWordAnalyticsView.as_view(), name="admin-words"),
]
