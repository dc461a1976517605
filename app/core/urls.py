# core/urls.py
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import AccountViewSet, NotificationViewSet, AuditLogViewSet

router = DefaultRouter()
router.register(r"accounts", AccountViewSet)
router.register(r"notifications", NotificationViewSet)
router.register(r"audit-logs", AuditLogViewSet)

urlpatterns = [
    path('', include(router.urls)),
]
