from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import MarginCallEventViewSet, RiskCheckView

router = DefaultRouter()
router.register("margin-calls", MarginCallEventViewSet)

urlpatterns = [
    path("check-margin-levels/", RiskCheckView.as_view(), name="check-margin-levels"),
    path("", include(router.urls)),
]
