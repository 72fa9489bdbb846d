"""URL configuration for ATL-LIMS project."""
from django.contrib import admin
from django.urls import path, include
from rest_framework_simplejwt.views import TokenRefreshView
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView, SpectacularRedocView
from rest_framework.permissions import AllowAny

from testflow.tokens import LabTokenObtainPairView

from .views import ApiHomeView

urlpatterns = [
    # API landing (JSON)
    path("api/", ApiHomeView.as_view(), name="api-home"),

    # Admin
    path("admin/", admin.site.urls),

    # Authentication (JWT + browsable API login)
    path("api/token/", LabTokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("api/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("api/auth/", include("rest_framework.urls")),

    # OpenAPI schema and docs
    path("api/schema/", SpectacularAPIView.as_view(permission_classes=[AllowAny]), name="schema"),
    path(
        "api/schema/swagger-ui/",
        SpectacularSwaggerView.as_view(url_name="schema", permission_classes=[AllowAny]),
        name="swagger-ui",
    ),
    path(
        "api/schema/redoc/",
        SpectacularRedocView.as_view(url_name="schema", permission_classes=[AllowAny]),
        name="redoc",
    ),

    # Test workflow endpoints
    path("api/", include("testflow.urls")),
]
