# testflow/tokens.py
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.views import TokenObtainPairView

from .permissions import primary_role


class LabTokenObtainPairSerializer(TokenObtainPairSerializer):
    """Access and refresh tokens carrying username and lab role."""

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token["username"] = user.get_username()
        token["role"] = primary_role(user) or ""
        return token

    def validate(self, attrs):
        data = super().validate(attrs)
        data["username"] = self.user.get_username()
        data["role"] = primary_role(self.user) or ""
        return data


class LabTokenObtainPairView(TokenObtainPairView):
    serializer_class = LabTokenObtainPairSerializer
