from django.contrib.auth import password_validation
from rest_framework import serializers

from tracksub.users.models import User


class UserSerializer(serializers.ModelSerializer[User]):
    """The signed-in user's profile. Email doubles as the login name."""

    isStaff = serializers.BooleanField(source="is_staff", read_only=True)  # noqa: N815
    createdAt = serializers.DateTimeField(  # noqa: N815
        source="date_joined",
        read_only=True,
    )

    class Meta:
        model = User
        fields = ["id", "email", "name", "isStaff", "createdAt"]
        read_only_fields = ["id"]

    def update(self, instance, validated_data):
        if "email" in validated_data:
            validated_data["username"] = validated_data["email"]
        return super().update(instance, validated_data)


class RegisterSerializer(serializers.ModelSerializer[User]):
    password = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ["email", "password", "name"]
        extra_kwargs = {"name": {"required": True}}

    def validate_password(self, value):
        password_validation.validate_password(value)
        return value

    def create(self, validated_data):
        return User.objects.create_user(
            username=validated_data["email"],
            email=validated_data["email"],
            password=validated_data["password"],
            name=validated_data["name"],
        )


class PasswordChangeSerializer(serializers.Serializer):
    currentPassword = serializers.CharField(write_only=True)  # noqa: N815
    newPassword = serializers.CharField(write_only=True)  # noqa: N815

    def validate_currentPassword(self, value):  # noqa: N802
        if not self.context["request"].user.check_password(value):
            raise serializers.ValidationError("Current password is incorrect.")
        return value

    def validate_newPassword(self, value):  # noqa: N802
        password_validation.validate_password(value, self.context["request"].user)
        return value


class AccountDeleteSerializer(serializers.Serializer):
    password = serializers.CharField(write_only=True)

    def validate_password(self, value):
        if not self.context["request"].user.check_password(value):
            raise serializers.ValidationError("Password is incorrect.")
        return value
