"""
Serializers for accounts. Password hashes are never serialized.
"""
from rest_framework import serializers

from .models import User


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'name', 'email', 'role', 'created_at', 'updated_at']
        read_only_fields = fields


class RegisterSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    password = serializers.CharField(min_length=6, write_only=True, trim_whitespace=False)


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class ProfileUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150, required=False)
    email = serializers.EmailField(required=False)
    password = serializers.CharField(min_length=6, required=False, write_only=True, trim_whitespace=False)


class AdminUserSerializer(ProfileUpdateSerializer):
    """Admin create/update body; on create name, email and password are required."""
    role = serializers.ChoiceField(choices=User.Role.choices, required=False)

    def validate(self, attrs):
        if self.context.get('creating'):
            missing = [f for f in ('name', 'email', 'password') if not attrs.get(f)]
            if missing:
                raise serializers.ValidationError(
                    'Name, email, and password are required'
                )
        return attrs
