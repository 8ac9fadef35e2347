"""
Account API Views.

Implements:
- POST /auth/register/ - Sign up, returns user + bearer token
- POST /auth/login/ - Sign in, returns user + bearer token
- GET/PATCH /auth/me/ - Current user
- GET/POST /users/ - User management (admin)
- GET/PUT/PATCH/DELETE /users/{id}/ - User management (admin)
"""
from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.access_control import require_admin, require_auth
from core.pagination import StorefrontPagination
from core.rate_limiting import rate_limit
from . import services
from .models import User
from .serializers import (
    AdminUserSerializer,
    LoginSerializer,
    ProfileUpdateSerializer,
    RegisterSerializer,
    UserSerializer,
)


class RegisterView(APIView):

    @rate_limit(max_requests=10, window_seconds=60)
    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user, token = services.register_user(**serializer.validated_data)
        return Response(
            {
                'message': 'Registration successful',
                'user': UserSerializer(user).data,
                'token': token,
            },
            status=status.HTTP_201_CREATED,
        )


class LoginView(APIView):

    @rate_limit(max_requests=10, window_seconds=60)
    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user, token = services.login(**serializer.validated_data)
        return Response({
            'message': 'Login successful',
            'user': UserSerializer(user).data,
            'token': token,
        })


class MeView(APIView):

    @require_auth
    def get(self, request, identity):
        return Response({'user': UserSerializer(services.get_user(identity.id)).data})

    @require_auth
    def patch(self, request, identity):
        serializer = ProfileUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = services.update_profile(identity, serializer.validated_data)
        return Response({'user': UserSerializer(user).data})


class UserListCreateView(generics.GenericAPIView):
    """
    GET: All users, newest first (admin)
    POST: Create a user with any role (admin)
    """
    pagination_class = StorefrontPagination

    @require_admin
    def get(self, request, identity):
        page = self.paginate_queryset(User.objects.order_by('-created_at', '-id'))
        return self.get_paginated_response(UserSerializer(page, many=True).data)

    @require_admin
    def post(self, request, identity):
        serializer = AdminUserSerializer(data=request.data, context={'creating': True})
        serializer.is_valid(raise_exception=True)
        user = services.create_user(identity, **serializer.validated_data)
        return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


class UserDetailView(APIView):

    @require_admin
    def get(self, request, identity, pk):
        return Response(UserSerializer(services.get_user(pk)).data)

    @require_admin
    def patch(self, request, identity, pk):
        serializer = AdminUserSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = services.update_user(identity, pk, serializer.validated_data)
        return Response(UserSerializer(user).data)

    put = patch

    @require_admin
    def delete(self, request, identity, pk):
        services.delete_user(identity, pk)
        return Response({'message': 'User deleted successfully'})
