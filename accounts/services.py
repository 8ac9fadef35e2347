"""
Account Service Layer - registration, login and user management.
"""
import logging
from typing import Dict, Tuple

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.exceptions import Conflict, NotFound, Unauthorized, ValidationError
from .credentials import Identity, hash_password, issue_token, verify_password
from .models import User

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return User.objects.normalize_email(email.strip())


def _email_taken(email: str, exclude_id=None) -> bool:
    queryset = User.objects.filter(email__iexact=email)
    if exclude_id is not None:
        queryset = queryset.exclude(id=exclude_id)
    return queryset.exists()


def _create(name: str, email: str, password: str, role: str) -> User:
    try:
        with transaction.atomic():
            return User.objects.create(
                name=name,
                email=email,
                password=hash_password(password),
                role=role,
            )
    except IntegrityError as e:
        raise Conflict('User with this email already exists') from e


def register_user(name: str, email: str, password: str) -> Tuple[User, str]:
    """
    Self-service sign-up. New accounts always get the USER role.

    Raises:
        ValidationError: Email already registered (no row is created)
    """
    email = _normalize_email(email)
    if _email_taken(email):
        raise ValidationError('Email already in use')
    user = _create(name, email, password, User.Role.USER)
    logger.info(f"Registered user #{user.id} ({user.email})")
    return user, issue_token(Identity.from_user(user))


def login(email: str, password: str) -> Tuple[User, str]:
    """
    Raises:
        Unauthorized: Unknown email, wrong password or inactive account
    """
    user = User.objects.filter(email__iexact=_normalize_email(email)).first()
    if user is None:
        # Hash anyway so unknown emails take as long as wrong passwords
        hash_password(password)
        raise Unauthorized('Invalid email or password')
    if not user.is_active or not verify_password(password, user.password):
        raise Unauthorized('Invalid email or password')

    User.objects.filter(id=user.id).update(last_login=timezone.now())
    logger.info(f"User #{user.id} logged in")
    return user, issue_token(Identity.from_user(user))


def get_user(user_id: int) -> User:
    try:
        return User.objects.get(id=user_id)
    except User.DoesNotExist:
        raise NotFound(f"User {user_id} not found")


def get_active_user(identity: Identity) -> User:
    """
    The account behind a verified token.

    Raises:
        Unauthorized: The account was deleted or deactivated after the token was issued
    """
    user = User.objects.filter(id=identity.id, is_active=True).first()
    if user is None:
        logger.warning(f"Token for user #{identity.id} no longer maps to an active account")
        raise Unauthorized('Unauthorized: Account is no longer active')
    return user


def _apply_changes(user: User, changes: Dict) -> User:
    update_fields = ['updated_at']
    if changes.get('name'):
        user.name = changes['name']
        update_fields.append('name')
    if changes.get('email'):
        email = _normalize_email(changes['email'])
        if _email_taken(email, exclude_id=user.id):
            raise Conflict('Email is already in use')
        user.email = email
        update_fields.append('email')
    if changes.get('password'):
        user.password = hash_password(changes['password'])
        update_fields.append('password')
    if changes.get('role'):
        user.role = changes['role']
        update_fields.append('role')

    try:
        with transaction.atomic():
            user.save(update_fields=update_fields)
    except IntegrityError as e:
        raise Conflict('Email is already in use') from e
    return user


def update_profile(identity: Identity, changes: Dict) -> User:
    """Self-service edit of name, email and password. Role is not editable here."""
    changes = {k: v for k, v in changes.items() if k != 'role'}
    user = _apply_changes(get_user(identity.id), changes)
    logger.info(f"User #{user.id} updated their profile")
    return user


def create_user(actor: Identity, name: str, email: str, password: str, role: str = User.Role.USER) -> User:
    email = _normalize_email(email)
    if _email_taken(email):
        raise Conflict('User with this email already exists')
    user = _create(name, email, password, role)
    logger.info(f"Admin {actor.id} created user #{user.id} with role {user.role}")
    return user


def update_user(actor: Identity, user_id: int, changes: Dict) -> User:
    """
    Raises:
        ValidationError: Admin tried to change their own role
    """
    user = get_user(user_id)
    role = changes.get('role')
    if user.id == actor.id and role and role != user.role:
        raise ValidationError('You cannot change your own role')
    user = _apply_changes(user, changes)
    logger.info(f"Admin {actor.id} updated user #{user.id}")
    return user


def delete_user(actor: Identity, user_id: int) -> None:
    if user_id == actor.id:
        raise ValidationError('You cannot delete your own account')
    user = get_user(user_id)
    if user.orders.exists():
        raise Conflict('Cannot delete user: they have placed orders')
    user.delete()
    logger.info(f"Admin {actor.id} deleted user #{user_id}")
