"""
Create an admin account, or promote an existing user to admin.

Usage:
    python manage.py create_admin --email admin@example.com --password s3cret
"""
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError


class Command(BaseCommand):
    help = 'Create or promote an admin user'

    def add_arguments(self, parser):
        parser.add_argument('--email', required=True)
        parser.add_argument('--password', help='Required when creating a new account')
        parser.add_argument('--name', default='Admin User')

    def handle(self, *args, **options):
        User = get_user_model()
        email = User.objects.normalize_email(options['email'])

        user = User.objects.filter(email=email).first()
        if user is not None:
            if user.role == User.Role.ADMIN:
                self.stdout.write(f'{email} is already an admin')
                return
            user.role = User.Role.ADMIN
            user.save(update_fields=['role', 'updated_at'])
            self.stdout.write(self.style.SUCCESS(f'Promoted {email} to admin'))
            return

        if not options['password']:
            raise CommandError('--password is required to create a new admin')
        user = User.objects.create_superuser(email, options['name'], password=options['password'])
        self.stdout.write(self.style.SUCCESS(f'Created admin {email} (id {user.id})'))
