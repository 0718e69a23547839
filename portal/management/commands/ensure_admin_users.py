from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from portal.services import otp

User = get_user_model()

ADMIN_SET = [
    ("officer@consulate.local", "Consular", "Officer", "admin"),
    ("superadmin@consulate.local", "Super", "Admin", "super_admin"),
]


class Command(BaseCommand):
    help = "Ensure the back office accounts exist with a known password (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--password", default="ChangeMe!2024")
        parser.add_argument("--with-2fa", action="store_true",
                            help="Enable TOTP and print the provisioning URI for each account.")

    def handle(self, *args, **opts):
        password = opts["password"]
        for email, first, last, role in ADMIN_SET:
            user, created = User.objects.get_or_create(
                username=email,
                defaults={"email": email, "first_name": first, "last_name": last, "role": role,
                          "status": "active", "is_verified": True, "is_staff": True},
            )
            if not created:
                # Reset state so a locked or demoted account can log in again
                user.role = role
                user.status = "active"
                user.is_active = True
                user.failed_attempts = 0
            user.set_password(password)
            if opts["with_2fa"]:
                if not user.otp_secret:
                    user.otp_secret = otp.generate_secret()
                user.two_factor_enabled = True
            user.save()
            self.stdout.write(self.style.SUCCESS(f"ok: {email} ({role}){' created' if created else ''}"))
            if user.two_factor_enabled and user.otp_secret:
                self.stdout.write(f"   otp: {otp.provisioning_uri(user.otp_secret, email)}")
        self.stdout.write(self.style.SUCCESS("All admin users ensured."))
