from django.core.management.base import BaseCommand
from django.utils import timezone

from portal.services import dashboard
from portal.services.realtime import broadcast


class Command(BaseCommand):
    help = "Recompute the cached dashboard statistics and notify connected admins."

    def handle(self, *args, **options):
        now = timezone.now()
        stats = dashboard.get_stats(refresh=True)
        broadcast("dashboard.refreshed", {"ts": now.isoformat(), "stats": stats})
        self.stdout.write(self.style.SUCCESS(f"Dashboard stats refreshed at {now}"))
