"""
Management command to mirror live positions from Traccar.

Holds a WebSocket open to Traccar's /api/socket and writes position and
status updates onto local Device rows. Runs until interrupted; dropped
connections are retried every TRACCAR_RECONNECT_SECONDS.

Usage:
    python manage.py sync_positions
    python manage.py sync_positions --max-connections 1
"""

from django.core.management.base import BaseCommand

from tracksub.devices.positions import PositionSyncService


class Command(BaseCommand):
    help = "Sync device positions and status from the Traccar WebSocket feed."

    def add_arguments(self, parser):
        parser.add_argument(
            "--max-connections",
            type=int,
            default=None,
            help="Stop after this many connection attempts (default: run forever)",
        )

    def handle(self, *args, **options):
        service = PositionSyncService()
        self.stdout.write(f"Listening on {service.url}")
        try:
            service.run_forever(max_connections=options["max_connections"])
        except KeyboardInterrupt:
            service.stop()
        self.stdout.write(self.style.SUCCESS("Position sync stopped."))
