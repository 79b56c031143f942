"""
Management command to remove orders whose escrow funding never completed.
An order is only ever left PENDING without escrow when the request died
between creating the order and funding it.

Usage:
    python manage.py cleanup_unfunded_orders --dry-run  # Preview
    python manage.py cleanup_unfunded_orders             # Execute
"""
import logging
from datetime import timedelta
from django.conf import settings
from django.core.management.base import BaseCommand
from django.db import DatabaseError, transaction
from django.utils import timezone
from apps.orders.models import Order

logger = logging.getLogger('orders')


class Command(BaseCommand):
    help = 'Delete PENDING orders that have no escrow after the grace period'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Preview deletions without actually deleting',
        )
        parser.add_argument(
            '--minutes',
            type=int,
            default=settings.MARKETPLACE_UNFUNDED_ORDER_GRACE_MINUTES,
            help='Minimum order age in minutes (default: MARKETPLACE_UNFUNDED_ORDER_GRACE_MINUTES)',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        minutes = options['minutes']

        cutoff = timezone.now() - timedelta(minutes=minutes)

        unfunded = Order.objects.filter(
            status=Order.PENDING,
            escrow__isnull=True,
            created_at__lt=cutoff
        )

        count = unfunded.count()

        if dry_run:
            self.stdout.write(
                self.style.WARNING(
                    f'DRY RUN: Would delete {count} unfunded orders older than {minutes} minutes'
                )
            )
            for order in unfunded[:10]:
                self.stdout.write(f'  - {order.id} (created {order.created_at})')
            if count > 10:
                self.stdout.write(f'  ... and {count - 10} more')
            return

        self.stdout.write(f'Deleting {count} unfunded orders...')

        deleted_count = 0
        for order_id in unfunded.values_list('id', flat=True):
            try:
                if self._delete_if_unfunded(order_id):
                    deleted_count += 1
            except DatabaseError as e:
                logger.exception(f"Cleanup failed for order {order_id}")
                self.stderr.write(
                    self.style.ERROR(f'Error deleting order {order_id}: {e}')
                )

        self.stdout.write(
            self.style.SUCCESS(f'Successfully deleted {deleted_count} unfunded orders')
        )

    @staticmethod
    @transaction.atomic
    def _delete_if_unfunded(order_id):
        # Re-check under the lock: funding may have landed since the scan
        order = Order.objects.select_for_update().filter(id=order_id).first()
        if order is None or order.status != Order.PENDING or order.get_escrow() is not None:
            return False
        order.delete()
        logger.warning(f"Deleted unfunded order {order_id}")
        return True
