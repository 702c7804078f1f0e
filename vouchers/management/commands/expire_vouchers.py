"""
Django management command to expire lapsed vouchers
Run with: python manage.py expire_vouchers [--dry-run]
"""
from django.core.management.base import BaseCommand, CommandError

from vouchers.tasks import expire_vouchers


class Command(BaseCommand):
    help = 'Expire vouchers whose activation, purchase or usage window has lapsed'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List vouchers that would expire without changing anything',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        self.stdout.write('[ExpireVouchers] Checking for expired vouchers...')

        result = expire_vouchers(dry_run=dry_run)

        if not result['success']:
            raise CommandError(f'Voucher expiry failed: {result.get("error", "Unknown error")}')

        if dry_run:
            for match in result['matches']:
                self.stdout.write(
                    f'  {match["reference"]} ({match["id"]}) -> {match["reason"]}'
                )
            self.stdout.write(
                self.style.WARNING(
                    f'[ExpireVouchers] Dry run: {result["total_matched"]} vouchers would expire'
                )
            )
            return

        self.stdout.write(
            self.style.SUCCESS(
                f'✓ Expired {result["processed"]} of {result["total_matched"]} vouchers'
            )
        )
        for reason, count in result['by_reason'].items():
            if count:
                self.stdout.write(f'  {reason}: {count}')
        if result['removed_on_router']:
            self.stdout.write(
                f'  Removed {result["removed_on_router"]} hotspot users from routers'
            )
        if result['failed'] > 0:
            self.stdout.write(
                self.style.WARNING(f'⚠ Failed to expire {result["failed"]} vouchers')
            )

        self.stdout.write('[ExpireVouchers] Done!')
