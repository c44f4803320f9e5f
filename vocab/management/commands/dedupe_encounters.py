from django.core.management.base import BaseCommand, CommandError

from vocab.exceptions import SweepAborted, SweepAlreadyRunning
from vocab.services import deduplicate_encounters


class Command(BaseCommand):
    help = "Delete encounters repeating an earlier (sense, source url, context) row; the earliest row is kept."

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true",
                            help="Only count the duplicates, delete nothing.")
        parser.add_argument("--chunk-size", type=int, default=1000,
                            help="Rows fetched per round trip while scanning.")

    def handle(self, *args, **options):
        if options["chunk_size"] < 1:
            raise CommandError("--chunk-size must be >= 1.")
        try:
            n = deduplicate_encounters(chunk_size=options["chunk_size"], dry_run=options["dry_run"])
        except SweepAlreadyRunning as e:
            raise CommandError(str(e))
        except SweepAborted as e:
            if e.group is None:
                raise CommandError(f"Aborted while scanning encounters: {e.__cause__}")
            raise CommandError(f"Aborted on group {e.group!r} after deleting {e.deleted} duplicate encounters.")

        if options["dry_run"]:
            self.stdout.write(f"{n} duplicate encounters would be deleted.")
        else:
            self.stdout.write(self.style.SUCCESS(f"Successfully deleted {n} duplicate encounters."))
