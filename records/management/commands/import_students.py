"""Import students from a CSV file."""
from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from records.services.students import import_students, read_student_csv


class Command(BaseCommand):
    help = "Import students from a CSV file with studentNo, firstName, lastName, email, birthDate and course columns"

    def add_arguments(self, parser):
        parser.add_argument("csv_path", help="Path to the CSV file")

    def handle(self, *args, **options):
        try:
            with open(options["csv_path"], encoding="utf-8-sig", newline="") as handle:
                rows = read_student_csv(handle)
        except OSError as exc:
            raise CommandError(f"Cannot read {options['csv_path']}: {exc}") from exc

        result = import_students(rows)
        for error in result["errors"]:
            self.stdout.write(self.style.ERROR(f"Row {error['row']} ({error['studentNo'] or '-'}): {error['error']}"))
        self.stdout.write(
            self.style.SUCCESS(f"Imported {result['success']} student(s); {result['failed']} row(s) failed.")
        )
