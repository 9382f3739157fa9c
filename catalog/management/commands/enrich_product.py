"""
Management command to run the enrichment pipeline from the shell.

Usage:
    python manage.py enrich_product --name "Generic Drill"
    python manage.py enrich_product --model-number GSP180 --brand Bosch
    python manage.py enrich_product --model-number DCB205 --in-memory
    python manage.py enrich_product --reprocess 12 --force
"""

import json

from django.core.management.base import BaseCommand, CommandError

from catalog.exceptions import NotFoundError, ValidationError
from catalog.records import EnrichmentStatus, ProductInput
from catalog.services.orchestrator import build_orchestrator, get_orchestrator
from catalog.storage import InMemoryProductStorage
from catalog.validators import validate_product_input


class Command(BaseCommand):
    help = "Enrich a product and print the resulting record as JSON"

    def add_arguments(self, parser):
        parser.add_argument("--name", type=str, help="Product name")
        parser.add_argument("--model-number", type=str, help="Manufacturer model number")
        parser.add_argument("--brand", type=str, help="Brand name")
        parser.add_argument("--category", type=str, help="Product category")
        parser.add_argument(
            "--keyword",
            action="append",
            default=[],
            help="Seed SEO keyword (repeatable)",
        )
        parser.add_argument(
            "--reprocess",
            type=int,
            metavar="ID",
            help="Reprocess an existing product instead of enriching new input",
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help="With --reprocess, also rerun completed products",
        )
        parser.add_argument(
            "--in-memory",
            action="store_true",
            help="Use in-memory storage instead of the database (nothing is saved)",
        )

    def handle(self, *args, **options):
        if options["in_memory"]:
            orchestrator = build_orchestrator(storage=InMemoryProductStorage())
        else:
            orchestrator = get_orchestrator()

        if options["reprocess"] is not None:
            if options["in_memory"]:
                raise CommandError("--reprocess needs database storage")
            try:
                result = orchestrator.reprocess(options["reprocess"], force=options["force"])
            except NotFoundError as e:
                raise CommandError(str(e))
        else:
            payload = {
                "name": options["name"],
                "model_number": options["model_number"],
                "brand": options["brand"],
                "category": options["category"],
                "seo_keywords": options["keyword"],
            }
            try:
                cleaned = validate_product_input(payload)
            except ValidationError as e:
                raise CommandError(f"Invalid input: {e.errors}")
            result = orchestrator.process(ProductInput.from_dict(cleaned))

        self.stdout.write(json.dumps(result.to_dict(), indent=2, default=str))

        if result.skipped:
            self.stdout.write(self.style.WARNING(
                f"Product {result.record.id} is already completed; use --force to rerun"
            ))
        elif result.status == EnrichmentStatus.FAILED:
            self.stdout.write(self.style.ERROR(f"Enrichment failed: {result.error}"))
        else:
            self.stdout.write(self.style.SUCCESS(
                f"Product {result.record.id} {result.status} "
                f"({result.record.completion_percentage()}% complete)"
            ))
