import json

from django.core.management.base import BaseCommand, CommandError

from marketplace.services.integrity import run_integrity_check


class Command(BaseCommand):
    help = "Scan recent orders, grants, deliverables and webhook events for drift. Read-only; alerts on findings."

    def add_arguments(self, parser):
        parser.add_argument("--lookback-days", type=int, default=None, help="Window to scan (default: CRON_LOOKBACK_DAYS).")
        parser.add_argument(
            "--stale-minutes",
            type=int,
            default=None,
            help="Age after which a `received` webhook event counts as stuck (default: SEEDBAY_STALE_EVENT_MINUTES).",
        )
        parser.add_argument("--json", action="store_true", help="Print the full report as JSON.")
        parser.add_argument("--no-alert", action="store_true", help="Report only; do not send alerts.")

    def handle(self, *args, **opts):
        if opts["lookback_days"] is not None and opts["lookback_days"] < 1:
            raise CommandError("--lookback-days must be at least 1.")

        report = run_integrity_check(
            lookback_days=opts["lookback_days"],
            stale_after_minutes=opts["stale_minutes"],
            alert=not opts["no_alert"],
        )

        if opts["json"]:
            self.stdout.write(json.dumps(report.as_dict(), indent=2))
            return

        for name, count in report.counts.items():
            line = f"{name}: {count}"
            self.stdout.write(self.style.WARNING(line) if count else line)

        if report.has_issues:
            self.stdout.write(self.style.WARNING(f"Issues found (alerted={report.alerted})."))
        else:
            self.stdout.write(self.style.SUCCESS(f"No drift in the last {report.lookback_days} days."))
