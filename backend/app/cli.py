"""CLI tools for scheduled jobs.

Example (crontab, every five minutes):
    */5 * * * * cd /srv/refill/backend && python -m app.cli process-scheduled
"""
import logging

import click

from app.database import SessionLocal
from app.services.scheduled_notifications import process_due_notifications


@click.group()
def cli():
    """Refill Referrals CLI tools."""
    pass


@cli.command("process-scheduled")
@click.option("--verbose", is_flag=True, help="Log each processed entry")
def process_scheduled(verbose: bool):
    """Send every due scheduled notification once."""
    logging.basicConfig(level=logging.INFO if verbose else logging.WARNING)

    db = SessionLocal()
    try:
        result = process_due_notifications(db)
    finally:
        db.close()

    click.echo(f"Processed {result.processed_count} notifications, {result.error_count} errors")
    if result.error_count:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
