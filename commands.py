"""
Периодические задачи онлайн-классов (запуск из cron/планировщика):
  flask --app app online-classes sweep-expired
  flask --app app online-classes extend-horizons --weeks 4
  flask --app app online-classes send-reminders --lead 15
"""
from __future__ import annotations
import logging

import click
from flask import current_app
from flask.cli import AppGroup

from blueprints.activations import services as activations
from blueprints.scheduler import services as scheduler

log = logging.getLogger(__name__)

online_classes_cli = AppGroup("online-classes", help="Online-class maintenance jobs.")


@online_classes_cli.command("sweep-expired")
def sweep_expired_cmd():
    """Перевести истёкшие активации в expired."""
    count = activations.sweep_expired()
    click.echo(f"expired: {count}")


@online_classes_cli.command("extend-horizons")
@click.option("--weeks", type=click.IntRange(min=1), default=None,
              help="Горизонт в неделях (по умолчанию ONLINE_CLASS_WEEKS_AHEAD).")
def extend_horizons_cmd(weeks):
    """Догенерировать сессии всех активных правил."""
    created = scheduler.extend_all_horizons(weeks_ahead=weeks)
    total = sum(created.values())
    log.info("horizons extended", extra={"event": "horizons_extended", "count": total})
    click.echo(f"rules: {len(created)}, sessions created: {total}")


@online_classes_cli.command("send-reminders")
@click.option("--lead", type=click.IntRange(min=1), default=None,
              help="За сколько минут до начала (по умолчанию ONLINE_CLASS_REMINDER_LEAD_MINUTES).")
def send_reminders_cmd(lead):
    lead = lead or int(current_app.config.get("ONLINE_CLASS_REMINDER_LEAD_MINUTES", 15))
    reminded = scheduler.send_starting_reminders(lead_minutes=lead)
    click.echo(f"reminders: {len(reminded)}")
