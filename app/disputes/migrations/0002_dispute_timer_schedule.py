"""
Register the periodic backstop for dispute timers.

process_expired_evidence_windows runs every 15 minutes and re-queues
expired evidence windows, stuck automated reviews and unsettled
resolutions.
"""

from django.db import migrations

TASK_NAME = "Process Expired Evidence Windows"


def create_periodic_task(apps, schema_editor):
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name=TASK_NAME,
        defaults={
            "task": "disputes.tasks.process_expired_evidence_windows",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Advances disputes past their evidence deadline and re-queues "
                "stuck reviews and unsettled resolutions."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")
    PeriodicTask.objects.filter(name=TASK_NAME).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("disputes", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
