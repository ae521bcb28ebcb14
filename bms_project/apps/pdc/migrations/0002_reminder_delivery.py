from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('pdc', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='reminderfired',
            name='delivered_at',
            field=models.DateTimeField(blank=True, null=True),
        ),
        migrations.AddField(
            model_name='reminderfired',
            name='last_error',
            field=models.CharField(blank=True, max_length=255),
        ),
        migrations.RenameField(
            model_name='schedulerrun',
            old_name='reminders_sent',
            new_name='reminders_queued',
        ),
        migrations.AddField(
            model_name='schedulerrun',
            name='redelivered',
            field=models.PositiveIntegerField(default=0),
        ),
    ]
