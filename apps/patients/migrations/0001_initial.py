from django.db import migrations, models
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Patient',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True, verbose_name='Handle')),
                ('given_name', models.CharField(blank=True, max_length=100, verbose_name='Given Name')),
                ('family_name', models.CharField(blank=True, max_length=100, verbose_name='Family Name')),
                ('voided', models.BooleanField(default=False, verbose_name='Voided')),
                ('date_created', models.DateTimeField(auto_now_add=True, verbose_name='Date Created')),
            ],
            options={
                'verbose_name': 'Patient',
                'verbose_name_plural': 'Patients',
                'db_table': 'patient',
                'ordering': ['-date_created'],
            },
        ),
    ]
