from django.db import migrations, models
from django.db.models import Max
import django.db.models.functions.comparison


def merge_fallback_generators(apps, schema_editor):
    """Keep the oldest fallback row, carrying the highest sequence seen."""
    ReceiptNumberGenerator = apps.get_model('billing', 'ReceiptNumberGenerator')
    fallbacks = ReceiptNumberGenerator.objects.filter(cash_point__isnull=True).order_by('pk')
    keeper = fallbacks.first()
    if keeper is None:
        return
    highest = fallbacks.aggregate(highest=Max('next_sequence'))['highest']
    fallbacks.exclude(pk=keeper.pk).delete()
    ReceiptNumberGenerator.objects.filter(pk=keeper.pk).update(next_sequence=highest)


class Migration(migrations.Migration):

    dependencies = [
        ('billing', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(merge_fallback_generators, migrations.RunPython.noop),
        migrations.AddConstraint(
            model_name='receiptnumbergenerator',
            constraint=models.UniqueConstraint(
                django.db.models.functions.comparison.Coalesce(
                    'cash_point', models.Value(0), output_field=models.BigIntegerField()
                ),
                name='one_receipt_generator_per_scope'
            ),
        ),
    ]
