from decimal import Decimal

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='BillableService',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255, verbose_name='Name')),
                ('short_name', models.CharField(blank=True, max_length=50, verbose_name='Short Name')),
                ('description', models.TextField(blank=True, verbose_name='Description')),
                ('retired', models.BooleanField(default=False, verbose_name='Retired')),
                ('date_created', models.DateTimeField(auto_now_add=True, verbose_name='Date Created')),
            ],
            options={
                'verbose_name': 'Billable Service',
                'verbose_name_plural': 'Billable Services',
                'db_table': 'catalog_billable_service',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='StockItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=100, unique=True, verbose_name='Code')),
                ('name', models.CharField(max_length=255, verbose_name='Name')),
                ('description', models.TextField(blank=True, verbose_name='Description')),
                ('department', models.CharField(blank=True, max_length=100, verbose_name='Department')),
                ('retired', models.BooleanField(default=False, verbose_name='Retired')),
                ('date_created', models.DateTimeField(auto_now_add=True, verbose_name='Date Created')),
            ],
            options={
                'verbose_name': 'Stock Item',
                'verbose_name_plural': 'Stock Items',
                'db_table': 'catalog_stock_item',
                'ordering': ['name'],
                'indexes': [
                    models.Index(fields=['code'], name='catalog_sto_code_5d1f2a_idx'),
                    models.Index(fields=['name'], name='catalog_sto_name_8c3b7e_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ItemPrice',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, verbose_name='Tier Name')),
                ('price', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Price')),
                ('voided', models.BooleanField(default=False, verbose_name='Voided')),
                ('date_created', models.DateTimeField(auto_now_add=True, verbose_name='Date Created')),
                ('item', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='prices',
                    to='catalog.stockitem',
                    verbose_name='Stock Item'
                )),
                ('service', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='prices',
                    to='catalog.billableservice',
                    verbose_name='Service'
                )),
            ],
            options={
                'verbose_name': 'Item Price',
                'verbose_name_plural': 'Item Prices',
                'db_table': 'catalog_item_price',
                'ordering': ['date_created'],
                'constraints': [
                    models.CheckConstraint(
                        check=(
                            models.Q(('item__isnull', True), ('service__isnull', False))
                            | models.Q(('item__isnull', False), ('service__isnull', True))
                        ),
                        name='item_price_exactly_one_target'
                    ),
                    models.CheckConstraint(
                        check=models.Q(('price__gte', Decimal('0'))),
                        name='item_price_non_negative'
                    ),
                ],
            },
        ),
    ]
