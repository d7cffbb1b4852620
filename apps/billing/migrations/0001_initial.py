from decimal import Decimal

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import uuid


def audit_fields():
    return [
        ('date_created', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Date Created')),
        ('voided', models.BooleanField(default=False, verbose_name='Voided')),
        ('date_voided', models.DateTimeField(blank=True, null=True, verbose_name='Date Voided')),
        ('void_reason', models.CharField(blank=True, max_length=255, null=True, verbose_name='Void Reason')),
        ('creator', models.ForeignKey(
            blank=True,
            null=True,
            on_delete=django.db.models.deletion.PROTECT,
            related_name='+',
            to=settings.AUTH_USER_MODEL,
            verbose_name='Creator'
        )),
        ('voided_by', models.ForeignKey(
            blank=True,
            null=True,
            on_delete=django.db.models.deletion.PROTECT,
            related_name='+',
            to=settings.AUTH_USER_MODEL,
            verbose_name='Voided By'
        )),
    ]


def changed_fields():
    return [
        ('date_changed', models.DateTimeField(blank=True, null=True, verbose_name='Date Changed')),
        ('changed_by', models.ForeignKey(
            blank=True,
            null=True,
            on_delete=django.db.models.deletion.PROTECT,
            related_name='+',
            to=settings.AUTH_USER_MODEL,
            verbose_name='Changed By'
        )),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('patients', '0001_initial'),
        ('catalog', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='CashPoint',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255, unique=True, verbose_name='Name')),
                ('description', models.TextField(blank=True, verbose_name='Description')),
                ('receipt_prefix', models.CharField(blank=True, max_length=20, verbose_name='Receipt Prefix')),
                ('retired', models.BooleanField(default=False, verbose_name='Retired')),
                ('date_created', models.DateTimeField(auto_now_add=True, verbose_name='Date Created')),
            ],
            options={
                'verbose_name': 'Cash Point',
                'verbose_name_plural': 'Cash Points',
                'db_table': 'billing_cash_point',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='PaymentMode',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, unique=True, verbose_name='Name')),
                ('description', models.TextField(blank=True, verbose_name='Description')),
                ('sort_order', models.PositiveIntegerField(default=0, verbose_name='Sort Order')),
                ('retired', models.BooleanField(default=False, verbose_name='Retired')),
            ],
            options={
                'verbose_name': 'Payment Mode',
                'verbose_name_plural': 'Payment Modes',
                'db_table': 'billing_payment_mode',
                'ordering': ['sort_order', 'name'],
            },
        ),
        migrations.CreateModel(
            name='PaymentModeAttributeType',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, verbose_name='Name')),
                ('format', models.CharField(blank=True, max_length=100, verbose_name='Format')),
                ('required', models.BooleanField(default=False, verbose_name='Required')),
                ('attribute_order', models.PositiveIntegerField(default=0, verbose_name='Order')),
                ('retired', models.BooleanField(default=False, verbose_name='Retired')),
                ('payment_mode', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='attribute_types',
                    to='billing.paymentmode',
                    verbose_name='Payment Mode'
                )),
            ],
            options={
                'verbose_name': 'Payment Mode Attribute Type',
                'verbose_name_plural': 'Payment Mode Attribute Types',
                'db_table': 'billing_payment_mode_attribute_type',
                'ordering': ['attribute_order', 'name'],
                'constraints': [
                    models.UniqueConstraint(fields=('payment_mode', 'name'), name='uniq_attribute_type_per_mode'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ReceiptNumberGenerator',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('cashier_prefix', models.CharField(blank=True, max_length=20, verbose_name='Cashier Prefix')),
                ('padding', models.PositiveSmallIntegerField(default=6, verbose_name='Sequence Padding')),
                ('next_sequence', models.PositiveBigIntegerField(default=1, verbose_name='Next Sequence')),
                ('cash_point', models.OneToOneField(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='receipt_generator',
                    to='billing.cashpoint',
                    verbose_name='Cash Point'
                )),
            ],
            options={
                'verbose_name': 'Receipt Number Generator',
                'verbose_name_plural': 'Receipt Number Generators',
                'db_table': 'billing_receipt_number_generator',
            },
        ),
        migrations.CreateModel(
            name='Bill',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *audit_fields(),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True, verbose_name='Correlation ID')),
                ('status', models.CharField(
                    choices=[
                        ('PENDING', 'Pending'),
                        ('PARTIALLY_PAID', 'Partially Paid'),
                        ('PAID', 'Paid')
                    ],
                    db_index=True,
                    default='PENDING',
                    max_length=20,
                    verbose_name='Status'
                )),
                ('receipt_number', models.CharField(blank=True, max_length=255, null=True, unique=True, verbose_name='Receipt Number')),
                ('receipt_printed', models.BooleanField(default=False, verbose_name='Receipt Printed')),
                ('version', models.PositiveIntegerField(default=0, verbose_name='Version')),
                *changed_fields(),
                ('cash_point', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='bills',
                    to='billing.cashpoint',
                    verbose_name='Cash Point'
                )),
                ('patient', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='bills',
                    to='patients.patient',
                    verbose_name='Patient'
                )),
                ('provider', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='+',
                    to=settings.AUTH_USER_MODEL,
                    verbose_name='Provider'
                )),
            ],
            options={
                'verbose_name': 'Bill',
                'verbose_name_plural': 'Bills',
                'db_table': 'billing_bill',
                'ordering': ['-date_created', '-id'],
                'indexes': [
                    models.Index(fields=['patient', 'voided'], name='billing_bil_patient_7e2c1a_idx'),
                    models.Index(fields=['status'], name='billing_bil_status_3f9d0b_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BillLineItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *audit_fields(),
                ('item_type', models.CharField(
                    choices=[('SERVICE', 'Service'), ('ITEM', 'Stock Item')],
                    max_length=10,
                    verbose_name='Item Type'
                )),
                ('price', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Unit Price')),
                ('price_name', models.CharField(blank=True, max_length=255, verbose_name='Price Name')),
                ('quantity', models.PositiveIntegerField(verbose_name='Quantity')),
                ('line_item_order', models.PositiveIntegerField(default=1, verbose_name='Order')),
                ('payment_status', models.CharField(
                    choices=[('PENDING', 'Pending'), ('PAID', 'Paid')],
                    default='PENDING',
                    max_length=10,
                    verbose_name='Payment Status'
                )),
                ('order_id', models.BigIntegerField(blank=True, null=True, verbose_name='Source Order')),
                *changed_fields(),
                ('bill', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='line_items',
                    to='billing.bill',
                    verbose_name='Bill'
                )),
                ('item', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='+',
                    to='catalog.stockitem',
                    verbose_name='Stock Item'
                )),
                ('price_tier', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='+',
                    to='catalog.itemprice',
                    verbose_name='Price Tier'
                )),
                ('service', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='+',
                    to='catalog.billableservice',
                    verbose_name='Service'
                )),
            ],
            options={
                'verbose_name': 'Bill Line Item',
                'verbose_name_plural': 'Bill Line Items',
                'db_table': 'billing_line_item',
                'ordering': ['line_item_order', 'id'],
                'constraints': [
                    models.CheckConstraint(
                        check=(
                            models.Q(('item__isnull', True), ('item_type', 'SERVICE'), ('service__isnull', False))
                            | models.Q(('item__isnull', False), ('item_type', 'ITEM'), ('service__isnull', True))
                        ),
                        name='line_item_exactly_one_target'
                    ),
                    models.CheckConstraint(
                        check=models.Q(('price__gte', Decimal('0'))),
                        name='line_item_price_non_negative'
                    ),
                    models.CheckConstraint(
                        check=models.Q(('quantity__gte', 0)),
                        name='line_item_quantity_non_negative'
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='BillPayment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *audit_fields(),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True, verbose_name='Correlation ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Amount')),
                ('amount_tendered', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Amount Tendered')),
                ('bill', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='payments',
                    to='billing.bill',
                    verbose_name='Bill'
                )),
                ('payment_mode', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='+',
                    to='billing.paymentmode',
                    verbose_name='Payment Mode'
                )),
            ],
            options={
                'verbose_name': 'Bill Payment',
                'verbose_name_plural': 'Bill Payments',
                'db_table': 'billing_payment',
                'ordering': ['date_created', 'id'],
                'constraints': [
                    models.CheckConstraint(
                        check=models.Q(('amount__gt', Decimal('0'))),
                        name='payment_amount_positive'
                    ),
                    models.CheckConstraint(
                        check=models.Q(('amount_tendered__gte', models.F('amount'))),
                        name='payment_tendered_covers_amount'
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='BillPaymentAttribute',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *audit_fields(),
                ('value_reference', models.CharField(max_length=255, verbose_name='Value')),
                ('attribute_type', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='+',
                    to='billing.paymentmodeattributetype',
                    verbose_name='Attribute Type'
                )),
                ('payment', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='attributes',
                    to='billing.billpayment',
                    verbose_name='Payment'
                )),
            ],
            options={
                'verbose_name': 'Bill Payment Attribute',
                'verbose_name_plural': 'Bill Payment Attributes',
                'db_table': 'billing_payment_attribute',
                'ordering': ['attribute_type__attribute_order', 'id'],
            },
        ),
    ]
