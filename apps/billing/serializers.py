"""Billing serializers."""
from rest_framework import serializers

from .domain import LineItemPaymentStatus, LineItemSpec, ServiceRef, StockItemRef
from .models import (
    Bill,
    BillLineItem,
    BillPayment,
    BillPaymentAttribute,
    CashPoint,
    PaymentMode,
    PaymentModeAttributeType,
)


# ============================================================================
# Input serializers
# ============================================================================

class LineItemSpecSerializer(serializers.Serializer):
    """
    One line item to add to a bill.

    Exactly one of service_id/item_id must be given, matching item_type.
    Price rules (> 0, tier ownership) are enforced by the ledger itself.
    """
    item_type = serializers.ChoiceField(choices=BillLineItem.ItemType.choices)
    service_id = serializers.IntegerField(required=False, allow_null=True)
    item_id = serializers.IntegerField(required=False, allow_null=True)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    quantity = serializers.IntegerField(default=1)
    price_tier_id = serializers.IntegerField(required=False, allow_null=True)
    price_name = serializers.CharField(allow_blank=True, default='')
    line_item_order = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    order_id = serializers.IntegerField(required=False, allow_null=True)
    payment_status = serializers.ChoiceField(
        choices=BillLineItem.PaymentStatus.choices,
        default=LineItemPaymentStatus.PENDING
    )

    def validate(self, attrs):
        service_id = attrs.get('service_id')
        item_id = attrs.get('item_id')

        if (service_id is None) == (item_id is None):
            raise serializers.ValidationError(
                'Exactly one of service_id or item_id is required.'
            )
        if attrs['item_type'] == BillLineItem.ItemType.SERVICE and service_id is None:
            raise serializers.ValidationError({'service_id': 'Required for a SERVICE line item.'})
        if attrs['item_type'] == BillLineItem.ItemType.ITEM and item_id is None:
            raise serializers.ValidationError({'item_id': 'Required for an ITEM line item.'})
        return attrs

    def to_spec(self, data=None):
        data = data if data is not None else self.validated_data
        if data['item_type'] == BillLineItem.ItemType.SERVICE:
            ref = ServiceRef(data['service_id'])
        else:
            ref = StockItemRef(data['item_id'])
        return LineItemSpec(
            ref=ref,
            quantity=data['quantity'],
            price=data.get('price'),
            price_tier_id=data.get('price_tier_id'),
            price_name=data.get('price_name', ''),
            line_item_order=data.get('line_item_order'),
            order_id=data.get('order_id'),
            payment_status=data['payment_status'],
        )


class BillCreateSerializer(serializers.Serializer):
    patient = serializers.UUIDField(help_text='Patient handle')
    cash_point_id = serializers.IntegerField()
    line_items = LineItemSpecSerializer(many=True, required=False)

    def to_specs(self):
        item_serializer = LineItemSpecSerializer()
        return [item_serializer.to_spec(item) for item in self.validated_data.get('line_items', [])]


class LineItemUpdateSerializer(serializers.Serializer):
    price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    quantity = serializers.IntegerField(required=False)

    def validate(self, attrs):
        if 'price' not in attrs and 'quantity' not in attrs:
            raise serializers.ValidationError('Provide price and/or quantity.')
        return attrs


class VoidSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255)


class PaymentCreateSerializer(serializers.Serializer):
    payment_mode_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    amount_tendered = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True
    )
    attributes = serializers.DictField(
        child=serializers.CharField(allow_blank=True),
        required=False,
        help_text='Attribute type id or name -> value'
    )


# ============================================================================
# Output serializers
# ============================================================================

class BillLineItemSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = BillLineItem
        fields = [
            'id', 'bill', 'item_type', 'service', 'item', 'price_tier',
            'price', 'price_name', 'quantity', 'line_total', 'line_item_order',
            'payment_status', 'order_id', 'creator', 'date_created',
            'changed_by', 'date_changed',
            'voided', 'voided_by', 'date_voided', 'void_reason',
        ]
        read_only_fields = fields


class BillPaymentAttributeSerializer(serializers.ModelSerializer):
    name = serializers.CharField(source='attribute_type.name', read_only=True)

    class Meta:
        model = BillPaymentAttribute
        fields = ['id', 'attribute_type', 'name', 'value_reference']
        read_only_fields = fields


class BillPaymentSerializer(serializers.ModelSerializer):
    payment_mode_name = serializers.CharField(source='payment_mode.name', read_only=True)
    change = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    attributes = BillPaymentAttributeSerializer(many=True, read_only=True)
    receipt_number = serializers.CharField(source='bill.receipt_number', read_only=True)

    class Meta:
        model = BillPayment
        fields = [
            'id', 'uuid', 'bill', 'payment_mode', 'payment_mode_name',
            'amount', 'amount_tendered', 'change', 'attributes', 'receipt_number',
            'creator', 'date_created',
            'voided', 'voided_by', 'date_voided', 'void_reason',
        ]
        read_only_fields = fields


class BillSerializer(serializers.ModelSerializer):
    patient = serializers.UUIDField(source='patient.uuid', read_only=True)
    cash_point_name = serializers.CharField(source='cash_point.name', read_only=True)

    class Meta:
        model = Bill
        fields = [
            'id', 'uuid', 'patient', 'provider', 'cash_point', 'cash_point_name',
            'status', 'receipt_number', 'receipt_printed',
            'creator', 'date_created', 'changed_by', 'date_changed',
            'voided', 'voided_by', 'date_voided', 'void_reason',
        ]
        read_only_fields = fields


class BillListSerializer(BillSerializer):
    total_amount = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    amount_paid = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta(BillSerializer.Meta):
        fields = BillSerializer.Meta.fields + ['total_amount', 'amount_paid']
        read_only_fields = fields


class BillTotalsSerializer(serializers.Serializer):
    total = serializers.DecimalField(max_digits=14, decimal_places=2)
    paid = serializers.DecimalField(max_digits=14, decimal_places=2)
    balance = serializers.DecimalField(max_digits=14, decimal_places=2)


class BillDetailSerializer(serializers.Serializer):
    """Serializes a BillDetail (bill, children and totals)."""
    bill = BillSerializer()
    line_items = BillLineItemSerializer(many=True)
    payments = BillPaymentSerializer(many=True)
    totals = BillTotalsSerializer()

    def to_representation(self, instance):
        data = super().to_representation(instance)
        bill = data.pop('bill')
        bill.update(data)
        return bill


class PaymentSummarySerializer(serializers.Serializer):
    total_paid = serializers.DecimalField(max_digits=14, decimal_places=2)
    bill_count = serializers.IntegerField()
    payment_count = serializers.IntegerField()
    payment_modes = serializers.ListField(child=serializers.CharField())


class CashPointSerializer(serializers.ModelSerializer):
    class Meta:
        model = CashPoint
        fields = ['id', 'name', 'description', 'receipt_prefix']
        read_only_fields = fields


class PaymentModeAttributeTypeSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentModeAttributeType
        fields = ['id', 'name', 'format', 'required', 'attribute_order']
        read_only_fields = fields


class PaymentModeSerializer(serializers.ModelSerializer):
    attribute_types = PaymentModeAttributeTypeSerializer(many=True, read_only=True)

    class Meta:
        model = PaymentMode
        fields = ['id', 'name', 'description', 'sort_order', 'attribute_types']
        read_only_fields = fields


class ReceiptLineSerializer(serializers.Serializer):
    line_item_order = serializers.IntegerField()
    item_type = serializers.CharField()
    price_name = serializers.CharField()
    quantity = serializers.IntegerField()
    price = serializers.DecimalField(max_digits=12, decimal_places=2)
    line_total = serializers.DecimalField(max_digits=14, decimal_places=2)


class ReceiptPaymentSerializer(serializers.Serializer):
    payment_mode = serializers.CharField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    amount_tendered = serializers.DecimalField(max_digits=12, decimal_places=2)
    change = serializers.DecimalField(max_digits=12, decimal_places=2)
    attributes = serializers.DictField(child=serializers.CharField())


class ReceiptSummarySerializer(BillTotalsSerializer):
    change = serializers.DecimalField(max_digits=14, decimal_places=2)


class ReceiptSerializer(serializers.Serializer):
    bill = serializers.DictField()
    line_items = ReceiptLineSerializer(many=True)
    payments = ReceiptPaymentSerializer(many=True)
    summary = ReceiptSummarySerializer()
