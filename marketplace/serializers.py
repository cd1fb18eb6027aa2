from rest_framework import serializers


class CreateOrderSerializer(serializers.Serializer):
    listing_id = serializers.UUIDField()


class DownloadRequestSerializer(serializers.Serializer):
    deliverable_id = serializers.UUIDField()
    # Optional: when present it must match the deliverable's order
    order_id = serializers.UUIDField(required=False, allow_null=True)


def first_error(errors) -> str:
    """Flatten DRF's error dict into one readable line."""
    for field_name, messages in errors.items():
        if isinstance(messages, (list, tuple)) and messages:
            return f"{field_name}: {messages[0]}"
        return f"{field_name}: {messages}"
    return "Invalid request."
