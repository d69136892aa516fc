from rest_framework import serializers

from .drafts import RecordDraft
from .exceptions import DraftValidationError
from .models import ManagedTable


class ManagedTableSerializer(serializers.ModelSerializer):
    label = serializers.CharField(read_only=True)

    class Meta:
        model = ManagedTable
        fields = ["name", "label", "display_name", "scope_column", "voice_input"]


class RecordValuesSerializer(serializers.Serializer):
    values = serializers.DictField(allow_empty=True)


class DeleteRecordSerializer(serializers.Serializer):
    confirm = serializers.BooleanField(default=False)

    def validate_confirm(self, value):
        if not value:
            raise serializers.ValidationError("Deletion must be confirmed.")
        return value


class UploadSerializer(serializers.Serializer):
    file = serializers.FileField()


class VoiceInputSerializer(serializers.Serializer):
    values = serializers.DictField(allow_empty=False)


class DataValidator:

    def validate_fields(self, client_data, schema, identifier=None, scope=None):
        invalid_transactions = []
        rows = []
        for index, row in enumerate(client_data, start=1):
            errors = []
            unknown = [field for field in row if field not in schema]
            if unknown:
                errors.append(f"Unknown field(s): {', '.join(unknown)}")
            else:
                draft = RecordDraft.blank(schema, identifier, scope)
                draft.update(row)
                try:
                    rows.append(draft.payload())
                except DraftValidationError as e:
                    errors.extend(
                        f"Field '{field}' is invalid. {message}"
                        for field, message in e.errors.items()
                    )

            if errors:
                invalid_transactions.append({"row": index, "entry": row, "errors": errors})

        return {
            "msg": "Validation completed",
            "invalid_transactions": invalid_transactions,
            "is_valid": len(invalid_transactions) == 0,
            "rows": rows,
        }
