import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .backends import get_backend
from .controller import Notification, TableController, ViewState, controllers
from .exceptions import (
    BackendError,
    DraftError,
    InvalidStateError,
    RecordNotFound,
    TableNotFound,
    UploadError,
)
from .formatters import display_row
from .importers import BulkUploader
from .models import ManagedTable
from .serializers import (
    DeleteRecordSerializer,
    ManagedTableSerializer,
    RecordValuesSerializer,
    UploadSerializer,
    VoiceInputSerializer,
)


logger = logging.getLogger(__name__)

NOTIFICATION_STATUS = {
    "invalid": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "backend": status.HTTP_502_BAD_GATEWAY,
    "unexpected": status.HTTP_500_INTERNAL_SERVER_ERROR,
}

TRUTHY = ("1", "true", "yes")


def _session_key(request):
    if request.session.session_key is None:
        request.session.create()
    return request.session.session_key


def _last(notifications, level):
    for notification in reversed(notifications):
        if notification.level == level:
            return notification
    return None


class TableAPIView(APIView):
    """Base view: finds the managed table and the caller's controller for it."""

    def handle_exception(self, exc):
        if isinstance(exc, (TableNotFound, RecordNotFound)):
            return Response({"error": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        if isinstance(exc, InvalidStateError):
            return Response({"error": str(exc)}, status=status.HTTP_409_CONFLICT)
        if isinstance(exc, DraftError):
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return super().handle_exception(exc)

    def get_table(self, table_name):
        try:
            return ManagedTable.objects.get(name=table_name.lower())
        except ManagedTable.DoesNotExist:
            raise TableNotFound(table_name)

    def get_controller(self, request, table):
        scope_id = request.query_params.get("scope_id") or None
        key = (_session_key(request), table.name, scope_id)
        return controllers.get(key, lambda: TableController(table.descriptor(scope_id), get_backend()))

    def load(self, request, table_name):
        """Return (table, controller, error_response)."""
        table = self.get_table(table_name)
        controller = self.get_controller(request, table)

        if request.query_params.get("refresh", "").lower() in TRUTHY:
            controller.load()
        else:
            controller.ensure_loaded()

        if controller.state is ViewState.ERROR:
            controller.pop_notifications()
            return table, controller, Response(
                {"error": controller.error}, status=status.HTTP_502_BAD_GATEWAY
            )
        if controller.state is ViewState.LOADING:
            return table, controller, Response(
                {"error": f"Table {table.name} is still loading."}, status=status.HTTP_409_CONFLICT
            )
        return table, controller, None

    def failure(self, controller):
        notification = _last(controller.pop_notifications(), Notification.ERROR)
        if notification is None:
            return Response({"error": "Request failed."}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        body = {"error": notification.message}
        if notification.errors:
            body["errors"] = notification.errors
        return Response(body, status=NOTIFICATION_STATUS.get(notification.code, status.HTTP_500_INTERNAL_SERVER_ERROR))

    def success(self, controller, data, status_code=status.HTTP_200_OK):
        notification = _last(controller.pop_notifications(), Notification.SUCCESS)
        body = {"message": notification.message if notification else "OK"}
        body.update(data)
        return Response(body, status=status_code)


class TableListView(APIView):
    def get(self, request):
        tables = ManagedTable.objects.all()
        return Response({"tables": ManagedTableSerializer(tables, many=True).data})


class TableDataView(TableAPIView):
    def get(self, request, table_name):
        table, controller, error = self.load(request, table_name)
        if error is not None:
            return error

        rows = controller.search(request.query_params.get("search", ""))
        if request.query_params.get("mode") == "display":
            rows = [display_row(controller.schema, row) for row in rows]

        return Response(
            {
                "table": table.name,
                "display_name": table.label,
                "state": controller.state.value,
                "columns": controller.columns,
                "identifier": controller.identifier,
                "count": len(rows),
                "results": rows,
            },
            status=status.HTTP_200_OK,
        )

    def post(self, request, table_name):
        serializer = RecordValuesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        table, controller, error = self.load(request, table_name)
        if error is not None:
            return error

        draft = controller.open_for_create()
        draft.update(serializer.validated_data["values"])
        record = controller.submit()
        if record is None:
            return self.failure(controller)
        return self.success(controller, {"record": record}, status.HTTP_201_CREATED)


class TableColumnsView(TableAPIView):
    def get(self, request, table_name):
        table, controller, error = self.load(request, table_name)
        if error is not None:
            return error

        return Response(
            {
                "table": table.name,
                "columns": controller.columns,
                "identifier": controller.identifier,
                "schema": [spec.as_dict() for spec in controller.schema.values()],
            },
            status=status.HTTP_200_OK,
        )


class RecordFormView(TableAPIView):
    """Blank add-record form for a table."""

    def get(self, request, table_name):
        table, controller, error = self.load(request, table_name)
        if error is not None:
            return error

        draft = controller.open_for_create()
        return Response(
            {"table": table.name, "mode": draft.mode.value, "controls": draft.controls()},
            status=status.HTTP_200_OK,
        )


class TableRecordView(TableAPIView):
    def get(self, request, table_name, record_id):
        table, controller, error = self.load(request, table_name)
        if error is not None:
            return error

        if request.query_params.get("mode") == "display":
            record = controller.find(record_id)
            if record is None:
                raise RecordNotFound(controller.identifier, record_id)
            return Response({"table": table.name, "record": display_row(controller.schema, record)})

        draft = controller.open_for_edit(record_id)
        return Response(
            {
                "table": table.name,
                "mode": draft.mode.value,
                "record_id": draft.record_id,
                "controls": draft.controls(),
            },
            status=status.HTTP_200_OK,
        )

    def put(self, request, table_name, record_id):
        serializer = RecordValuesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        table, controller, error = self.load(request, table_name)
        if error is not None:
            return error

        draft = controller.open_for_edit(record_id)
        draft.update(serializer.validated_data["values"])
        record = controller.submit()
        if record is None:
            return self.failure(controller)
        return self.success(controller, {"record": record})

    def delete(self, request, table_name, record_id):
        serializer = DeleteRecordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        table, controller, error = self.load(request, table_name)
        if error is not None:
            return error

        if not controller.delete(record_id, confirmed=serializer.validated_data["confirm"]):
            return self.failure(controller)
        return self.success(controller, {})


class UploadTableData(TableAPIView):
    def post(self, request, table_name):
        serializer = UploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        table, controller, error = self.load(request, table_name)
        if error is not None:
            return error

        controller.begin_upload()
        uploader = BulkUploader(
            controller.backend,
            table.name,
            on_complete=controller.complete_upload,
            on_cancel=controller.cancel_upload,
        )
        try:
            invalidation = uploader.run(
                serializer.validated_data["file"],
                controller.schema,
                controller.identifier,
                controller.descriptor.scope,
            )
        except UploadError as e:
            body = {"error": e.message}
            if e.invalid_transactions:
                body["invalid_transactions"] = e.invalid_transactions
            return Response(body, status=status.HTTP_400_BAD_REQUEST)
        except BackendError as e:
            logger.error(f"Upload into {table.name} failed: {e}")
            return Response({"error": f"Failed to upload data: {e}"}, status=status.HTTP_502_BAD_GATEWAY)

        controller.pop_notifications()
        return Response(
            {
                "msg": f"Data added successfully to table {table.name}",
                "inserted_count": invalidation.inserted_count,
                "state": controller.state.value,
            },
            status=status.HTTP_201_CREATED,
        )


class VoiceInputView(TableAPIView):
    def post(self, request, table_name):
        table = self.get_table(table_name)
        if not table.voice_input:
            return Response(
                {"error": f"Voice input is not enabled for table {table.name}."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        serializer = VoiceInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        table, controller, error = self.load(request, table_name)
        if error is not None:
            return error

        controller.begin_voice()
        record = controller.voice_create(serializer.validated_data["values"])
        if record is None:
            controller.cancel()
            return self.failure(controller)
        return self.success(controller, {"record": record}, status.HTTP_201_CREATED)
