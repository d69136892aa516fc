"""
URL configuration for casedesk project.

The dashboard API lives under ``tables/``; each table is addressed by its
managed name (e.g. ``students``).
"""
from django.contrib import admin
from django.urls import path
from tables.views import (
    RecordFormView,
    TableColumnsView,
    TableDataView,
    TableListView,
    TableRecordView,
    UploadTableData,
    VoiceInputView,
)
from django.http import HttpResponse



def home(request):
    return HttpResponse("Welcome to the casedesk dashboard API!")


urlpatterns = [
    path('admin/', admin.site.urls),
    path('', home, name='home'),
    path('tables/', TableListView.as_view(), name='table_list'),
    path('tables/<str:table_name>/', TableDataView.as_view(), name='table_data'),
    path('tables/<str:table_name>/columns/', TableColumnsView.as_view(), name='table_columns'),
    path('tables/<str:table_name>/form/', RecordFormView.as_view(), name='record_form'),
    path('tables/<str:table_name>/rows/<str:record_id>/', TableRecordView.as_view(), name='table_record'),
    path('tables/<str:table_name>/upload/', UploadTableData.as_view(), name='upload_table_data'),
    path('tables/<str:table_name>/voice/', VoiceInputView.as_view(), name='voice_input'),

]
