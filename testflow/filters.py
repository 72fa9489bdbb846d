# testflow/filters.py
import django_filters as df
from django.db.models import Q

from .models import Client, Equipment, TestRequest, TestScope
from .workflows import normalize_state


class ClientFilter(df.FilterSet):
    name = df.CharFilter(field_name="name", lookup_expr="icontains")
    email = df.CharFilter(field_name="email", lookup_expr="icontains")

    class Meta:
        model = Client
        fields = ["name", "email"]


class TestRequestFilter(df.FilterSet):
    """
    Field lookups on top of store.list_test_requests, which owns status,
    bucket, client, search, year/month and ordering.
    """
    department = df.CharFilter(method="filter_department")
    request_id = df.CharFilter(field_name="request_id", lookup_expr="icontains")
    client_name = df.CharFilter(field_name="client_name", lookup_expr="icontains")
    request_date_after = df.CharFilter(field_name="request_date", lookup_expr="gte")
    request_date_before = df.CharFilter(field_name="request_date", lookup_expr="lte")

    class Meta:
        model = TestRequest
        fields = ["request_id", "client_name", "material_received", "payment_received"]

    def filter_department(self, queryset, name, value):
        prefix = normalize_state(value).capitalize()
        return queryset.filter(sub_tests__test_type__istartswith=prefix).distinct()


class EquipmentFilter(df.FilterSet):
    name = df.CharFilter(field_name="name", lookup_expr="icontains")
    due_before = df.DateFilter(field_name="due_date", lookup_expr="lte")

    class Meta:
        model = Equipment
        fields = ["name", "calibrated_by"]


class TestScopeFilter(df.FilterSet):
    material = df.CharFilter(field_name="material_tested", lookup_expr="icontains")
    group = df.CharFilter(field_name="group", lookup_expr="iexact")
    search = df.CharFilter(method="filter_search")

    class Meta:
        model = TestScope
        fields = ["main_group", "sub_group"]

    def filter_search(self, queryset, name, value):
        return queryset.filter(Q(parameters__icontains=value) | Q(test_method__icontains=value))
