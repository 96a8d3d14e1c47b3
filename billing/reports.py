import csv

from django.http import HttpResponse
from django.utils.dateparse import parse_date
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.serializers import AgingRowSerializer, OutstandingInvoiceSerializer, PartyStatementSerializer
from billing.statements import get_party_statement, get_payables_aging, get_receivables_aging, outstanding_invoices
from common.permissions import RoleCapabilityPermission


class BaseReportView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "reports.view"}

    def _parse_date_param(self, request, name):
        raw = request.query_params.get(name)
        if not raw:
            return None
        value = parse_date(raw)
        if value is None:
            raise ValidationError({name: "Use YYYY-MM-DD."})
        return value

    def _date_range(self, request):
        date_from = self._parse_date_param(request, "date_from")
        date_to = self._parse_date_param(request, "date_to")
        if date_from and date_to and date_from > date_to:
            raise ValidationError({"date_range": "date_from must be before or equal to date_to."})
        return date_from, date_to

    def _csv_response(self, filename, rows):
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = f'attachment; filename="{filename}"'

        if not rows:
            return response

        writer = csv.DictWriter(response, fieldnames=list(rows[0].keys()))
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
        return response

    def _respond(self, request, filename, data):
        if request.query_params.get("export") == "csv":
            return self._csv_response(filename, data)
        return Response(data)


class ReceivablesAgingReportView(BaseReportView):
    def get(self, request):
        as_of = self._parse_date_param(request, "as_of")
        rows = AgingRowSerializer(get_receivables_aging(as_of), many=True).data
        return self._respond(request, "receivables_aging.csv", rows)


class PayablesAgingReportView(BaseReportView):
    def get(self, request):
        as_of = self._parse_date_param(request, "as_of")
        rows = AgingRowSerializer(get_payables_aging(as_of), many=True).data
        return self._respond(request, "payables_aging.csv", rows)


class OutstandingReceivablesReportView(BaseReportView):
    def get(self, request):
        as_of = self._parse_date_param(request, "as_of")
        rows = OutstandingInvoiceSerializer(outstanding_invoices(as_of), many=True).data
        return self._respond(request, "outstanding_receivables.csv", rows)


class PartyStatementView(BaseReportView):
    permission_action_map = {"get": "billing.view"}

    def get(self, request, party_id):
        date_from, date_to = self._date_range(request)
        statement = get_party_statement(party_id, date_from, date_to)
        if statement is None:
            raise NotFound("Party not found.")
        return Response(PartyStatementSerializer(statement).data)
