from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from uuid import UUID, uuid4

from fastapi.testclient import TestClient

from app.api.dependencies import get_ingestion_service, get_lead_repository, get_phone_matcher
from app.config import settings
from app.main import app
from app.services.leads.ingestion import LeadIngestionService
from app.services.leads.matching import CustomerPhoneMatcher
from app.services.leads.repositories import InMemoryLeadRepository
from tests.utils import StaticCustomerStore, lead_row, write_workbook

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@contextmanager
def _override_services(repository: InMemoryLeadRepository, store: StaticCustomerStore | None):
    matcher = CustomerPhoneMatcher(store)
    service = LeadIngestionService(repository, matcher)
    app.dependency_overrides[get_lead_repository] = lambda: repository
    app.dependency_overrides[get_phone_matcher] = lambda: matcher
    app.dependency_overrides[get_ingestion_service] = lambda: service
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_lead_repository, None)
        app.dependency_overrides.pop(get_phone_matcher, None)
        app.dependency_overrides.pop(get_ingestion_service, None)


def _workbook_bytes(tmp_path, rows, name="leads.xlsx") -> bytes:
    return write_workbook(tmp_path / name, rows).read_bytes()


def _upload(client, content: bytes, *, name="leads.xlsx", content_type=XLSX_TYPE, **data):
    return client.post(
        "/api/instant-leads/upload",
        files={"file": (name, content, content_type)},
        data=data,
    )


def test_upload_returns_summary_envelope(client, tmp_path, upload_dir):
    repository = InMemoryLeadRepository()
    content = _workbook_bytes(
        tmp_path, [lead_row("919876543210"), lead_row("9123456780"), lead_row("12345")]
    )
    with _override_services(repository, StaticCustomerStore(["9876543210"])):
        response = _upload(client, content, uploadedBy="ops@example.com", budget="1500")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Excel file processed successfully"
    data = body["data"]
    assert data["totalRows"] == 3
    assert data["processedLeads"] == 2
    assert data["errors"] == 1
    assert data["matchedInCustomerProfile"] == 1
    assert data["unmatchedInCustomerProfile"] == 1
    assert data["excelFileName"] == "leads.xlsx"
    assert data["details"]["errorList"] == ["Row 4: Invalid phone number"]
    assert data["details"]["leads"][0]["phone_number"] == "919876543210"
    assert repository.get_batch(UUID(data["uploadHistoryId"])).uploaded_by == "ops@example.com"
    assert list(upload_dir.iterdir()) == []


def test_upload_without_spreadsheet_is_rejected(client, upload_dir):
    with _override_services(InMemoryLeadRepository(), None):
        response = _upload(
            client, b"phone\n9034955557\n", name="notes.csv", content_type="text/csv"
        )

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["message"] == (
        "No Excel file uploaded. Please upload a .xlsx or .xls file"
    )
    assert list(upload_dir.iterdir()) == []


def test_upload_with_no_file_is_rejected(client):
    with _override_services(InMemoryLeadRepository(), None):
        response = client.post("/api/instant-leads/upload", data={"uploadedBy": "ops"})

    assert response.status_code == 400


def test_unreadable_workbook_reports_error_detail_outside_production(client, monkeypatch):
    monkeypatch.setattr(settings, "environment", "development")
    with _override_services(InMemoryLeadRepository(), None):
        response = _upload(client, b"definitely not a workbook")

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Error reading Excel file"
    assert body["error"]


def test_error_detail_is_hidden_in_production(client, monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")
    with _override_services(InMemoryLeadRepository(), None):
        response = _upload(client, b"definitely not a workbook")

    assert response.status_code == 400
    assert "error" not in response.json()


def test_oversized_upload_is_rejected(client, tmp_path, monkeypatch, upload_dir):
    monkeypatch.setattr(settings, "max_upload_size_bytes", 16)
    content = _workbook_bytes(tmp_path, [lead_row("9034955557")])
    with _override_services(InMemoryLeadRepository(), None):
        response = _upload(client, content)

    assert response.status_code == 413
    assert list(upload_dir.iterdir()) == []


def test_upload_named_without_extension_is_read_by_content_type(client, tmp_path, upload_dir):
    repository = InMemoryLeadRepository()
    content = _workbook_bytes(tmp_path, [lead_row("9034955557")])
    with _override_services(repository, None):
        response = _upload(client, content, name="export")

    assert response.status_code == 200
    assert response.json()["data"]["processedLeads"] == 1
    assert response.json()["data"]["excelFileName"] == "export"
    assert list(upload_dir.iterdir()) == []


def test_spooled_files_are_removed_when_a_later_attachment_fails(
    tmp_path, monkeypatch, upload_dir
):
    content = _workbook_bytes(tmp_path, [lead_row("9034955557")])
    original_write = Path.write_bytes
    written: list[Path] = []

    def write_then_fail(self, data):
        written.append(self)
        if len(written) > 1:
            raise OSError("No space left on device")
        return original_write(self, data)

    monkeypatch.setattr(Path, "write_bytes", write_then_fail)
    server = TestClient(app, raise_server_exceptions=False)
    with _override_services(InMemoryLeadRepository(), None):
        response = server.post(
            "/api/instant-leads/upload",
            files=[
                ("file", ("leads.xlsx", content, XLSX_TYPE)),
                ("file", ("notes.txt", b"sidecar", "text/plain")),
            ],
        )

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert len(written) == 2
    assert list(upload_dir.iterdir()) == []


def test_list_leads_duplicates_and_fields(client, tmp_path):
    repository = InMemoryLeadRepository()
    with _override_services(repository, None):
        _upload(client, _workbook_bytes(tmp_path, [lead_row("9034955557")], name="a.xlsx"))
        _upload(client, _workbook_bytes(tmp_path, [lead_row("9034955557")], name="b.xlsx"))

        listing = client.get("/api/instant-leads?page=1&limit=1")
        duplicates = client.get("/api/instant-leads/duplicates")
        only_duplicates = client.get("/api/instant-leads?is_duplicate=true")
        fields = client.get("/api/instant-leads/fields")

    assert listing.status_code == 200
    assert listing.json()["data"]["pagination"] == {"current": 1, "pages": 2, "total": 2}
    assert len(listing.json()["data"]["leads"]) == 1
    assert duplicates.json()["data"]["count"] == 1
    assert duplicates.json()["data"]["duplicates"][0]["duplicate_reason"] == (
        "Phone number already exists"
    )
    assert only_duplicates.json()["data"]["pagination"]["total"] == 1
    field_data = fields.json()["data"]
    assert field_data["additionalFields"] == ["utm_source"]
    assert field_data["allFields"][-1] == "utm_source"
    assert "phone_number" in field_data["standardFields"]


def test_history_budget_update_and_delete(client, tmp_path):
    repository = InMemoryLeadRepository()
    with _override_services(repository, None):
        uploaded = _upload(
            client, _workbook_bytes(tmp_path, [lead_row("9034955557"), lead_row("9123456780")])
        )
        batch_id = uploaded.json()["data"]["uploadHistoryId"]

        history = client.get("/api/instant-leads/history")
        missing_budget = client.put(f"/api/instant-leads/history/{batch_id}", json={})
        updated = client.put(f"/api/instant-leads/history/{batch_id}", json={"budget": 999.5})
        deleted = client.delete(f"/api/instant-leads/history/{batch_id}")
        deleted_again = client.delete(f"/api/instant-leads/history/{batch_id}")

    entry = history.json()["data"]["history"][0]
    assert entry["fileName"] == "leads.xlsx"
    assert entry["processedLeads"] == 2
    assert history.json()["data"]["pagination"] == {
        "currentPage": 1,
        "totalPages": 1,
        "totalRecords": 1,
        "hasNext": False,
        "hasPrev": False,
    }
    assert missing_budget.status_code == 400
    assert missing_budget.json()["message"] == "Budget is required"
    assert updated.json()["data"]["budget"] == 999.5
    assert deleted.json()["data"] == {"deletedHistoryId": batch_id, "deletedLeadsCount": 2}
    assert deleted_again.status_code == 404
    assert deleted_again.json()["message"] == "Upload history not found"


def test_update_budget_for_unknown_history_returns_404(client):
    with _override_services(InMemoryLeadRepository(), None):
        response = client.put(f"/api/instant-leads/history/{uuid4()}", json={"budget": 10})

    assert response.status_code == 404


def test_test_match_reports_comparison(client):
    with _override_services(InMemoryLeadRepository(), StaticCustomerStore(["9876543210"])):
        response = client.get("/api/instant-leads/test-match/919876543210")

    data = response.json()["data"]
    assert data["normalizedPhone"] == "9876543210"
    assert data["isMatched"] is True
    assert data["totalCustomerPhonesChecked"] == 1


def test_test_match_without_customer_store_is_unavailable(client):
    with _override_services(InMemoryLeadRepository(), None):
        response = client.get("/api/instant-leads/test-match/9876543210")

    assert response.status_code == 503
    assert response.json()["success"] is False
