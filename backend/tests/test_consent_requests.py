import logging
import re

TOKEN_RE = re.compile(r"^[0-9a-f]{64}$")


class TestCreateConsentRequest:
    def _create(self, client, auth, **overrides):
        body = {
            "fileName": "Handbook v1",
            "filePath": "recruiter-1/handbook/handbook-v1.pdf",
            "recipientIds": ["c-1", "c-2"],
            "recipientType": "client",
        }
        body.update(overrides)
        return client.post("/api/v1/consent/request", json=body, headers=auth)

    def _records(self, client, auth, document_id):
        r = client.get(f"/api/v1/consent/records/{document_id}?limit=100", headers=auth)
        assert r.status_code == 200
        return {rec["recipientId"]: rec for rec in r.json()["records"]}

    def test_create_request(self, client, auth):
        r = self._create(client, auth)
        assert r.status_code == 201
        data = r.json()
        assert data["success"] is True
        assert data["recordCount"] == 2
        doc = data["document"]
        assert doc["fileName"] == "Handbook v1"
        assert doc["filePath"] == "recruiter-1/handbook/handbook-v1.pdf"
        assert doc["uploadedBy"] == "recruiter-1"
        assert doc["version"] == 1
        assert doc["isActive"] is True

    def test_records_pending_with_distinct_tokens(self, client, auth):
        doc_id = self._create(client, auth).json()["document"]["id"]
        records = self._records(client, auth, doc_id)

        assert set(records) == {"c-1", "c-2"}
        tokens = [rec["consentToken"] for rec in records.values()]
        assert all(TOKEN_RE.match(t) for t in tokens)
        assert len(set(tokens)) == 2
        for rec in records.values():
            assert rec["status"] == "pending"
            assert rec["sentAt"] is not None
            assert rec["completedAt"] is None
            assert rec["consentedName"] is None
            assert rec["ipAddress"] is None

    def test_tokens_unique_across_documents(self, client, auth):
        tokens = []
        for name in ("Policy A", "Policy B", "Policy C"):
            doc_id = self._create(client, auth, fileName=name).json()["document"]["id"]
            tokens.extend(rec["consentToken"] for rec in self._records(client, auth, doc_id).values())
        assert len(tokens) == 6
        assert len(set(tokens)) == 6

    def test_one_email_per_recipient(self, client, auth, dispatcher):
        r = self._create(client, auth)
        doc_id = r.json()["document"]["id"]
        records = self._records(client, auth, doc_id)

        assert sorted(dispatcher.recipients) == ["acme@example.com", "globex@example.com"]
        for message in dispatcher.sent:
            assert message["subject"] == "Digital Consent Request: Handbook v1"
        acme = next(m for m in dispatcher.sent if m["to"] == "acme@example.com")
        assert f"http://portal.test/consent?token={records['c-1']['consentToken']}" in acme["text"]
        assert "Acme Corp" in acme["html"]

    def test_jobseeker_recipients(self, client, auth, dispatcher):
        r = self._create(client, auth, recipientIds=["j-1"], recipientType="jobseeker")
        assert r.status_code == 201
        assert dispatcher.recipients == ["jane@example.com"]
        assert "Hello Jane Doe" in dispatcher.sent[0]["text"]

    def test_snake_case_body_accepted(self, client, auth):
        r = client.post("/api/v1/consent/request", json={
            "file_name": "Privacy Notice",
            "file_path": "docs/privacy.pdf",
            "recipient_ids": ["c-1"],
            "recipient_type": "client",
        }, headers=auth)
        assert r.status_code == 201
        assert r.json()["recordCount"] == 1

    def test_missing_recipient_contact_does_not_block_others(self, client, auth, dispatcher):
        r = self._create(client, auth, recipientIds=["c-3", "c-1", "c-unknown"])
        assert r.status_code == 201
        assert r.json()["recordCount"] == 3
        assert dispatcher.recipients == ["acme@example.com"]

    def test_dispatch_failure_isolated(self, client, auth, dispatcher):
        dispatcher.failing.add("acme@example.com")
        r = self._create(client, auth)
        assert r.status_code == 201
        assert dispatcher.recipients == ["globex@example.com"]

    def test_empty_recipients_rejected(self, client, auth):
        r = self._create(client, auth, recipientIds=[])
        assert r.status_code == 400
        assert r.json()["code"] == "invalid_input"

    def test_duplicate_recipients_rejected(self, client, auth):
        r = self._create(client, auth, recipientIds=["c-1", "c-1"])
        assert r.status_code == 400
        assert r.json()["code"] == "invalid_input"

    def test_missing_file_fields_rejected(self, client, auth):
        r = self._create(client, auth, fileName="")
        assert r.status_code == 400
        assert r.json()["code"] == "invalid_input"
        r = self._create(client, auth, filePath=None)
        assert r.status_code == 400

    def test_unsupported_recipient_type(self, client, auth, dispatcher):
        r = self._create(client, auth, recipientType="vendor")
        assert r.status_code == 400
        assert r.json()["code"] == "recipient_type_unsupported"
        assert dispatcher.sent == []

    def test_rejected_request_creates_nothing(self, client, auth):
        self._create(client, auth, recipientIds=[])
        r = client.get("/api/v1/consent/documents", headers=auth)
        assert r.json()["pagination"]["total"] == 0

    def test_file_fields_stored_trimmed(self, client, auth, dispatcher):
        r = self._create(client, auth, fileName="  Handbook v1 ", filePath=" docs/handbook.pdf  ")
        doc = r.json()["document"]
        assert doc["fileName"] == "Handbook v1"
        assert doc["filePath"] == "docs/handbook.pdf"
        assert dispatcher.sent[0]["subject"] == "Digital Consent Request: Handbook v1"

    def test_tokens_never_logged(self, client, auth, caplog):
        from consent_portal.dependencies import get_dispatcher
        from consent_portal.main import app

        # Use the console backend, which writes outgoing mail to the log.
        app.dependency_overrides.pop(get_dispatcher)
        with caplog.at_level(logging.DEBUG, logger="consent_portal"):
            doc_id = self._create(client, auth).json()["document"]["id"]
            records = self._records(client, auth, doc_id)
            token = records["c-1"]["consentToken"]
            client.get(f"/api/v1/consent/view?token={token}")
            client.post("/api/v1/consent/submit", json={"token": token, "consentedName": "Jane Doe"})
            client.post("/api/v1/consent/resend", json={"recordIds": [records["c-2"]["id"]]}, headers=auth)

        assert any(r.name == "consent_portal.notifications" for r in caplog.records)
        tokens = [rec["consentToken"] for rec in records.values()]
        leaked = [r.name for r in caplog.records for t in tokens if t in r.getMessage()]
        assert leaked == []


class TestOperatorAccess:
    def test_requires_bearer_token(self, client):
        r = client.get("/api/v1/consent/documents")
        assert r.status_code == 401

    def test_rejects_wrong_key(self, client):
        r = client.get("/api/v1/consent/documents", headers={"Authorization": "Bearer nope"})
        assert r.status_code == 401

    def test_unconfigured_operator_key(self, client, auth):
        from consent_portal.config import settings
        settings.operator_key_hash = None
        r = client.get("/api/v1/consent/documents", headers=auth)
        assert r.status_code == 503

    def test_uploaded_by_defaults_to_operator(self, client, auth):
        headers = {"Authorization": auth["Authorization"]}
        r = client.post("/api/v1/consent/request", json={
            "fileName": "Policy",
            "filePath": "p.pdf",
            "recipientIds": ["c-1"],
            "recipientType": "client",
        }, headers=headers)
        assert r.json()["document"]["uploadedBy"] == "operator"

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"
