import logging
import uuid

from config.settings import mask_sensitive_data


class TestCorrelationIdMiddleware:
    def test_returns_provided_request_id(self, client):
        custom_id = "my-custom-request-id-123"
        response = client.get("/health", HTTP_X_REQUEST_ID=custom_id)
        assert response["X-Request-ID"] == custom_id

    def test_generates_uuid_when_no_request_id(self, client):
        response = client.get("/health")
        request_id = response["X-Request-ID"]
        parsed = uuid.UUID(request_id, version=4)
        assert str(parsed) == request_id

    def test_malformed_request_id_is_replaced(self, client):
        response = client.get("/health", HTTP_X_REQUEST_ID="bad id <script>")
        request_id = response["X-Request-ID"]
        assert str(uuid.UUID(request_id, version=4)) == request_id

    def test_idempotency_key_in_logs(self, client, caplog):
        with caplog.at_level(logging.INFO):
            client.get("/health", HTTP_IDEMPOTENCY_KEY="retry-key-0001")
        assert any("retry-key-0001" in r.getMessage() for r in caplog.records)

    def test_correlation_id_in_logs(self, client, caplog):
        custom_id = "log-test-correlation-456"
        with caplog.at_level(logging.INFO):
            client.get("/health", HTTP_X_REQUEST_ID=custom_id)
        found = any(custom_id in record.getMessage() for record in caplog.records)
        assert found, (
            f"correlation_id '{custom_id}' not found in log records: "
            f"{[r.getMessage() for r in caplog.records]}"
        )


class TestSensitiveDataMasking:
    def test_card_number_masked(self):
        event_dict = {"event": "test", "card": "4242 4242 4242 4242"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "4242 4242 4242 4242" not in result["card"]
        assert "***MASKED***" in result["card"]

    def test_unspaced_card_number_masked(self):
        event_dict = {"event": "test", "detail": "pan=4000056655665556 declined"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "4000056655665556" not in result["detail"]

    def test_password_masked_in_log_output(self):
        event_dict = {"event": "test", "data": "password='s3cret123'"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "s3cret123" not in result["data"]
        assert "***MASKED***" in result["data"]

    def test_api_key_masked_in_log_output(self):
        event_dict = {"event": "test", "header": "api_key=sk_live_abc123xyz"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "sk_live_abc123xyz" not in result["header"]
        assert "***MASKED***" in result["header"]

    def test_non_sensitive_data_unchanged(self):
        event_dict = {
            "event": "order.created",
            "order_number": "ORD-20261017-A1B2C3",
            "total": "108.00",
        }
        result = mask_sensitive_data(None, None, event_dict)
        assert result["order_number"] == "ORD-20261017-A1B2C3"
        assert result["total"] == "108.00"
        assert result["event"] == "order.created"
