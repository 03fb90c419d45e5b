"""Control-plane listener: GET /status heartbeat."""


class TestOrchestratorStatus:
    def test_status_ok(self, orchestrator_client):
        response = orchestrator_client.get("/status")
        assert response.status_code == 200
        assert response.text == "Healthy"

    def test_status_idempotent(self, orchestrator_client):
        bodies = {orchestrator_client.get("/status").text for _ in range(5)}
        assert bodies == {"Healthy"}

    def test_only_status_route(self, orchestrator_client):
        assert orchestrator_client.get("/api/health").status_code == 404
        assert orchestrator_client.post("/dashboard/save", data={"name": "a", "value": "b"}).status_code == 404

    def test_counted_under_orchestrator_listener(self, orchestrator_client, metrics):
        orchestrator_client.get("/status")
        labels = {"listener": "orchestrator", "method": "GET", "path": "/status", "status": "200"}
        assert metrics.registry.get_sample_value("beacon_http_requests_total", labels) == 1.0
