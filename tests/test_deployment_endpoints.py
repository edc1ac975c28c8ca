"""Tests for the deployment endpoints and their reconcile side effects."""
import pytest
from kubernetes.client.rest import ApiException
from kubernetes.config import ConfigException

from deployhub.services.api_tokens import ApiTokenService, CreateApiTokenOption
from deployhub.services.bentos import CreateBentoOption

BASE = "/api/v1/clusters/default/deployments"

AVAILABLE = {
    "metadata": {"name": "iris", "resourceVersion": "100"},
    "status": {"conditions": [{"type": "Available", "status": "True"}]},
}


@pytest.fixture
def headers(db, user, organization, cluster, bento):
    _, raw_token = ApiTokenService(db).create(user, organization, CreateApiTokenOption(name="tests"))
    return {"X-Api-Token": raw_token}


def create_body(**overrides):
    body = {
        "name": "iris",
        "targets": [{
            "bento_repository": "iris-classifier",
            "bento": "20240101",
            "config": {
                "resources": {"requests": {"cpu": "500m"}},
                "runners": {"iris_clf": {"envs": [{"key": "THREADS", "value": "2"}]}},
            },
        }],
        "labels": [{"key": "team", "value": "ml"}],
    }
    body.update(overrides)
    return body


class TestCreate:

    def test_create_deploys_and_syncs(self, client, headers, bento_deployment_client, kube_client):
        # First read comes from the deploy, the second from the background sync
        bento_deployment_client.get.side_effect = [None, AVAILABLE]

        response = client.post(BASE, json=create_body(), headers=headers)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "deploying"
        assert data["cluster"] == "default"
        assert data["kube_namespace"] == "deployhub"
        assert data["labels"] == [{"key": "team", "value": "ml"}]
        assert data["latest_revision"]["status"] == "active"
        assert data["latest_revision"]["targets"][0]["bento"] == "iris-classifier:20240101"

        body = bento_deployment_client.create.call_args[0][0]
        assert body["spec"]["bento_tag"] == "iris-classifier:20240101"
        assert body["spec"]["runners"][0]["envs"] == [{"key": "THREADS", "value": "2"}]
        kube_client.bento_deployments.assert_called_with("deployhub")

        detail = client.get(f"{BASE}/iris", headers=headers).json()
        assert detail["status"] == "running"
        assert detail["status_syncing_at"] is not None

    def test_do_not_deploy(self, client, headers, bento_deployment_client):
        response = client.post(BASE, json=create_body(do_not_deploy=True), headers=headers)

        assert response.json()["status"] == "non-deployed"
        bento_deployment_client.create.assert_not_called()

    def test_explicit_namespace(self, client, headers, kube_client):
        response = client.post(BASE, json=create_body(kube_namespace="serving"), headers=headers)

        assert response.json()["kube_namespace"] == "serving"
        kube_client.bento_deployments.assert_called_with("serving")

    def test_duplicate(self, client, headers):
        client.post(BASE, json=create_body(do_not_deploy=True), headers=headers)
        assert client.post(BASE, json=create_body(do_not_deploy=True), headers=headers).status_code == 409

    def test_unknown_bento(self, client, headers):
        body = create_body()
        body["targets"][0]["bento"] = "nope"
        assert client.post(BASE, json=body, headers=headers).status_code == 404

    def test_unknown_target_type(self, client, headers):
        body = create_body()
        body["targets"][0]["type"] = "blue"
        assert client.post(BASE, json=body, headers=headers).status_code == 400

    def test_no_targets(self, client, headers):
        assert client.post(BASE, json=create_body(targets=[]), headers=headers).status_code == 422

    def test_unknown_cluster(self, client, headers):
        response = client.post("/api/v1/clusters/nope/deployments", json=create_body(), headers=headers)
        assert response.status_code == 404

    def test_kube_failure(self, client, headers, bento_deployment_client):
        bento_deployment_client.create.side_effect = ApiException(status=403, reason="Forbidden")

        response = client.post(BASE, json=create_body(), headers=headers)

        assert response.status_code == 502
        assert "failed to create kube bento deployment iris" in response.json()["detail"]


class TestUpdate:

    @pytest.fixture
    def deployed(self, client, headers, bento_deployment_client):
        client.post(BASE, json=create_body(), headers=headers)
        bento_deployment_client.reset_mock()
        bento_deployment_client.get.side_effect = None
        bento_deployment_client.get.return_value = {"metadata": {"name": "iris", "resourceVersion": "100"}}

    def test_new_targets_redeploy(self, client, headers, bento_service, bento_repository,
                                  deployed, bento_deployment_client):
        bento_service.create(CreateBentoOption(bento_repository=bento_repository, version="20240102"))
        body = {"targets": [{"bento_repository": "iris-classifier", "bento": "20240102"}]}

        response = client.patch(f"{BASE}/iris", json=body, headers=headers)

        assert response.status_code == 200
        assert response.json()["latest_revision"]["targets"][0]["bento"] == "iris-classifier:20240102"
        sent = bento_deployment_client.update.call_args[0][0]
        assert sent["metadata"]["resourceVersion"] == "100"
        assert sent["spec"]["bento_tag"] == "iris-classifier:20240102"

        revisions = client.get(f"{BASE}/iris/revisions", headers=headers).json()
        assert [r["status"] for r in revisions] == ["active", "inactive"]

    def test_description_only(self, client, headers, deployed, bento_deployment_client):
        response = client.patch(f"{BASE}/iris", json={"description": "changed"}, headers=headers)

        assert response.json()["description"] == "changed"
        assert response.json()["labels"] == [{"key": "team", "value": "ml"}]
        bento_deployment_client.update.assert_not_called()
        assert len(client.get(f"{BASE}/iris/revisions", headers=headers).json()) == 1


class TestStatusAndTerminate:

    @pytest.fixture
    def recorded(self, client, headers):
        client.post(BASE, json=create_body(do_not_deploy=True), headers=headers)

    def test_sync_status(self, client, headers, recorded, bento_deployment_client):
        bento_deployment_client.get.return_value = {
            "metadata": {"name": "iris"},
            "status": {"conditions": [{"type": "Failed", "status": "True"}]},
        }

        response = client.post(f"{BASE}/iris/sync_status", headers=headers)

        assert response.json()["status"] == "failed"

    def test_terminate(self, client, headers, recorded, bento_deployment_client):
        response = client.post(f"{BASE}/iris/terminate", headers=headers)

        assert response.json()["status"] == "terminating"
        bento_deployment_client.delete.assert_called_once_with("iris")
        # The background sync sees the resource gone
        assert client.get(f"{BASE}/iris", headers=headers).json()["status"] == "terminated"

    def test_kube_config_error_is_bad_gateway(self, client, headers, recorded, kube_client_factory):
        kube_client_factory.side_effect = ConfigException("Invalid kube-config file. No configuration found.")

        assert client.post(f"{BASE}/iris/sync_status", headers=headers).status_code == 502
        assert client.post(f"{BASE}/iris/terminate", headers=headers).status_code == 502

    def test_lists(self, client, headers, recorded):
        cluster_list = client.get(BASE, headers=headers).json()
        assert [d["name"] for d in cluster_list["items"]] == ["iris"]

        org_list = client.get("/api/v1/deployments", params={"labels": "team=ml"}, headers=headers).json()
        assert org_list["total"] == 1

        by_status = client.get("/api/v1/deployments", params={"statuses": "running"}, headers=headers).json()
        assert by_status["total"] == 0

    def test_missing(self, client, headers):
        assert client.get(f"{BASE}/nope", headers=headers).status_code == 404
