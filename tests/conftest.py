"""
Test configuration and fixtures for deployhub-api tests.

The whole suite runs against one in-memory SQLite database; S3 and
Kubernetes are replaced with mocks through the dependency factories.
"""
import os

# Must be set before deployhub.config is imported
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from unittest.mock import Mock
from fastapi.testclient import TestClient

from deployhub.db.database import SessionLocal, engine
from deployhub.db.init_db import create_tables, drop_all_tables
from deployhub.dependencies import get_kube_client_factory, get_storage_factory
from deployhub.domain.events import event_publisher
from deployhub.kube.client import BentoDeploymentClient, KubeClient
from deployhub.main import app
from deployhub.services.bentos import BentoService, CreateBentoOption
from deployhub.services.clusters import ClusterService
from deployhub.services.models import CreateModelOption, ModelService
from deployhub.services.organizations import OrganizationService
from deployhub.services.repositories import BentoRepositoryService, ModelRepositoryService
from deployhub.services.users import UserService
from deployhub.storage.interface import ObjectStorage


@pytest.fixture(autouse=True)
def database():
    """Fresh tables for every test."""
    create_tables(bind=engine)
    yield engine
    drop_all_tables(bind=engine)


@pytest.fixture(autouse=True)
def clean_event_subscribers():
    event_publisher.clear_subscribers()
    yield
    event_publisher.clear_subscribers()


@pytest.fixture
def db(database):
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def storage():
    """Object store double; presigned URLs are fixed strings."""
    storage = Mock(spec=ObjectStorage)
    storage.presigned_put_url.return_value = "http://s3.example.com/put-url"
    storage.presigned_get_url.return_value = "http://s3.example.com/get-url"
    storage.presigned_upload_part_url.return_value = "http://s3.example.com/part-url"
    storage.create_multipart_upload.return_value = "upload-1"
    return storage


@pytest.fixture
def storage_factory(storage):
    return Mock(return_value=storage)


@pytest.fixture
def bento_deployment_client():
    """BentoDeployment client double; nothing exists until created."""
    cli = Mock(spec=BentoDeploymentClient)
    cli.get.return_value = None
    cli.create.side_effect = lambda body: {**body, "metadata": {**body["metadata"], "resourceVersion": "100", "uid": "bd-1"}}
    cli.update.side_effect = lambda body: {**body, "metadata": {**body["metadata"], "resourceVersion": "101", "uid": "bd-1"}}
    cli.delete.return_value = True
    return cli


@pytest.fixture
def kube_client(bento_deployment_client):
    kube = Mock(spec=KubeClient)
    kube.bento_deployments.return_value = bento_deployment_client
    kube.list_pods.return_value = []
    return kube


@pytest.fixture
def kube_client_factory(kube_client):
    return Mock(return_value=kube_client)


@pytest.fixture
def client(storage_factory, kube_client_factory):
    """Create test client."""
    app.dependency_overrides[get_storage_factory] = lambda: storage_factory
    app.dependency_overrides[get_kube_client_factory] = lambda: kube_client_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user(db):
    return UserService(db).create("admin", email="admin@example.com", is_admin=True)


@pytest.fixture
def organization(db, user):
    return OrganizationService(db).create("acme", description="Test organization", creator=user)


@pytest.fixture
def cluster_service(db, kube_client_factory):
    return ClusterService(db, kube_client_factory)


@pytest.fixture
def cluster(cluster_service, organization, user):
    return cluster_service.create(organization, "default", creator=user)


@pytest.fixture
def model_repository(db, organization, user):
    return ModelRepositoryService(db).create(organization, "iris", creator=user)


@pytest.fixture
def bento_repository(db, organization, user):
    return BentoRepositoryService(db).create(organization, "iris-classifier", creator=user)


@pytest.fixture
def model_service(db, cluster_service, storage_factory):
    return ModelService(db, clusters=cluster_service, storage_factory=storage_factory)


@pytest.fixture
def bento_service(db, cluster_service, storage_factory):
    return BentoService(db, clusters=cluster_service, storage_factory=storage_factory)


@pytest.fixture
def model(model_service, model_repository, user):
    return model_service.create(CreateModelOption(
        model_repository=model_repository,
        version="v1",
        creator=user,
        manifest={"module": "bentoml.sklearn"},
    ))


@pytest.fixture
def bento(bento_service, bento_repository, model, user):
    return bento_service.create(CreateBentoOption(
        bento_repository=bento_repository,
        version="20240101",
        creator=user,
        model_tags=["iris:v1"],
    ))
