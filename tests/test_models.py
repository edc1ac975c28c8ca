"""Tests for model repositories, models and the shared artifact operations."""
import io
from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest

from deployhub.db.models import utcnow
from deployhub.domain.enums import ImageBuildStatus, UploadStatus
from deployhub.domain.errors import ConflictError, NotFoundError, ValidationError
from deployhub.domain.events import UploadFinished, event_publisher
from deployhub.services.artifacts import UpdateArtifactOption, to_kebab
from deployhub.services.base import UNSET
from deployhub.services.labels import LabelItem
from deployhub.services.models import CreateModelOption, ListModelOption
from deployhub.services.organizations import OrganizationService
from deployhub.services.repositories import ListRepositoryOption, ModelRepositoryService
from deployhub.storage.s3 import S3Config


class TestModelRepositoryService:

    def test_duplicate_name(self, db, organization, model_repository):
        with pytest.raises(ConflictError):
            ModelRepositoryService(db).create(organization, "iris")

    def test_labels_on_create_and_update(self, db, organization):
        repositories = ModelRepositoryService(db)
        repository = repositories.create(organization, "mnist", labels=[LabelItem("team", "vision")])
        assert [(l.key, l.value) for l in repositories.list_labels(repository)] == [("team", "vision")]

        repositories.update(repository, description="digits")
        assert repositories.list_labels(repository)[0].key == "team"

        repositories.update(repository, labels=[])
        assert repository.description == "digits"
        assert repositories.list_labels(repository) == []

    def test_list_by_organization(self, db, organization, model_repository):
        repositories = ModelRepositoryService(db)
        repositories.create(organization, "mnist")

        items, total = repositories.list(ListRepositoryOption(organization_id=organization.id, search="mni"))
        assert total == 1
        assert items[0].name == "mnist"

    def test_get_by_name_missing(self, db, organization):
        with pytest.raises(NotFoundError):
            ModelRepositoryService(db).get_by_name(organization, "nope")

    def test_get_by_uid(self, db, model_repository):
        repositories = ModelRepositoryService(db)
        assert repositories.get_by_uid(model_repository.uid).id == model_repository.id
        with pytest.raises(NotFoundError):
            repositories.get_by_uid("missing")


class TestModelCreate:

    def test_defaults(self, model):
        assert model.upload_status == UploadStatus.PENDING.value
        assert model.image_build_status == ImageBuildStatus.PENDING.value
        assert model.build_at is not None

    def test_duplicate_version(self, model_service, model_repository, model):
        with pytest.raises(ConflictError):
            model_service.create(CreateModelOption(model_repository=model_repository, version="v1"))

    def test_invalid_version(self, model_service, model_repository):
        with pytest.raises(ValidationError):
            model_service.create(CreateModelOption(model_repository=model_repository, version="bad/version"))

    def test_get_by_version(self, model_service, model_repository, model):
        assert model_service.get_by_version(model_repository.id, "v1").id == model.id
        with pytest.raises(NotFoundError):
            model_service.get_by_version(model_repository.id, "v2")

    def test_get_by_uid(self, model_service, model):
        assert model_service.get_by_uid(model.uid).id == model.id
        with pytest.raises(NotFoundError):
            model_service.get_by_uid("missing")

    def test_list_by_uids(self, model_service, model_repository, model):
        other = model_service.create(CreateModelOption(model_repository=model_repository, version="v2"))

        found = model_service.list_by_uids([model.uid, other.uid, "missing"])

        assert sorted(m.version for m in found) == ["v1", "v2"]
        assert model_service.list_by_uids([]) == []

    def test_tag(self, model_service, model):
        assert model_service.get_tag(model) == "iris:v1"


class TestModelList:

    @pytest.fixture
    def models(self, db, organization, model_service, model_repository, model):
        mnist = ModelRepositoryService(db).create(organization, "mnist")
        base = datetime(2024, 1, 1)
        model.build_at = base
        created = [model]
        for i, (repository, module) in enumerate([(model_repository, "bentoml.pytorch"), (mnist, "bentoml.pytorch")]):
            created.append(model_service.create(CreateModelOption(
                model_repository=repository,
                version=f"v{i + 2}",
                build_at=base + timedelta(days=i + 1),
                manifest={"module": module},
            )))
        db.commit()
        return created

    def test_default_order_newest_build_first(self, model_service, models):
        items, total = model_service.list()
        assert total == 3
        assert [m.version for m in items] == ["v3", "v2", "v1"]

    def test_explicit_order(self, model_service, models):
        items, _ = model_service.list(ListModelOption(order="version asc"))
        assert [m.version for m in items] == ["v1", "v2", "v3"]

    def test_unsupported_order(self, model_service, models):
        with pytest.raises(ValidationError):
            model_service.list(ListModelOption(order="manifest asc"))

    def test_filter_by_module(self, model_service, models):
        items, total = model_service.list(ListModelOption(modules=["bentoml.sklearn"]))
        assert total == 1
        assert items[0].version == "v1"

    def test_search_by_repository_name(self, model_service, models):
        items, _ = model_service.list(ListModelOption(search="mni"))
        assert [m.version for m in items] == ["v3"]

    def test_pagination(self, model_service, models):
        items, total = model_service.list(ListModelOption(start=1, count=1))
        assert total == 3
        assert [m.version for m in items] == ["v2"]

    def test_filter_by_organization(self, model_service, organization, models):
        _, total = model_service.list(ListModelOption(organization_id=organization.id))
        assert total == 3
        _, total = model_service.list(ListModelOption(organization_id=organization.id + 100))
        assert total == 0

    def test_filter_by_bento(self, model_service, bento, models):
        items, _ = model_service.list(ListModelOption(bento_ids=[bento.id]))
        assert [m.version for m in items] == ["v1"]

    def test_all_modules(self, model_service, organization, models):
        assert model_service.list_all_modules(organization.id) == ["bentoml.pytorch", "bentoml.sklearn"]

    def test_latest_by_repository(self, model_service, model_repository, models):
        latest = model_service.list_latest_by_repository_ids([model_repository.id])
        assert [m.version for m in latest] == ["v2"]
        assert model_service.list_latest_by_repository_ids([]) == []


class TestModelUpdate:

    def test_only_passed_fields_change(self, model_service, model):
        model_service.update(model, UpdateArtifactOption(image_build_status=ImageBuildStatus.BUILDING))
        model_service.update(model, UpdateArtifactOption(upload_finished_reason="note"))

        assert model.image_build_status == "building"
        assert model.upload_finished_reason == "note"
        assert model.upload_status == "pending"

    def test_unset_is_falsy(self):
        assert not UNSET

    def test_labels(self, model_service, model):
        model_service.update(model, UpdateArtifactOption(labels=[LabelItem("stage", "prod")]))
        assert [(l.key, l.value) for l in model_service.list_labels(model)] == [("stage", "prod")]

    def test_image_build_status_unsynced(self, db, model_service, model):
        assert model_service.list_image_build_status_unsynced() == [model]

        recent = utcnow()
        model_service.update(model, UpdateArtifactOption(
            image_build_status_syncing_at=recent, image_build_status_updated_at=recent,
        ))
        assert model_service.list_image_build_status_unsynced() == []

        model_service.update(model, UpdateArtifactOption(image_build_status=ImageBuildStatus.SUCCESS))
        assert model_service.list_image_build_status_unsynced() == []


class TestUploadStatus:

    def test_start_upload(self, model_service, model):
        model_service.start_upload(model)
        assert model.upload_status == "uploading"
        assert model.upload_started_at is not None
        assert model.upload_finished_at is None

    def test_finish_upload_publishes_event(self, model_service, model):
        received = []
        event_publisher.subscribe(UploadFinished, received.append)

        model_service.start_upload(model)
        model_service.finish_upload(model, UploadStatus.FAILED, "network")

        assert model.upload_status == "failed"
        assert model.upload_finished_reason == "network"
        assert len(received) == 1
        assert received[0].tag == "iris:v1"
        assert received[0].kind == "Model"

    def test_finish_requires_final_status(self, model_service, model):
        with pytest.raises(ValidationError):
            model_service.finish_upload(model, UploadStatus.UPLOADING)

    def test_restart_after_success_rejected(self, model_service, model):
        model_service.finish_upload(model, UploadStatus.SUCCESS)
        with pytest.raises(ValidationError):
            model_service.start_upload(model)


class TestObjectStore:

    def test_object_name(self, model_service, model):
        assert model_service.get_s3_object_name(model) == "models/acme/iris/v1.tar.gz"

    def test_storage_uses_organization_config(self, db, model_service, organization, model, storage_factory):
        OrganizationService(db).update(organization, config={"s3": {"models_bucket_name": "acme-models"}})

        model_service.presign_upload_url(model)

        s3_config = storage_factory.call_args[0][0]
        assert isinstance(s3_config, S3Config)
        assert s3_config.models_bucket_name == "acme-models"

    def test_upload(self, model_service, model, storage):
        reader = io.BytesIO(b"model bytes")
        model_service.upload(model, reader, 11)

        storage.make_sure_bucket.assert_called_once_with("models")
        storage.put_object.assert_called_once_with("models", "models/acme/iris/v1.tar.gz", reader, 11)

    def test_download(self, model_service, model, storage):
        storage.get_object.return_value = io.BytesIO(b"data")
        assert model_service.download(model).read() == b"data"
        storage.get_object.assert_called_once_with("models", "models/acme/iris/v1.tar.gz")

    def test_presign(self, model_service, model, storage):
        assert model_service.presign_upload_url(model) == "http://s3.example.com/put-url"
        assert model_service.presign_download_url(model) == "http://s3.example.com/get-url"
        storage.presigned_put_url.assert_called_once_with("models", "models/acme/iris/v1.tar.gz", 3600)

    def test_multipart(self, model_service, model, storage):
        upload_id = model_service.start_multipart_upload(model)
        assert upload_id == "upload-1"

        url = model_service.presign_multipart_upload_url(model, 2, upload_id)
        assert url == "http://s3.example.com/part-url"
        storage.presigned_upload_part_url.assert_called_once_with(
            "models", "models/acme/iris/v1.tar.gz", "upload-1", 2, 3600
        )

        parts = [{"PartNumber": 1, "ETag": "a"}]
        model_service.complete_multipart_upload(model, upload_id, parts)
        storage.complete_multipart_upload.assert_called_once_with(
            "models", "models/acme/iris/v1.tar.gz", "upload-1", parts
        )

    @pytest.mark.parametrize("part_number,upload_id", [(0, "upload-1"), (1, "")])
    def test_multipart_part_validation(self, model_service, model, storage, part_number, upload_id):
        with pytest.raises(ValidationError):
            model_service.presign_multipart_upload_url(model, part_number, upload_id)
        storage.presigned_upload_part_url.assert_not_called()

    def test_complete_requires_parts(self, model_service, model):
        with pytest.raises(ValidationError):
            model_service.complete_multipart_upload(model, "upload-1", [])


class TestImageBuilder:

    @pytest.mark.parametrize("value,expected", [
        ("ModelImageBuilder", "model-image-builder"),
        ("a_b  c", "a-b-c"),
        ("--x--y--", "x-y"),
    ])
    def test_to_kebab(self, value, expected):
        assert to_kebab(value) == expected

    def test_kube_name(self, model_service, model):
        name = model_service.get_image_builder_kube_name(model)
        assert name.startswith("deployhub-model-image-builder-acme-iris-v1-")
        assert name == name.lower()
        assert "." not in name

    def test_kube_labels(self, model_service, model):
        assert model_service.get_image_builder_kube_labels(model) == {
            "deployhub.io/model-repository": "iris",
            "deployhub.io/model": "v1",
        }

    def test_pods_from_major_cluster(self, model_service, model, cluster, kube_client):
        pod = Mock()
        pod.metadata.name = "builder-1"
        pod.metadata.namespace = "deployhub-image-builder"
        pod.metadata.labels = {"deployhub.io/model": "v1"}
        pod.spec.node_name = "node-a"
        pod.status.phase = "Running"
        pod.status.start_time = None
        pod.status.container_statuses = [Mock(ready=True)]
        kube_client.list_pods.return_value = [pod]

        pods = model_service.list_image_builder_pods(model)

        kube_client.list_pods.assert_called_once_with(
            "deployhub-image-builder",
            {"deployhub.io/model-repository": "iris", "deployhub.io/model": "v1"},
        )
        assert pods[0]["name"] == "builder-1"
        assert pods[0]["phase"] == "Running"
        assert pods[0]["ready"] is True

    def test_pods_without_cluster(self, model_service, model):
        with pytest.raises(NotFoundError):
            model_service.list_image_builder_pods(model)
