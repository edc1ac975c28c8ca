"""Tests for bentos and the models they package."""
import pytest

from deployhub.domain.errors import ConflictError, NotFoundError, ValidationError
from deployhub.services.bentos import CreateBentoOption, ListBentoOption


def test_bento_links_models(bento, model):
    assert [m.id for m in bento.models] == [model.id]
    assert [b.id for b in model.bentos] == [bento.id]


def test_bento_object_name(bento_service, bento):
    assert bento_service.get_s3_object_name(bento) == "bentos/acme/iris-classifier/20240101.tar.gz"
    assert bento_service.get_tag(bento) == "iris-classifier:20240101"


def test_bento_uses_bentos_bucket(bento_service, bento, storage):
    bento_service.presign_download_url(bento)
    storage.make_sure_bucket.assert_called_once_with("bentos")


def test_duplicate_version(bento_service, bento_repository, bento):
    with pytest.raises(ConflictError):
        bento_service.create(CreateBentoOption(bento_repository=bento_repository, version="20240101"))


@pytest.mark.parametrize("tag", ["iris", ":v1", "iris:"])
def test_malformed_model_tag(bento_service, bento_repository, tag):
    with pytest.raises(ValidationError):
        bento_service.create(CreateBentoOption(bento_repository=bento_repository, version="1", model_tags=[tag]))


def test_missing_model(bento_service, bento_repository, model):
    with pytest.raises(NotFoundError):
        bento_service.create(CreateBentoOption(
            bento_repository=bento_repository, version="1", model_tags=["iris:v9"],
        ))


def test_list_by_model(bento_service, bento_repository, bento, model):
    bento_service.create(CreateBentoOption(bento_repository=bento_repository, version="20240102"))

    items, total = bento_service.list(ListBentoOption(model_ids=[model.id]))
    assert total == 1
    assert items[0].version == "20240101"

    _, total = bento_service.list(ListBentoOption(bento_repository_id=bento_repository.id))
    assert total == 2


def test_image_builder_labels(bento_service, bento):
    assert bento_service.get_image_builder_kube_labels(bento) == {
        "deployhub.io/bento-repository": "iris-classifier",
        "deployhub.io/bento": "20240101",
    }
