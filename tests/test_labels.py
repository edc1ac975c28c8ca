"""Tests for labels and label selectors."""
import pytest

from deployhub.domain.enums import LabelOperator, ResourceType
from deployhub.domain.errors import ValidationError
from deployhub.services.base import LabelSelector, parse_label_selectors
from deployhub.services.labels import LabelItem, LabelService
from deployhub.services.models import CreateModelOption, ListModelOption


class TestLabelSelectorParsing:

    def test_exists(self):
        selector = LabelSelector.parse("team")
        assert selector.key == "team"
        assert selector.operator == LabelOperator.EXISTS

    def test_does_not_exist(self):
        selector = LabelSelector.parse("!team")
        assert selector.key == "team"
        assert selector.operator == LabelOperator.DOES_NOT_EXIST

    def test_in(self):
        selector = LabelSelector.parse("stage=dev|prod")
        assert selector.operator == LabelOperator.IN
        assert selector.values == ["dev", "prod"]

    def test_not_in(self):
        selector = LabelSelector.parse("stage!=dev")
        assert selector.operator == LabelOperator.NOT_IN
        assert selector.values == ["dev"]

    def test_invalid_key(self):
        with pytest.raises(ValidationError):
            LabelSelector.parse("bad key=1")

    def test_parse_many(self):
        selectors = parse_label_selectors(["team,stage=prod", "!legacy"])
        assert [s.key for s in selectors] == ["team", "stage", "legacy"]


class TestLabelService:

    def test_create_update_and_delete_missing(self, db, organization, model, user):
        labels = LabelService(db)
        labels.create_or_update_labels(
            [LabelItem("team", "ml"), LabelItem("stage", "dev")], user.id, organization.id, ResourceType.MODEL, model.id
        )
        result = labels.create_or_update_labels(
            [LabelItem("stage", "prod"), LabelItem("owner", "ops")], user.id, organization.id,
            ResourceType.MODEL, model.id,
        )

        assert {label.key: label.value for label in result} == {"stage": "prod", "owner": "ops"}

    def test_empty_key_rejected(self, db, organization, model):
        with pytest.raises(ValidationError):
            LabelService(db).create_or_update_labels(
                [LabelItem(" ", "x")], None, organization.id, ResourceType.MODEL, model.id
            )

    def test_list_by_resources(self, db, organization, model):
        labels = LabelService(db)
        labels.create_or_update_labels([LabelItem("a", "1")], None, organization.id, ResourceType.MODEL, model.id)

        grouped = labels.list_by_resources(ResourceType.MODEL, [model.id, 9999])
        assert [label.key for label in grouped[model.id]] == ["a"]
        assert 9999 not in grouped


class TestLabelSelectorFiltering:

    @pytest.fixture
    def labelled_models(self, model_service, model_repository):
        specs = {
            "v-dev": [LabelItem("stage", "dev"), LabelItem("team", "ml")],
            "v-prod": [LabelItem("stage", "prod")],
            "v-none": [],
        }
        for version, labels in specs.items():
            model_service.create(CreateModelOption(model_repository=model_repository, version=version, labels=labels))

    def _versions(self, model_service, model_repository, expression):
        items, _ = model_service.list(ListModelOption(
            model_repository_id=model_repository.id,
            label_selectors=parse_label_selectors([expression]),
        ))
        return sorted(model.version for model in items)

    def test_in(self, labelled_models, model_service, model_repository):
        assert self._versions(model_service, model_repository, "stage=prod|dev") == ["v-dev", "v-prod"]

    def test_not_in(self, labelled_models, model_service, model_repository):
        assert self._versions(model_service, model_repository, "stage!=dev") == ["v-none", "v-prod"]

    def test_exists(self, labelled_models, model_service, model_repository):
        assert self._versions(model_service, model_repository, "team") == ["v-dev"]

    def test_does_not_exist(self, labelled_models, model_service, model_repository):
        assert self._versions(model_service, model_repository, "!stage") == ["v-none"]
