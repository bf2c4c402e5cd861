"""Tests for draft/publish versioning.

Every test runs against both storage backends.

Tests cover:
- Creating, copying and cloning drafts
- Draft-only field and settings mutations
- Publishing with and without lineage, including concurrent publishers
- Publish rollback
- Lifecycle events
"""

import threading

import pytest

import frm.storage.sqlite
from frm.errors import ConflictOnPublishError, InvalidStateError, NotFoundError, PersistenceError
from frm.models import Form
from frm.storage import MemoryStorage
from frm.types import EventType, FormFieldType, FormStatus
from frm.versions import VersionManager
from tests.conftest import WORKSPACE


def published_ids(storage, workspace_id=WORKSPACE):
    return [f.id for f in storage.list_forms(workspace_id, [FormStatus.PUBLISHED])]


class TestCreateDraft:
    """Test draft creation."""

    def test_fresh_draft(self, versions, events):
        """Should create an empty draft named "New form"."""
        draft = versions.create_draft(WORKSPACE)
        assert draft.id is not None
        assert draft.name == "New form"
        assert draft.fields == {}
        assert draft.status == FormStatus.DRAFT
        assert draft.parent_form_id is None
        assert draft.created_at is not None
        assert [e.type for e in events] == [EventType.DRAFT_CREATED]

    def test_draft_from_published_form(self, versions, survey):
        """Should copy name and fields and keep lineage to the source."""
        draft = versions.create_draft(WORKSPACE, source_form_id=survey.form.id)
        assert draft.id != survey.form.id
        assert draft.name == "Survey"
        assert draft.fields == survey.form.fields
        assert draft.parent_form_id == survey.form.id

    def test_clone_forgets_lineage(self, versions, survey, events):
        """Should drop lineage and emit clone.created when forgetting the parent."""
        draft = versions.create_draft(WORKSPACE, source_form_id=survey.form.id, forget_lineage=True)
        assert draft.parent_form_id is None
        assert events[-1].type == EventType.CLONE_CREATED
        assert events[-1].form_id == draft.id

    def test_draft_from_draft_inherits_lineage(self, versions, survey):
        """Should point a draft copied from a draft at the same published form."""
        first = versions.create_draft(WORKSPACE, source_form_id=survey.form.id)
        second = versions.create_draft(WORKSPACE, source_form_id=first.id)
        assert second.parent_form_id == survey.form.id

    def test_missing_source(self, versions):
        """Should raise NotFoundError for an unknown source form."""
        with pytest.raises(NotFoundError):
            versions.create_draft(WORKSPACE, source_form_id=9999)

    def test_source_in_other_workspace(self, versions, survey):
        """Should not see forms from another workspace."""
        with pytest.raises(NotFoundError):
            versions.create_draft("ws_other", source_form_id=survey.form.id)


class TestCopyForm:
    """Test copy_form naming and lineage."""

    def test_copy_published_form(self, versions, survey):
        """Should name the copy "<name> (COPY)" with identical fields and lineage."""
        copy = versions.copy_form(WORKSPACE, survey.form.id)
        assert copy.name == "Survey (COPY)"
        assert len(copy.fields) == len(survey.form.fields)
        assert copy.fields == survey.form.fields
        assert copy.parent_form_id == survey.form.id
        assert copy.status == FormStatus.DRAFT

    def test_copy_forgetting_parent(self, versions, survey):
        """Should leave parent_form_id empty when forgetting lineage."""
        copy = versions.copy_form(WORKSPACE, survey.form.id, forget_lineage=True)
        assert copy.parent_form_id is None
        assert copy.name == "Survey (COPY)"

    def test_explicit_suffix(self, versions, survey):
        """Should use an explicit suffix."""
        assert versions.copy_form(WORKSPACE, survey.form.id, suffix="v2").name == "Survey v2"

    def test_configured_suffix(self, storage, survey):
        """Should default to the manager's configured suffix."""
        manager = VersionManager(storage, copy_name_suffix="[copy]")
        assert manager.copy_form(WORKSPACE, survey.form.id).name == "Survey [copy]"

    def test_copy_is_independent(self, versions, survey):
        """Should not change the source when the copy is edited."""
        copy = versions.copy_form(WORKSPACE, survey.form.id)
        versions.delete_field(WORKSPACE, copy.id, survey.notes.key)
        assert survey.notes.key in versions.get_form(WORKSPACE, survey.form.id).fields


class TestDraftMutations:
    """Test field and settings changes on drafts."""

    def test_add_field(self, versions):
        """Should append a field with type-specific defaults and persist it."""
        draft = versions.create_draft(WORKSPACE)
        first = versions.add_field(WORKSPACE, draft.id, FormFieldType.TEXT_SINGLE)
        second = versions.add_field(WORKSPACE, draft.id, FormFieldType.SINGLE_SELECT)
        assert first.order == 1
        assert second.order == 2
        assert second.placeholder == "Choose an item"
        stored = versions.get_draft(WORKSPACE, draft.id)
        assert set(stored.fields) == {first.key, second.key}
        assert stored.fields[second.key] == second

    def test_reorder_fields(self, versions):
        """Should persist positions from the submitted order."""
        draft = versions.create_draft(WORKSPACE)
        f1, f2, f3 = (versions.add_field(WORKSPACE, draft.id, FormFieldType.TEXT_SINGLE) for _ in range(3))
        updated = versions.reorder_fields(WORKSPACE, draft.id, [f2.key, f1.key, f3.key])
        stored = versions.get_draft(WORKSPACE, draft.id)
        for form in (updated, stored):
            assert form.fields[f2.key].order == 0
            assert form.fields[f1.key].order == 1
            assert form.fields[f3.key].order == 2

    def test_update_fields(self, versions):
        """Should apply builder updates to the stored draft."""
        draft = versions.create_draft(WORKSPACE)
        field = versions.add_field(WORKSPACE, draft.id, FormFieldType.SINGLE_CHOICE)
        updated = versions.update_fields(WORKSPACE, draft.id, {
            f"[{field.id}]label": ["Size"],
            f"[{field.id}]required": ["on"],
            f"[{field.id}]options": ["S", "M", "L"],
        })
        stored = updated.fields[field.key]
        assert stored.label == "Size"
        assert stored.required is True
        assert [o.label for o in stored.options] == ["S", "M", "L"]
        assert versions.get_draft(WORKSPACE, draft.id).fields[field.key] == stored

    def test_update_fields_unknown_field(self, versions, survey):
        """Should reject keys naming a field not on the draft."""
        draft = versions.create_draft(WORKSPACE)
        with pytest.raises(InvalidStateError):
            versions.update_fields(WORKSPACE, draft.id, {f"[{survey.colour.id}]label": ["x"]})

    def test_delete_field(self, versions):
        """Should remove the field from the draft."""
        draft = versions.create_draft(WORKSPACE)
        field = versions.add_field(WORKSPACE, draft.id, FormFieldType.TEXT_SINGLE)
        versions.delete_field(WORKSPACE, draft.id, field.key)
        assert versions.get_draft(WORKSPACE, draft.id).fields == {}

    def test_delete_unknown_field(self, versions):
        """Should raise InvalidStateError for a field not on the draft."""
        draft = versions.create_draft(WORKSPACE)
        with pytest.raises(InvalidStateError):
            versions.delete_field(WORKSPACE, draft.id, "00000000-0000-4000-8000-000000000000")

    def test_update_settings(self, versions):
        """Should rename the draft and reset an empty name."""
        draft = versions.create_draft(WORKSPACE)
        assert versions.update_settings(WORKSPACE, draft.id, "Feedback").name == "Feedback"
        assert versions.update_settings(WORKSPACE, draft.id, "").name == "New form"

    def test_published_form_is_immutable(self, versions, survey):
        """Should refuse every mutation on a published form."""
        form_id = survey.form.id
        with pytest.raises(InvalidStateError):
            versions.add_field(WORKSPACE, form_id, FormFieldType.TEXT_SINGLE)
        with pytest.raises(InvalidStateError):
            versions.update_settings(WORKSPACE, form_id, "Renamed")
        with pytest.raises(InvalidStateError):
            versions.delete_field(WORKSPACE, form_id, survey.notes.key)
        with pytest.raises(InvalidStateError):
            versions.reorder_fields(WORKSPACE, form_id, [survey.notes.key])
        assert versions.get_form(WORKSPACE, form_id).name == "Survey"

    def test_missing_draft(self, versions):
        """Should raise NotFoundError for an unknown draft."""
        with pytest.raises(NotFoundError):
            versions.add_field(WORKSPACE, 9999, FormFieldType.TEXT_SINGLE)

    def test_draft_in_other_workspace(self, versions):
        """Should not mutate a draft from another workspace."""
        draft = versions.create_draft(WORKSPACE)
        with pytest.raises(NotFoundError):
            versions.update_settings("ws_other", draft.id, "x")


class TestPublishDraft:
    """Test publishing."""

    def test_publish_without_lineage_allocates_identity(self, versions, storage, survey):
        """Should create exactly one new published row and leave others untouched."""
        before = storage.get_form(WORKSPACE, survey.form.id).to_dict()
        draft = versions.create_draft(WORKSPACE)
        published = versions.publish_draft(WORKSPACE, draft.id)

        assert published.id not in (draft.id, survey.form.id)
        assert published.status == FormStatus.PUBLISHED
        assert published.parent_form_id is None
        assert sorted(published_ids(storage)) == sorted([survey.form.id, published.id])
        assert storage.get_form(WORKSPACE, survey.form.id).to_dict() == before
        with pytest.raises(NotFoundError):
            storage.get_form(WORKSPACE, draft.id)

    def test_publish_with_lineage_overwrites_parent(self, versions, storage, survey):
        """Should republish over the parent's identity and delete the draft."""
        draft = versions.create_draft(WORKSPACE, source_form_id=survey.form.id)
        versions.update_settings(WORKSPACE, draft.id, "Survey v2")
        versions.delete_field(WORKSPACE, draft.id, survey.notes.key)

        published = versions.publish_draft(WORKSPACE, draft.id)

        assert published.id == survey.form.id
        assert published_ids(storage) == [survey.form.id]
        stored = storage.get_form(WORKSPACE, survey.form.id)
        assert stored.name == "Survey v2"
        assert survey.notes.key not in stored.fields
        assert stored.status == FormStatus.PUBLISHED
        assert storage.list_forms(WORKSPACE, [FormStatus.DRAFT]) == []
        with pytest.raises(NotFoundError):
            storage.get_form(WORKSPACE, draft.id)

    def test_publish_keeps_created_at(self, versions, storage, survey):
        """Should keep the published form's creation time when republishing."""
        draft = versions.create_draft(WORKSPACE, source_form_id=survey.form.id)
        published = versions.publish_draft(WORKSPACE, draft.id)
        assert published.created_at == survey.form.created_at
        assert published.updated_at >= survey.form.updated_at

    def test_republish_after_parent_deleted(self, versions, storage, survey):
        """Should restore the parent identity if the published form was deleted meanwhile."""
        draft = versions.create_draft(WORKSPACE, source_form_id=survey.form.id)
        versions.delete_form(WORKSPACE, survey.form.id)
        published = versions.publish_draft(WORKSPACE, draft.id)
        assert published.id == survey.form.id
        assert published_ids(storage) == [survey.form.id]

    def test_publish_missing_draft(self, versions):
        """Should raise NotFoundError for an unknown draft."""
        with pytest.raises(NotFoundError):
            versions.publish_draft(WORKSPACE, 9999)

    def test_publish_twice(self, versions, storage):
        """Should publish a draft only once."""
        draft = versions.create_draft(WORKSPACE)
        versions.publish_draft(WORKSPACE, draft.id)
        with pytest.raises(NotFoundError):
            versions.publish_draft(WORKSPACE, draft.id)
        assert len(published_ids(storage)) == 1

    def test_concurrent_publish_once(self, versions, storage):
        """Should let exactly one of several concurrent publishers win."""
        draft = versions.create_draft(WORKSPACE)
        outcomes = []
        lock = threading.Lock()

        def worker():
            try:
                versions.publish_draft(WORKSPACE, draft.id)
                outcome = "published"
            except NotFoundError:
                outcome = "not_found"
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["not_found"] * 7 + ["published"]
        assert len(published_ids(storage)) == 1
        assert storage.list_forms(WORKSPACE, [FormStatus.DRAFT]) == []

    def test_publish_published_form(self, versions, survey):
        """Should not treat a published form as a draft."""
        with pytest.raises(NotFoundError):
            versions.publish_draft(WORKSPACE, survey.form.id)

    def test_identity_conflict_rolls_back(self, versions, storage):
        """Should report ConflictOnPublishError and keep the draft when the parent is in another workspace."""
        other = versions.publish_draft("ws_other", versions.create_draft("ws_other").id)
        draft = storage.save_draft(Form(workspace_id=WORKSPACE, name="Stray", parent_form_id=other.id))

        with pytest.raises(ConflictOnPublishError) as exc_info:
            versions.publish_draft(WORKSPACE, draft.id)

        assert isinstance(exc_info.value, PersistenceError)
        assert storage.get_draft(WORKSPACE, draft.id).name == "Stray"
        assert published_ids(storage) == []
        assert storage.get_form("ws_other", other.id).name == other.name

    def test_published_event(self, versions, events):
        """Should emit form.published for the published identity."""
        draft = versions.create_draft(WORKSPACE)
        published = versions.publish_draft(WORKSPACE, draft.id)
        event = events[-1]
        assert event.type == EventType.FORM_PUBLISHED
        assert event.form_id == published.id
        assert event.payload == {"draft_id": draft.id}


class TestPublishRollback:
    """Test that a failure after writing the published row leaves no trace."""

    def test_memory_rollback(self, monkeypatch):
        """Should restore the in-memory state when deleting the draft fails."""
        storage = MemoryStorage()
        versions = VersionManager(storage)
        draft = versions.create_draft(WORKSPACE)

        def fail(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(storage, "delete_form", fail)
        with pytest.raises(ConflictOnPublishError):
            versions.publish_draft(WORKSPACE, draft.id)
        assert published_ids(storage) == []
        assert storage.get_draft(WORKSPACE, draft.id).id == draft.id

    def test_sqlite_rollback(self, monkeypatch, tmp_path):
        """Should roll back the SQLite transaction when deleting the draft fails."""
        storage = frm.storage.sqlite.SQLiteStorage(tmp_path / "frm.db")
        versions = VersionManager(storage)
        draft = versions.create_draft(WORKSPACE)

        def fail(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(frm.storage.sqlite, "_delete_form", fail)
        with pytest.raises(ConflictOnPublishError):
            versions.publish_draft(WORKSPACE, draft.id)
        assert published_ids(storage) == []
        assert storage.get_draft(WORKSPACE, draft.id).id == draft.id


class TestFormQueries:
    """Test listing and deleting forms."""

    def test_list_forms_by_status(self, versions, survey):
        """Should filter by status."""
        draft = versions.create_draft(WORKSPACE)
        assert [f.id for f in versions.list_forms(WORKSPACE, [FormStatus.DRAFT])] == [draft.id]
        assert [f.id for f in versions.list_forms(WORKSPACE, [FormStatus.PUBLISHED])] == [survey.form.id]
        assert {f.id for f in versions.list_forms(WORKSPACE)} == {draft.id, survey.form.id}

    def test_list_forms_scoped_to_workspace(self, versions, survey):
        """Should not list forms from other workspaces."""
        assert versions.list_forms("ws_other") == []

    def test_delete_form(self, versions, events, survey):
        """Should delete the form and emit form.deleted."""
        versions.delete_form(WORKSPACE, survey.form.id)
        with pytest.raises(NotFoundError):
            versions.get_form(WORKSPACE, survey.form.id)
        assert events[-1].type == EventType.FORM_DELETED

    def test_delete_missing_form(self, versions):
        """Should raise NotFoundError for an unknown form."""
        with pytest.raises(NotFoundError):
            versions.delete_form(WORKSPACE, 9999)
