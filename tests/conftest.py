"""Shared fixtures.

Storage-facing tests are parametrized over the in-memory and SQLite backends
through the ``storage`` fixture.
"""

import uuid

import pytest

from frm.events import EventEmitter
from frm.models import FieldLogic, Form, FormField, Option
from frm.storage import MemoryStorage, SQLiteStorage
from frm.types import (
    FieldLogicComparator,
    FieldLogicTriggerAction,
    FormFieldType,
)
from frm.versions import VersionManager

WORKSPACE = "ws_test"


def make_options(*labels):
    options = []
    for order, label in enumerate(labels):
        option_id = uuid.uuid4()
        options.append(Option(id=option_id, value=str(option_id), label=label, order=order))
    return options


class Survey:
    """A three-field form: a required colour select, a reason field shown and
    required only when the colour is red, and optional notes."""

    def __init__(self, form: Form):
        self.form = form
        by_order = sorted(form.fields.values(), key=lambda f: f.order)
        self.colour, self.reason, self.notes = by_order

    @property
    def red(self) -> str:
        return self.colour.options[0].value

    @property
    def blue(self) -> str:
        return self.colour.options[1].value


def survey_fields():
    colour = FormField(
        id=uuid.uuid4(),
        type=FormFieldType.SINGLE_SELECT,
        order=1,
        label="Favourite colour",
        required=True,
        options=make_options("Red", "Blue"),
    )
    reason = FormField(
        id=uuid.uuid4(),
        type=FormFieldType.TEXT_SINGLE,
        order=2,
        label="Why red?",
        logic=FieldLogic.configure(
            colour.id,
            FieldLogicComparator.EQUAL,
            [colour.options[0].value],
            [FieldLogicTriggerAction.SHOW, FieldLogicTriggerAction.REQUIRE],
        ),
    )
    notes = FormField(id=uuid.uuid4(), type=FormFieldType.TEXT_MULTIPLE, order=3, label="Notes")
    return {f.key: f for f in (colour, reason, notes)}


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteStorage(tmp_path / "frm.db")
    return MemoryStorage()


@pytest.fixture
def emitter():
    return EventEmitter()


@pytest.fixture
def events(emitter):
    received = []
    emitter.on_any(received.append)
    return received


@pytest.fixture
def versions(storage, emitter):
    return VersionManager(storage, emitter=emitter)


@pytest.fixture
def survey_draft(storage):
    return Survey(storage.save_draft(Form(workspace_id=WORKSPACE, name="Survey", fields=survey_fields())))


@pytest.fixture
def survey(versions, survey_draft):
    return Survey(versions.publish_draft(WORKSPACE, survey_draft.form.id))
