from __future__ import annotations

from stocknews.input_mode import (
    NORMAL,
    DeleteConfirm,
    Search,
    SourceAction,
    SourceField,
    SourceForm,
    backspace,
    switch_field,
    type_char,
)


def test_typing_into_search_buffer():
    mode = Search()
    for ch in "bbcx":
        mode = type_char(mode, ch)
    mode = backspace(mode)

    assert mode == Search(buffer="bbc")


def test_form_edits_only_the_active_field():
    form = SourceForm(action=SourceAction.ADD)
    form = type_char(form, "K")
    form = switch_field(form)
    form = type_char(type_char(form, "h"), "x")
    form = backspace(form)

    assert form.name == "K"
    assert form.url == "h"
    assert form.field is SourceField.URL
    assert form.active_text == "h"
    assert switch_field(form).field is SourceField.NAME


def test_modes_without_text_ignore_keys():
    assert type_char(NORMAL, "x") is NORMAL
    assert backspace(DeleteConfirm(index=1)) == DeleteConfirm(index=1)
    assert backspace(Search()) == Search()
