"""Input modes as tagged variants with pure per-mode transitions.

The UI decides which key maps to which transition; ``App`` applies the
side effects (saving a source, running a search) when a mode is confirmed.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union


class SourceAction(str, Enum):
    ADD = "add"
    EDIT = "edit"


class SourceField(str, Enum):
    NAME = "name"
    URL = "url"


@dataclass(frozen=True)
class Normal:
    pass


@dataclass(frozen=True)
class Search:
    buffer: str = ""


@dataclass(frozen=True)
class SourceForm:
    action: SourceAction
    field: SourceField = SourceField.NAME
    name: str = ""
    url: str = ""
    index: Optional[int] = None

    @property
    def active_text(self) -> str:
        return self.name if self.field is SourceField.NAME else self.url


@dataclass(frozen=True)
class DeleteConfirm:
    index: int


InputMode = Union[Normal, Search, SourceForm, DeleteConfirm]

NORMAL = Normal()


def switch_field(form: SourceForm) -> SourceForm:
    other = SourceField.URL if form.field is SourceField.NAME else SourceField.NAME
    return replace(form, field=other)


def type_char(mode: InputMode, ch: str) -> InputMode:
    if isinstance(mode, Search):
        return replace(mode, buffer=mode.buffer + ch)
    if isinstance(mode, SourceForm):
        if mode.field is SourceField.NAME:
            return replace(mode, name=mode.name + ch)
        return replace(mode, url=mode.url + ch)
    return mode


def backspace(mode: InputMode) -> InputMode:
    if isinstance(mode, Search):
        return replace(mode, buffer=mode.buffer[:-1])
    if isinstance(mode, SourceForm):
        if mode.field is SourceField.NAME:
            return replace(mode, name=mode.name[:-1])
        return replace(mode, url=mode.url[:-1])
    return mode
