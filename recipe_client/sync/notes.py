"""Ordered, observable list of the notes attached to one recipe (newest first)."""

from typing import Callable, Iterable, Optional

from recipe_client.models.models import Note


NotesListener = Callable[[tuple[Note, ...]], None]


class NoteList:
    """Local note state owned by a recipe detail screen."""

    def __init__(self, notes: Iterable[Note] = ()) -> None:
        self._notes: list[Note] = list(notes)
        self._listeners: list[NotesListener] = []

    @property
    def notes(self) -> tuple[Note, ...]:
        return tuple(self._notes)

    def __len__(self) -> int:
        return len(self._notes)

    def subscribe(self, listener: NotesListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        snapshot = self.notes
        for listener in list(self._listeners):
            listener(snapshot)

    def index_of(self, note_id: str) -> int:
        for index, note in enumerate(self._notes):
            if note.id == note_id:
                return index
        return -1

    def get(self, note_id: str) -> Optional[Note]:
        index = self.index_of(note_id)
        return self._notes[index] if index >= 0 else None

    def replace_all(self, notes: Iterable[Note]) -> None:
        self._notes = list(notes)
        self._changed()

    def prepend(self, note: Note) -> None:
        self._notes.insert(0, note)
        self._changed()

    def insert(self, index: int, note: Note) -> None:
        """Insert at `index`, clamped to the current bounds."""
        self._notes.insert(max(0, min(index, len(self._notes))), note)
        self._changed()

    def replace(self, note_id: str, note: Note) -> bool:
        index = self.index_of(note_id)
        if index < 0:
            return False
        self._notes[index] = note
        self._changed()
        return True

    def update(self, note_id: str, **changes) -> bool:
        index = self.index_of(note_id)
        if index < 0:
            return False
        self._notes[index] = self._notes[index].model_copy(update=changes)
        self._changed()
        return True

    def remove(self, note_id: str) -> Optional[tuple[int, Note]]:
        """Remove a note. Returns `(index, note)` for a later re-insert, or None if absent."""
        index = self.index_of(note_id)
        if index < 0:
            return None
        note = self._notes.pop(index)
        self._changed()
        return index, note
