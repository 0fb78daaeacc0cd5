"""Optimistic mutation coordinator for favorites and notes.

apply() is the general mechanism:

1. Snapshot the current value of the target field(s).
2. Commit the desired value locally, synchronously, before any I/O.
3. Send the request.
4. On success, reconcile local state with what the server returned
   (for example a server-assigned note id replacing the temporary one).
5. On failure, restore the snapshot and report the error.

In-flight mutations are keyed by (kind, target id). Favorite toggles are
exclusive: re-clicks on the same recipe are ignored until the first one
resolves. Note mutations on different notes never block each other, and an
edit rolls back only if the note still shows the text that edit wrote.

Notes created locally carry `tmp_<n>` ids until the server confirms them. The
temporary id is then aliased to the server id, so later updates and deletes
addressed to it reach the right note. An update to an unconfirmed note waits
for the confirmation. A delete withdraws the pending creation instead of
calling the server with an id it never issued. The local note goes away at
once; if the server still creates it, it is deleted again under its real id.
"""

import asyncio
import itertools
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol

from recipe_client.api.client import RecipeApiClient
from recipe_client.models.models import (
    TEMP_ID_PREFIX,
    MutationIntent,
    MutationKind,
    Note,
    Recipe,
    SyncResult,
)
from recipe_client.sync.notes import NoteList
from recipe_client.utils.errors import (
    AuthenticationRequiredError,
    NoteValidationError,
    RecipeClientError,
    RequestFailedError,
)
from recipe_client.utils.logger import logger


class ItemHolder(Protocol):
    """Anything that exposes recipes by id: a collection store or a detail screen."""

    def get_item(self, item_id: str) -> Optional[Recipe]: ...

    def update_item(self, item_id: str, **changes) -> bool: ...


class MutationAbandoned(Exception):
    """Internal signal: the mutation was withdrawn locally and must not be rolled back."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OptimisticMutationCoordinator:
    """Applies local changes immediately and reconciles them with the server."""

    def __init__(self, api: RecipeApiClient) -> None:
        self.api = api
        self._in_flight: dict[tuple[MutationKind, str], list[MutationIntent]] = {}
        self._temp_ids = itertools.count(1)
        self._aliases: dict[str, str] = {}
        self._confirmations: dict[str, asyncio.Future] = {}
        self._abandoned_creates: set[str] = set()

    # -------------------------State------------------------- #

    def is_pending(self, target_id: str, kind: Optional[MutationKind] = None) -> bool:
        """Whether a mutation on `target_id` (optionally of one kind) is in flight.

        A temporary id and the server id it was confirmed as name the same note.
        """
        server_id = self.resolve_id(target_id)
        ids = {server_id} | {temp for temp, alias in self._aliases.items() if alias == server_id}
        return any(
            intents and key[1] in ids and (kind is None or key[0] is kind)
            for key, intents in self._in_flight.items()
        )

    def resolve_id(self, note_id: str) -> str:
        """Map a confirmed temporary id to its server id; other ids pass through."""
        return self._aliases.get(note_id, note_id)

    # -------------------------Core------------------------- #

    async def apply(
        self,
        intent: MutationIntent,
        snapshot: Callable[[], Any],
        commit: Callable[[Any], Any],
        send: Callable[[], Awaitable[Any]],
        reconcile: Optional[Callable[[Any], Any]] = None,
        restore: Optional[Callable[[Any], Any]] = None,
        exclusive: bool = True,
    ) -> SyncResult:
        """Apply `intent` optimistically.

        Args:
            intent: What is being changed; `previous_state` is filled in here.
            snapshot: Reads the current local value.
            commit: Writes a value locally (called with `desired_state`).
            send: Issues the request; its return value goes to `reconcile`.
            reconcile: Adjusts local state to the server's canonical answer.
            restore: Rolls back with the snapshot; defaults to `commit`.
            exclusive: Reject the intent while another one with the same key is in flight.

        Returns:
            SyncResult: ok(response), failed(error) after rollback, skipped() when
            rejected by the in-flight guard, cancelled() when withdrawn locally.
        """
        if exclusive and self._in_flight.get(intent.key):
            logger.debug(f"Ignoring {intent.kind.value} on {intent.target_id}: already in flight")
            return SyncResult.skipped()

        intent.previous_state = snapshot()
        commit(intent.desired_state)
        self._in_flight.setdefault(intent.key, []).append(intent)
        rollback = restore or commit

        try:
            response = await send()
        except MutationAbandoned:
            logger.info(f"{intent.kind.value} on {intent.target_id} withdrawn before confirmation")
            return SyncResult.cancelled()
        except asyncio.CancelledError:
            rollback(intent.previous_state)
            raise
        except Exception as e:
            rollback(intent.previous_state)
            logger.warning(f"{intent.kind.value} on {intent.target_id} failed, rolled back: {e}")
            return SyncResult.failed(e)
        finally:
            intents = self._in_flight.get(intent.key, [])
            if intent in intents:
                intents.remove(intent)
            if not intents:
                self._in_flight.pop(intent.key, None)

        if reconcile is not None:
            reconcile(response)
        return SyncResult.ok(response)

    # -------------------------Favorites------------------------- #

    async def toggle_favorite(self, holder: ItemHolder, item_id: str) -> SyncResult:
        """Flip a recipe's favorite flag; re-clicks are ignored while one is in flight."""
        if not self.api.credentials.is_authenticated:
            return SyncResult.rejected(AuthenticationRequiredError("save favorites"))

        item = holder.get_item(item_id)
        if item is None:
            logger.debug(f"Favorite toggle for unknown recipe {item_id}")
            return SyncResult.skipped()

        desired = not item.is_favorite
        intent = MutationIntent(target_id=item_id, kind=MutationKind.FAVORITE, desired_state=desired)

        def snapshot() -> bool:
            return holder.get_item(item_id).is_favorite

        def commit(value: bool) -> None:
            holder.update_item(item_id, is_favorite=value)

        return await self.apply(
            intent,
            snapshot=snapshot,
            commit=commit,
            send=lambda: self.api.set_favorite(item_id, desired),
            reconcile=commit,
        )

    # -------------------------Notes------------------------- #

    async def create_note(self, notes: NoteList, recipe_id: str, content: str) -> SyncResult:
        """Show a note under a temporary id at once, then swap in the server's note."""
        text = (content or "").strip()
        if not text:
            return SyncResult.rejected(NoteValidationError())

        temp_id = f"{TEMP_ID_PREFIX}{next(self._temp_ids)}"
        confirmation = asyncio.get_running_loop().create_future()
        self._confirmations[temp_id] = confirmation
        intent = MutationIntent(
            target_id=temp_id,
            kind=MutationKind.CREATE_NOTE,
            desired_state=Note(id=temp_id, content=text, created_at=_now()),
        )

        async def send() -> Note:
            try:
                created = await self.api.create_note(recipe_id, text)
            except Exception:
                if temp_id in self._abandoned_creates:
                    raise MutationAbandoned(temp_id) from None
                raise

            if temp_id in self._abandoned_creates:
                # Deleted while the request was out: undo the creation on the server
                if created is not None:
                    await self._compensate_delete(recipe_id, created.id)
                raise MutationAbandoned(temp_id)
            if created is None:
                raise RequestFailedError(
                    f"Create note for recipe {recipe_id} returned no note id",
                    user_message="Failed to add note",
                )
            return created

        def reconcile(created: Note) -> None:
            confirmed = created
            current = notes.get(temp_id)
            # Keep an edit the user made while creation was in flight
            if current is not None and current.content != text:
                confirmed = created.model_copy(update={"content": current.content})
            self._aliases[temp_id] = created.id
            notes.replace(temp_id, confirmed)
            logger.info(f"Note {temp_id} confirmed as {created.id}")

        try:
            return await self.apply(
                intent,
                snapshot=lambda: None,
                commit=notes.prepend,
                send=send,
                reconcile=reconcile,
                restore=lambda _: notes.remove(temp_id),
            )
        finally:
            self._abandoned_creates.discard(temp_id)
            self._confirmations.pop(temp_id, None)
            if not confirmation.done():
                confirmation.set_result(self._aliases.get(temp_id))

    async def update_note(self, notes: NoteList, recipe_id: str, note_id: str, content: str) -> SyncResult:
        """Edit a note in place; restores the old text if the server refuses."""
        text = (content or "").strip()
        if not text:
            return SyncResult.rejected(NoteValidationError())

        target = self.resolve_id(note_id)
        if notes.get(target) is None:
            logger.debug(f"Update for unknown note {note_id}")
            return SyncResult.skipped()

        unconfirmed = notes.get(target).is_temporary
        intent = MutationIntent(target_id=target, kind=MutationKind.UPDATE_NOTE, desired_state=text)

        def current() -> Optional[Note]:
            return notes.get(self.resolve_id(target))

        def commit(value: str) -> None:
            notes.update(self.resolve_id(target), content=value)

        def restore(previous: str) -> None:
            note = current()
            if note is not None and note.content == text:
                commit(previous)

        async def send() -> Optional[Note]:
            server_id = target
            if unconfirmed:
                server_id = await self._await_confirmation(target)
                if server_id is None:
                    raise MutationAbandoned(target)
            return await self.api.update_note(recipe_id, server_id, text)

        def reconcile(updated: Optional[Note]) -> None:
            note = current()
            if note is None or note.content != text:
                return
            changes: dict[str, Any] = {"updated_at": _now()}
            if updated is not None:
                if updated.content:
                    changes["content"] = updated.content
                if updated.updated_at is not None:
                    changes["updated_at"] = updated.updated_at
            notes.update(note.id, **changes)

        return await self.apply(
            intent,
            snapshot=lambda: current().content,
            commit=commit,
            send=send,
            reconcile=reconcile,
            restore=restore,
            exclusive=False,
        )

    async def delete_note(self, notes: NoteList, recipe_id: str, note_id: str) -> SyncResult:
        """Remove a note at once; it reappears in place if the server refuses."""
        target = self.resolve_id(note_id)

        if target in self._abandoned_creates:
            return SyncResult.skipped()
        if target in self._confirmations:
            # Never confirmed: withdraw the creation, no request for this id.
            # The create request may already have reached the server, so it
            # is left to finish and compensated in create_note.
            notes.remove(target)
            self._abandoned_creates.add(target)
            logger.info(f"Deleted unconfirmed note {target}; creation withdrawn")
            return SyncResult.ok()

        if notes.get(target) is None:
            logger.debug(f"Delete for unknown note {note_id}")
            return SyncResult.skipped()

        intent = MutationIntent(target_id=target, kind=MutationKind.DELETE_NOTE)

        def restore(previous: tuple[int, Note]) -> None:
            index, note = previous
            if notes.get(note.id) is None:
                notes.insert(index, note)

        return await self.apply(
            intent,
            snapshot=lambda: (notes.index_of(target), notes.get(target)),
            commit=lambda _: notes.remove(target),
            send=lambda: self.api.delete_note(recipe_id, target),
            restore=restore,
        )

    async def _await_confirmation(self, temp_id: str) -> Optional[str]:
        """Wait for a pending creation; returns the server id or None if it never landed."""
        confirmation = self._confirmations.get(temp_id)
        if confirmation is None:
            return self._aliases.get(temp_id)
        return await asyncio.shield(confirmation)

    async def _compensate_delete(self, recipe_id: str, note_id: str) -> None:
        try:
            await self.api.delete_note(recipe_id, note_id)
        except RecipeClientError as e:
            logger.warning(f"Could not remove withdrawn note {note_id} on the server: {e}")
