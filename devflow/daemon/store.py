"""Entry store: interface plus a vault-backed implementation.

The vault store keeps one markdown file per entry under `entries/`, with
the full record in YAML front matter and the original text as the body,
so the vault stays readable in any markdown editor.
"""

import asyncio
import dataclasses
import inspect
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

import aiofiles
import frontmatter
import ulid
from loguru import logger

from .bus import Event, EventBus
from .error_handling import StoreError
from .models import Entry, Category, utc_now


class EntryNotFoundError(StoreError):
    """No entry with the requested id."""


@dataclass
class EntryFilter:
    owner_id: Optional[str] = None
    category: Optional[Category] = None
    order_by: str = "created_at"
    descending: bool = True
    limit: Optional[int] = None


ChangeCallback = Callable[[List[Entry]], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]

# Fields callers may change through update()
MUTABLE_FIELDS = {
    "is_completed", "content", "translated_content", "category", "tags",
    "priority", "due_date", "action_items", "reasoning"
}


class EntryStore(Protocol):
    """Document store operations the ingestion and search layers rely on."""

    async def create(self, entry: Entry) -> Entry: ...

    async def get(self, entry_id: str) -> Optional[Entry]: ...

    async def list(self, filters: Optional[EntryFilter] = None) -> List[Entry]: ...

    async def update(self, entry_id: str, changes: Dict[str, Any]) -> None: ...

    async def delete(self, entry_id: str) -> None: ...

    async def delete_all(self, owner_id: str) -> None: ...

    async def subscribe(self, callback: ChangeCallback,
                        filters: Optional[EntryFilter] = None) -> Unsubscribe: ...


class VaultEntryStore:
    """EntryStore writing front-matter markdown files into the vault."""

    def __init__(self, vault_path: Path, event_bus: Optional[EventBus] = None):
        self.vault_path = Path(vault_path)
        self.entries_path = self.vault_path / "entries"
        self.entries_path.mkdir(parents=True, exist_ok=True)
        self._event_bus = event_bus

    def _entry_path(self, entry_id: str) -> Path:
        # Ids come from request paths; only ULIDs name entry files
        try:
            canonical = str(ulid.ULID.from_str(entry_id))
        except (ValueError, TypeError) as e:
            raise EntryNotFoundError(f"Entry {entry_id} not found") from e
        return self.entries_path / f"{canonical}.md"

    async def create(self, entry: Entry) -> Entry:
        saved = dataclasses.replace(entry, id=entry.id or str(ulid.ULID()))
        await self._write(saved)
        await self._emit("entry.created", saved)
        logger.debug(f"Entry saved: {saved.id}")
        return saved

    async def get(self, entry_id: str) -> Optional[Entry]:
        try:
            path = self._entry_path(entry_id)
        except EntryNotFoundError:
            return None
        if not path.exists():
            return None
        return await self._read(path)

    async def list(self, filters: Optional[EntryFilter] = None) -> List[Entry]:
        filters = filters or EntryFilter()

        paths = sorted(self.entries_path.glob("*.md"))
        entries = await asyncio.gather(*(self._read(p) for p in paths))

        selected = [
            e for e in entries
            if (filters.owner_id is None or e.owner_id == filters.owner_id)
            and (filters.category is None or e.category == filters.category)
        ]

        if filters.order_by not in ("created_at", "updated_at"):
            raise StoreError(f"Cannot order by {filters.order_by}")
        selected.sort(key=lambda e: getattr(e, filters.order_by), reverse=filters.descending)

        if filters.limit is not None:
            selected = selected[:filters.limit]
        return selected

    async def update(self, entry_id: str, changes: Dict[str, Any]) -> None:
        entry = await self.get(entry_id)
        if entry is None:
            raise EntryNotFoundError(f"Entry {entry_id} not found")

        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise StoreError(f"Cannot update fields: {sorted(unknown)}")

        updated_at = max(utc_now(), entry.updated_at)
        updated = dataclasses.replace(entry, updated_at=updated_at, **changes)
        await self._write(updated)
        await self._emit("entry.updated", updated)

    async def delete(self, entry_id: str) -> None:
        path = self._entry_path(entry_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"Failed to delete entry {entry_id}: {e}") from e
        await self._emit("entry.deleted", None, entry_id=entry_id)

    async def delete_all(self, owner_id: str) -> None:
        entries = await self.list(EntryFilter(owner_id=owner_id))
        for entry in entries:
            try:
                self._entry_path(entry.id).unlink(missing_ok=True)
            except OSError as e:
                raise StoreError(f"Failed to delete entry {entry.id}: {e}") from e
        logger.info(f"Deleted {len(entries)} entries for {owner_id}")
        await self._emit("entry.deleted", None, owner_id=owner_id, count=len(entries))

    async def subscribe(self, callback: ChangeCallback,
                        filters: Optional[EntryFilter] = None) -> Unsubscribe:
        """
        Deliver the current matching entries now and after every change.

        Returns a function that cancels the subscription.
        """
        if self._event_bus is None:
            raise StoreError("Subscriptions need an event bus")

        async def deliver(_event: Optional[Event] = None) -> None:
            try:
                entries = await self.list(filters)
            except StoreError as e:
                logger.error(f"Error in entries subscription: {e}")
                return
            result = callback(entries)
            if inspect.isawaitable(result):
                await result

        subscription = self._event_bus.subscribe("entry.*", deliver)
        await deliver()
        return subscription.cancel

    async def _write(self, entry: Entry) -> None:
        # Body is for humans; the front matter copy of content is authoritative
        post = frontmatter.Post(entry.content)
        post.metadata.update(entry.to_dict())
        try:
            async with aiofiles.open(self._entry_path(entry.id), 'w', encoding='utf-8') as f:
                await f.write(frontmatter.dumps(post))
        except OSError as e:
            raise StoreError(f"Failed to write entry {entry.id}: {e}") from e

    async def _read(self, path: Path) -> Entry:
        try:
            async with aiofiles.open(path, 'r', encoding='utf-8') as f:
                text = await f.read()
        except OSError as e:
            raise StoreError(f"Failed to read {path.name}: {e}") from e

        try:
            post = frontmatter.loads(text)
            return Entry.from_dict(dict(post.metadata))
        except (KeyError, ValueError, TypeError) as e:
            raise StoreError(f"Corrupt entry file {path.name}: {e}") from e

    async def _emit(self, event_type: str, entry: Optional[Entry], **data: Any) -> None:
        if self._event_bus is None:
            return
        if entry is not None:
            data.update({"id": entry.id, "category": entry.category.value})
        await self._event_bus.emit(Event(type=event_type, data=data, source="entry_store"))
