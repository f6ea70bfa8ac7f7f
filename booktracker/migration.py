"""One-shot migration from the legacy local-only schema.

The legacy blob kept one list per status (``tbr``, ``librosActuales`` or the
older ``libroActual`` singleton, ``historial``, ``wishlist``) with Spanish
field names, and carried a ``progreso`` counter that the unified schema no
longer has. The presence of ``progreso`` is the legacy marker: blobs without
it are already unified and pass through untouched, which keeps migration
safe to re-run on its own output.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from booktracker.book import Book, BookFormat, BookStatus, Reading, StatusEntry
from booktracker.errors import LegacyMigrationError
from booktracker.history import status_message
from booktracker.ids import generate_unique_id, now_ms
from booktracker.models import DEFAULT_CONFIG, LibraryState, Saga, ScanRecord

logger = logging.getLogger(__name__)

LEGACY_MARKER = "progreso"

LEGACY_BOOK_FIELDS = {
    "titulo": "title",
    "autor": "author",
    "paginas": "pages",
    "sagaId": "saga_id",
    "sagaName": "saga_name",
    "ordenLectura": "reading_order",
    "fechaAgregado": "added_at",
    "fechaInicio": "started_at",
    "fechaFin": "finished_at",
    "fechaAbandonado": "abandoned_at",
    "fechaCompra": "purchased_at",
    "calificacion": "rating",
    "notas": "notes",
    "isbn": "isbn",
    "editorial": "publisher",
    "idioma": "language",
    "genero": "genre",
    "precio": "price",
    "publicacion": "published_year",
    "descripcion": "description",
    "categorias": "categories",
    "paginasLeidas": "pages_read",
    "ubicacion": "location",
    "prestado": "loaned",
    "prestadoA": "loaned_to",
    "fechaPrestamo": "loaned_at",
    "thumbnail": "thumbnail",
    "customImage": "custom_image",
}

LEGACY_FORMATS = {
    "fisico": BookFormat.PHYSICAL,
    "digital": BookFormat.DIGITAL,
    "audiolibro": BookFormat.AUDIOBOOK,
}

LEGACY_CONFIG_KEYS = {
    "puntosPorLibro": "points_per_book",
    "puntosPorSaga": "points_per_saga",
    "puntosPorPagina": "points_per_page",
    "puntosParaComprar": "points_to_purchase",
    "sistemaPuntosHabilitado": "points_enabled",
    "objetivoLecturaAnual": "yearly_reading_goal",
    "objetivoPaginasAnual": "yearly_pages_goal",
    "cameraPreference": "camera_preference",
    "notificacionesSaga": "saga_notifications",
}

# (legacy list key, target status, legacy timestamp field)
LEGACY_LISTS = (
    ("tbr", BookStatus.TBR, "fechaAgregado"),
    ("librosActuales", BookStatus.READING, "fechaInicio"),
    ("libroActual", BookStatus.READING, "fechaInicio"),
    ("historial", BookStatus.READ, "fechaFin"),
    ("wishlist", BookStatus.WISHLIST, "fechaAgregado"),
)


def is_legacy(blob: Optional[Mapping[str, Any]]) -> bool:
    return isinstance(blob, Mapping) and LEGACY_MARKER in blob


def load_local_state(blob: Optional[Mapping[str, Any]]) -> Optional[LibraryState]:
    """Turn a locally stored blob into a state, migrating only when the legacy marker is present."""
    if not blob:
        return None
    if is_legacy(blob):
        return migrate(blob)
    try:
        return LibraryState.from_snapshot(blob)
    except (KeyError, TypeError, ValueError) as e:
        raise LegacyMigrationError(f"Local state is malformed: {e}") from e


def migrate(old_state: Mapping[str, Any] | LibraryState) -> LibraryState:
    """Convert a legacy blob into the unified model.

    All-or-nothing: any malformed entry raises ``LegacyMigrationError`` and
    no partially migrated state is returned. Input that is not legacy is
    returned as its unified state.
    """
    if isinstance(old_state, LibraryState):
        return old_state
    if not isinstance(old_state, Mapping):
        raise LegacyMigrationError(f"Legacy state must be an object, got {type(old_state).__name__}")
    if not is_legacy(old_state):
        return LibraryState.from_snapshot(old_state)

    now = now_ms()
    try:
        books: list[Book] = []
        seen: set[int] = set()
        for list_key, status, date_key in LEGACY_LISTS:
            entries = old_state.get(list_key)
            if entries is None:
                continue
            if isinstance(entries, Mapping):
                entries = [entries]
            if not isinstance(entries, list):
                raise LegacyMigrationError(f"Legacy list {list_key!r} is not a list")
            for raw in entries:
                book = _migrate_book(raw, status, date_key, now)
                # libroActual usually mirrors an entry of librosActuales; first list wins
                if book.id in seen:
                    logger.warning(f"Skipping duplicate legacy book {book.id} in {list_key!r}")
                    continue
                seen.add(book.id)
                books.append(book)

        # progreso is only the marker, never currency
        state = LibraryState(
            config={**DEFAULT_CONFIG, **_migrate_config(old_state.get("config") or {})},
            books=tuple(books),
            sagas=tuple(_migrate_saga(s) for s in old_state.get("sagas") or ()),
            scan_history=tuple(_migrate_scan(r) for r in old_state.get("scanHistory") or ()),
            search_history=tuple(old_state.get("searchHistory") or ()),
            current_points=max(0, int(old_state.get("puntosActuales") or 0)),
            total_earned=max(0, int(old_state.get("puntosGanados") or 0)),
            books_purchased_with_points=int(old_state.get("librosCompradosConPuntos") or 0),
        )
    except LegacyMigrationError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise LegacyMigrationError(f"Legacy state is malformed: {e}") from e

    logger.info(f"Migrated legacy state: {len(state.books)} books, {len(state.sagas)} sagas")
    return state


def _migrate_book(raw: Any, status: BookStatus, date_key: str, now: int) -> Book:
    if not isinstance(raw, Mapping):
        raise LegacyMigrationError(f"Legacy book entry is not an object: {raw!r}")
    title = raw.get("titulo") or raw.get("title")
    if not title:
        raise LegacyMigrationError(f"Legacy book {raw.get('id')!r} has no title")

    attrs = {new: raw[old] for old, new in LEGACY_BOOK_FIELDS.items() if raw.get(old) is not None}
    attrs.pop("title", None)
    if raw.get("formato") in LEGACY_FORMATS:
        attrs["format"] = LEGACY_FORMATS[raw["formato"]]
    if not attrs.get("thumbnail") and raw.get("smallThumbnail"):
        attrs["thumbnail"] = raw["smallThumbnail"]
    if raw.get("lecturas"):
        attrs["readings"] = tuple(_migrate_reading(r) for r in raw["lecturas"])

    timestamp = raw.get(date_key) or now
    entry = StatusEntry(status=status, timestamp=int(timestamp), note=status_message(status))
    book = Book(
        id=int(raw["id"]) if raw.get("id") is not None else generate_unique_id(),
        title=str(title).strip(),
        status=status,
        status_history=(entry,),
    )
    return book.with_updates(attrs)


def _migrate_reading(raw: Mapping[str, Any]) -> Reading:
    return Reading(
        id=int(raw.get("id") or generate_unique_id()),
        start_date=raw.get("fechaInicio"),
        end_date=raw.get("fechaFin"),
        rating=raw.get("calificacion"),
        review=raw.get("reseña"),
        pages_read=raw.get("paginasLeidas"),
        notes=raw.get("notas"),
    )


def _migrate_saga(raw: Mapping[str, Any]) -> Saga:
    return Saga(
        id=int(raw["id"]),
        name=str(raw["name"]),
        count=int(raw.get("count") or 0),
        is_complete=bool(raw.get("isComplete", False)),
        description=raw.get("descripcion"),
        genre=raw.get("genero"),
        author=raw.get("autor"),
        created_at=raw.get("fechaCreacion"),
        completed_at=raw.get("fechaCompletado"),
    )


def _migrate_scan(raw: Mapping[str, Any]) -> ScanRecord:
    return ScanRecord(
        id=int(raw.get("id") or generate_unique_id()),
        isbn=str(raw.get("isbn") or ""),
        title=raw.get("titulo"),
        author=raw.get("autor"),
        timestamp=int(raw.get("timestamp") or now_ms()),
        success=bool(raw.get("success", False)),
        error_message=raw.get("errorMessage"),
    )


def _migrate_config(raw: Mapping[str, Any]) -> dict[str, Any]:
    return {LEGACY_CONFIG_KEYS.get(key, key): value for key, value in raw.items()}
