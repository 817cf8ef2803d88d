from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from ...models.product import Product, ProductSourceName
from ..errors import DataAccessError, NetworkError, SchemaNotProvisionedError
from ..product_types import normalize_product_type
from .base import BaseRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductSource:
    """
    One backing table products are read from.

    Sources are consulted in priority order; see ``merge_by_priority``.
    """

    table: str
    default_title: str
    default_type: str
    columns: str
    # legacy project rows are their own project
    links_to_self: bool = False

    def normalize(self, row: Dict[str, Any]) -> Product:
        return Product(
            id=str(row["id"]),
            title=row.get("title") or self.default_title,
            type=normalize_product_type(row.get("type") or self.default_type),
            status=row.get("status") or "draft",
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            user_id=row.get("user_id"),
            project_id=str(row["id"]) if self.links_to_self else row.get("project_id"),
            metadata=row.get("metadata") or None,
            source=self.table,
        )


CREATOR_CONTENTS_SOURCE = ProductSource(
    table=ProductSourceName.CREATOR_CONTENTS,
    default_title="Untitled",
    default_type="other",
    columns="id,title,type,status,created_at,updated_at,user_id,project_id,metadata",
)

LEGACY_PROJECTS_SOURCE = ProductSource(
    table=ProductSourceName.PROJECTS,
    default_title="Untitled Project",
    default_type="project",
    columns="id,title,type,status,created_at,updated_at,user_id,metadata",
    links_to_self=True,
)

DEFAULT_SOURCES: Tuple[ProductSource, ...] = (CREATOR_CONTENTS_SOURCE, LEGACY_PROJECTS_SOURCE)


def merge_by_priority(batches: Sequence[List[Product]]) -> List[Product]:
    """
    Union of per-source batches, given in priority order.

    An id already taken by a higher-priority source is dropped from every
    later source; within one source each row is kept once.
    """
    merged: List[Product] = []
    seen_ids = set()
    for batch in batches:
        batch_ids = set()
        for product in batch:
            if product.id in seen_ids or product.id in batch_ids:
                continue
            batch_ids.add(product.id)
            merged.append(product)
        seen_ids |= batch_ids
    return merged


class ProductRepository(BaseRepository[Product]):
    """
    Products across every source table.

    New products are always written to the first source; updates and deletes
    go to the table the product was read from.
    """

    entity = "products"
    table = ProductSourceName.CREATOR_CONTENTS
    model = Product
    # the record cache holds only the priority winner written by get_by_id
    cache_updated_records = False

    def __init__(self, *args: Any, sources: Sequence[ProductSource] = DEFAULT_SOURCES, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.sources: Tuple[ProductSource, ...] = tuple(sources)
        self._by_table = {s.table: s for s in self.sources}

    def identity(self, item: Product) -> Hashable:
        return item.key

    def normalize(self, row: Dict[str, Any]) -> Product:
        source = self._by_table.get(row.get("source") or "", self.sources[0])
        return source.normalize(row)

    def _source_for(self, table: str | None) -> ProductSource:
        if table and table in self._by_table:
            return self._by_table[table]
        return self.sources[0]

    async def _load_source(self, source: ProductSource, user_id: str) -> Optional[List[Product]]:
        """Rows of one source, or None when its table is not provisioned."""
        try:
            rows = await self.client.select(
                source.table,
                filters={"user_id": user_id},
                columns=source.columns,
                order=self.order_column,
            )
        except SchemaNotProvisionedError:
            logger.warning(
                "The %s table doesn't exist yet. You may need to run migrations.",
                source.table,
                extra={"entity": self.entity, "table": source.table, "step": "load"},
            )
            return None
        return self.parse_rows(rows, source.normalize)

    async def load_rows(self, user_id: str) -> List[Product]:
        batches: List[List[Product]] = []
        first_error: DataAccessError | None = None
        missing = 0
        for source in self.sources:
            try:
                batch = await self._load_source(source, user_id)
            except NetworkError:
                raise
            except DataAccessError as exc:
                # one failing source must not hide the others
                logger.error(
                    "Error fetching %s: %s",
                    source.table,
                    exc,
                    extra={"entity": self.entity, "table": source.table, "step": "load"},
                )
                first_error = first_error or exc
                batches.append([])
                continue
            if batch is None:
                missing += 1
                batches.append([])
                continue
            batches.append(batch)

        if missing == len(self.sources):
            raise SchemaNotProvisionedError(
                "Database table not found. The system needs to be initialized with the proper schema.",
                code="42P01",
            )
        if first_error is not None and not any(batches):
            raise first_error
        return merge_by_priority(batches)

    async def lookup(self, record_id: str, user_id: str) -> Optional[Product]:
        # sequential: the first source holding the id wins
        for source in self.sources:
            try:
                row = await self.client.select_one(
                    source.table,
                    filters={"id": record_id, "user_id": user_id},
                    columns=source.columns,
                )
            except NetworkError:
                raise
            except DataAccessError as exc:
                logger.info(
                    "Error querying %s: %s",
                    source.table,
                    exc,
                    extra={"entity": self.entity, "table": source.table, "step": "get_by_id"},
                )
                continue
            if row:
                return self.parse(row, source.normalize)
        return None

    def find_local(self, record_id: str) -> Optional[Product]:
        for source in self.sources:
            for item in self.items:
                if item.id == record_id and item.source == source.table:
                    return item
        return None

    def creation_payload(self, data: BaseModel | Dict[str, Any], user) -> Dict[str, Any]:
        payload = super().creation_payload(data, user)
        payload.pop("source", None)
        if "type" in payload:
            payload["type"] = normalize_product_type(payload["type"])
        return payload

    def update_payload(self, data: BaseModel | Dict[str, Any]) -> Dict[str, Any]:
        payload = super().update_payload(data)
        payload.pop("source", None)
        if payload.get("type"):
            payload["type"] = normalize_product_type(payload["type"])
        return payload

    async def update(
        self,
        record_id: str,
        data: BaseModel | Dict[str, Any],
        source: str | None = None,
    ) -> Optional[Product]:
        if source is None:
            local = self.find_local(record_id)
            source = local.source if local is not None else None
        target = self._source_for(source)
        return await self._update_in(target.table, record_id, data, normalize=target.normalize)

    async def delete(self, record_id: str, source: str | None = None) -> bool:
        if source is None:
            local = self.find_local(record_id)
            source = local.source if local is not None else None
        target = self._source_for(source)
        return await self._delete_in(target.table, record_id, (target.table, record_id))
