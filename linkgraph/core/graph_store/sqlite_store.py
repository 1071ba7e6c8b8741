"""
SQLite graph store implementation.

One aiosqlite connection in autocommit mode serves single-statement
operations; every upsert is an INSERT ... ON CONFLICT DO UPDATE ... RETURNING
so concurrent workers asserting the same entity, concept or edge converge on
one row. Multi-statement operations open a dedicated connection and run
under BEGIN IMMEDIATE.
"""

import json
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from linkgraph.core.graph_store.base import GraphStore
from linkgraph.core.normalizer import normalize, normalize_concept
from linkgraph.models.graph import (
    Bookmark,
    Cluster,
    Concept,
    EdgeKey,
    Entity,
    EntityType,
    NodeKind,
    NodeRef,
    Relationship,
    RelationshipType,
    node_ref,
    utcnow,
)
from linkgraph.models.query import (
    GraphCounts,
    GraphStats,
    MergeResult,
    TopConcept,
    TopEntity,
)
from linkgraph.utils.exceptions import (
    ConfigurationError,
    GraphStoreError,
    NotFoundError,
    ValidationError,
)
from linkgraph.utils.id_generator import (
    generate_cluster_id,
    generate_concept_id,
    generate_entity_id,
    generate_relationship_id,
)
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS clusters (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        coherence_score REAL,
        bookmark_count INTEGER NOT NULL DEFAULT 0,
        centroid TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS bookmarks (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        url TEXT NOT NULL DEFAULT '',
        title TEXT NOT NULL DEFAULT '',
        summary TEXT NOT NULL DEFAULT '',
        domain TEXT NOT NULL DEFAULT '',
        tags TEXT NOT NULL DEFAULT '[]',
        embedding TEXT,
        cluster_id TEXT REFERENCES clusters(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entities (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        normalized_name TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        occurrence_count INTEGER NOT NULL DEFAULT 0,
        first_seen_at TEXT NOT NULL,
        last_seen_at TEXT NOT NULL,
        metadata TEXT NOT NULL DEFAULT '{}'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS concepts (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        normalized_name TEXT NOT NULL,
        occurrence_count INTEGER NOT NULL DEFAULT 0,
        parent_concept_id TEXT REFERENCES concepts(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS relationships (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        source_type TEXT NOT NULL,
        source_id TEXT NOT NULL,
        target_type TEXT NOT NULL,
        target_id TEXT NOT NULL,
        relationship_type TEXT NOT NULL,
        weight REAL NOT NULL DEFAULT 1.0,
        metadata TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL
    )
    """,
    # Uniqueness keys the upserts converge on
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_entities_key
        ON entities(user_id, normalized_name, entity_type)
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_concepts_key ON concepts(user_id, normalized_name)",
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_relationships_key
        ON relationships(user_id, source_type, source_id, target_type, target_id, relationship_type)
    """,
    # Lookup indices
    "CREATE INDEX IF NOT EXISTS idx_bookmarks_user ON bookmarks(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_bookmarks_cluster ON bookmarks(cluster_id)",
    "CREATE INDEX IF NOT EXISTS idx_entities_count ON entities(user_id, occurrence_count)",
    "CREATE INDEX IF NOT EXISTS idx_concepts_count ON concepts(user_id, occurrence_count)",
    "CREATE INDEX IF NOT EXISTS idx_clusters_user ON clusters(user_id)",
    """
    CREATE INDEX IF NOT EXISTS idx_relationships_target
        ON relationships(user_id, target_type, target_id, relationship_type)
    """,
]

_UPSERT_RELATIONSHIP = """
    INSERT INTO relationships (
        id, user_id, source_type, source_id, target_type, target_id,
        relationship_type, weight, metadata, created_at
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT (user_id, source_type, source_id, target_type, target_id, relationship_type)
    DO UPDATE SET
        weight = excluded.weight,
        metadata = excluded.metadata
    RETURNING *
"""


def _placeholders(values: list[Any]) -> str:
    return ",".join("?" * len(values))


class SQLiteGraphStore(GraphStore):
    """
    SQLite-based graph store for bookmarks, entities, concepts, clusters
    and the typed relationships between them.

    Features:
    - Atomic upserts keyed on the graph's uniqueness constraints
    - WAL journal so readers never see half-applied transactions
    - Transactional cluster creation/merge and concept re-parenting
    """

    def __init__(self, db_path: str = "data/linkgraph.db", busy_timeout: float = 30.0):
        """
        Initialize SQLite graph store.

        Args:
            db_path: Path to SQLite database file
            busy_timeout: Seconds to wait on a locked database before failing
        """
        if db_path == ":memory:":
            raise ConfigurationError(
                "SQLiteGraphStore needs a file database; transactions use a second connection",
                {"db_path": db_path},
            )

        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self.connection: aiosqlite.Connection | None = None

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def _open(self) -> aiosqlite.Connection:
        connection = await aiosqlite.connect(
            self.db_path, timeout=self.busy_timeout, isolation_level=None
        )
        connection.row_factory = aiosqlite.Row
        await connection.execute("PRAGMA foreign_keys = ON")
        return connection

    async def connect(self) -> None:
        """Establish connection to SQLite."""
        if self.connection is None:
            self.connection = await self._open()

    async def initialize(self) -> None:
        """Initialize database schema."""
        await self.connect()
        await self.connection.execute("PRAGMA journal_mode = WAL")

        for statement in _SCHEMA:
            await self.connection.execute(statement)

        logger.info(f"Graph store initialized at {self.db_path}")

    async def close(self) -> None:
        """Close the connection."""
        if self.connection is not None:
            await self.connection.close()
            self.connection = None

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run a block on a dedicated connection inside BEGIN IMMEDIATE ... COMMIT."""
        try:
            connection = await self._open()
        except aiosqlite.Error as e:
            raise GraphStoreError(f"Could not open transaction connection: {e}") from e

        try:
            await connection.execute("BEGIN IMMEDIATE")
        except aiosqlite.Error as e:
            await connection.close()
            raise GraphStoreError(f"Could not start transaction: {e}") from e

        try:
            yield connection
        except BaseException as e:
            await connection.execute("ROLLBACK")
            if isinstance(e, aiosqlite.Error):
                raise GraphStoreError(f"Transaction failed: {e}") from e
            raise
        else:
            await connection.execute("COMMIT")
        finally:
            await connection.close()

    async def _fetchall(self, query: str, params: Iterable[Any] = ()) -> list[aiosqlite.Row]:
        await self.connect()
        try:
            cursor = await self.connection.execute(query, tuple(params))
            return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise GraphStoreError(f"Graph store query failed: {e}", {"query": query}) from e

    async def _fetchone(self, query: str, params: Iterable[Any] = ()) -> aiosqlite.Row | None:
        # fetchall drains the statement so an autocommit write is fully applied
        rows = await self._fetchall(query, params)
        return rows[0] if rows else None

    # ═══════════════════════════════════════════════════════════
    # BOOKMARKS
    # ═══════════════════════════════════════════════════════════

    async def upsert_bookmark(self, bookmark: Bookmark) -> Bookmark:
        row = await self._fetchone(
            """
            INSERT INTO bookmarks (
                id, user_id, url, title, summary, domain, tags, embedding, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (id) DO UPDATE SET
                url = excluded.url,
                title = excluded.title,
                summary = excluded.summary,
                domain = excluded.domain,
                tags = excluded.tags,
                embedding = excluded.embedding
            WHERE bookmarks.user_id = excluded.user_id
            RETURNING *
            """,
            (
                bookmark.id,
                bookmark.user_id,
                bookmark.url,
                bookmark.title,
                bookmark.summary,
                bookmark.domain,
                json.dumps(bookmark.tags),
                json.dumps(bookmark.embedding) if bookmark.embedding is not None else None,
                bookmark.created_at.isoformat(),
            ),
        )

        if row is None:
            raise ValidationError(
                f"Bookmark {bookmark.id} belongs to another user",
                {"bookmark_id": bookmark.id, "user_id": bookmark.user_id},
            )

        return self._row_to_bookmark(row)

    async def get_bookmark(self, bookmark_id: str, user_id: str) -> Bookmark | None:
        row = await self._fetchone(
            "SELECT * FROM bookmarks WHERE id = ? AND user_id = ?", (bookmark_id, user_id)
        )
        return self._row_to_bookmark(row) if row else None

    async def get_bookmarks(self, bookmark_ids: Iterable[str], user_id: str) -> dict[str, Bookmark]:
        ids = list(dict.fromkeys(bookmark_ids))
        if not ids:
            return {}

        rows = await self._fetchall(
            f"SELECT * FROM bookmarks WHERE user_id = ? AND id IN ({_placeholders(ids)})",
            [user_id, *ids],
        )
        return {row["id"]: self._row_to_bookmark(row) for row in rows}

    async def list_bookmarks(
        self,
        user_id: str,
        with_embedding: bool = False,
        cluster_id: str | None = None,
        limit: int | None = None,
    ) -> list[Bookmark]:
        query = "SELECT * FROM bookmarks WHERE user_id = ?"
        params: list[Any] = [user_id]

        if with_embedding:
            query += " AND embedding IS NOT NULL"
        if cluster_id is not None:
            query += " AND cluster_id = ?"
            params.append(cluster_id)

        query += " ORDER BY created_at DESC, id"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        rows = await self._fetchall(query, params)
        return [self._row_to_bookmark(row) for row in rows]

    # ═══════════════════════════════════════════════════════════
    # ENTITIES & CONCEPTS
    # ═══════════════════════════════════════════════════════════

    async def upsert_entity(
        self,
        user_id: str,
        name: str,
        entity_type: EntityType,
        mention_delta: int = 1,
        context: str | None = None,
    ) -> Entity:
        normalized = normalize(name, entity_type)
        if normalized is None:
            raise ValidationError(f"Entity name not usable: {name!r}", {"name": name})
        if mention_delta < 0:
            raise ValidationError("mention_delta must be >= 0", {"mention_delta": mention_delta})

        now = utcnow().isoformat()
        metadata = {"first_mention_context": context} if context else {}

        row = await self._fetchone(
            """
            INSERT INTO entities (
                id, user_id, name, normalized_name, entity_type,
                occurrence_count, first_seen_at, last_seen_at, metadata
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id, normalized_name, entity_type) DO UPDATE SET
                name = excluded.name,
                occurrence_count = entities.occurrence_count + excluded.occurrence_count,
                last_seen_at = excluded.last_seen_at
            RETURNING *
            """,
            (
                generate_entity_id(),
                user_id,
                normalized.display,
                normalized.key,
                EntityType(entity_type).value,
                mention_delta,
                now,
                now,
                json.dumps(metadata),
            ),
        )
        return self._row_to_entity(row)

    async def get_entity(self, entity_id: str, user_id: str) -> Entity | None:
        row = await self._fetchone(
            "SELECT * FROM entities WHERE id = ? AND user_id = ?", (entity_id, user_id)
        )
        return self._row_to_entity(row) if row else None

    async def get_entities(self, entity_ids: Iterable[str], user_id: str) -> dict[str, Entity]:
        ids = list(dict.fromkeys(entity_ids))
        if not ids:
            return {}

        rows = await self._fetchall(
            f"SELECT * FROM entities WHERE user_id = ? AND id IN ({_placeholders(ids)})",
            [user_id, *ids],
        )
        return {row["id"]: self._row_to_entity(row) for row in rows}

    async def list_entities(
        self, user_id: str, entity_type: EntityType | None = None, limit: int = 50
    ) -> list[Entity]:
        query = "SELECT * FROM entities WHERE user_id = ?"
        params: list[Any] = [user_id]

        if entity_type is not None:
            query += " AND entity_type = ?"
            params.append(EntityType(entity_type).value)

        query += " ORDER BY occurrence_count DESC, normalized_name LIMIT ?"
        params.append(limit)

        rows = await self._fetchall(query, params)
        return [self._row_to_entity(row) for row in rows]

    async def upsert_concept(self, user_id: str, name: str, mention_delta: int = 1) -> Concept:
        normalized = normalize_concept(name)
        if normalized is None:
            raise ValidationError(f"Concept name not usable: {name!r}", {"name": name})
        if mention_delta < 0:
            raise ValidationError("mention_delta must be >= 0", {"mention_delta": mention_delta})

        row = await self._fetchone(
            """
            INSERT INTO concepts (
                id, user_id, name, normalized_name, occurrence_count, created_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id, normalized_name) DO UPDATE SET
                name = excluded.name,
                occurrence_count = concepts.occurrence_count + excluded.occurrence_count
            RETURNING *
            """,
            (
                generate_concept_id(),
                user_id,
                normalized.display,
                normalized.key,
                mention_delta,
                utcnow().isoformat(),
            ),
        )
        return self._row_to_concept(row)

    async def get_concept(self, concept_id: str, user_id: str) -> Concept | None:
        row = await self._fetchone(
            "SELECT * FROM concepts WHERE id = ? AND user_id = ?", (concept_id, user_id)
        )
        return self._row_to_concept(row) if row else None

    async def get_concepts(self, concept_ids: Iterable[str], user_id: str) -> dict[str, Concept]:
        ids = list(dict.fromkeys(concept_ids))
        if not ids:
            return {}

        rows = await self._fetchall(
            f"SELECT * FROM concepts WHERE user_id = ? AND id IN ({_placeholders(ids)})",
            [user_id, *ids],
        )
        return {row["id"]: self._row_to_concept(row) for row in rows}

    async def list_concepts(self, user_id: str, limit: int = 100) -> list[Concept]:
        rows = await self._fetchall(
            """
            SELECT * FROM concepts WHERE user_id = ?
            ORDER BY occurrence_count DESC, normalized_name
            LIMIT ?
            """,
            (user_id, limit),
        )
        return [self._row_to_concept(row) for row in rows]

    async def set_concept_parent(self, concept_id: str, parent_id: str, user_id: str) -> Concept:
        if concept_id == parent_id:
            raise ValidationError(
                "A concept cannot be its own parent", {"concept_id": concept_id}
            )

        async with self._transaction() as conn:
            cursor = await conn.execute(
                "SELECT id FROM concepts WHERE user_id = ? AND id IN (?, ?)",
                (user_id, concept_id, parent_id),
            )
            if len(await cursor.fetchall()) < 2:
                raise NotFoundError(
                    "Concept not found",
                    {"concept_id": concept_id, "parent_id": parent_id, "user_id": user_id},
                )

            # Walk up from the proposed parent; meeting concept_id means a cycle
            cursor = await conn.execute(
                """
                WITH RECURSIVE ancestors(id) AS (
                    SELECT ?
                    UNION
                    SELECT c.parent_concept_id
                    FROM concepts c JOIN ancestors a ON c.id = a.id
                    WHERE c.parent_concept_id IS NOT NULL
                )
                SELECT 1 FROM ancestors WHERE id = ? LIMIT 1
                """,
                (parent_id, concept_id),
            )
            if await cursor.fetchone():
                raise ValidationError(
                    "Concept hierarchy would contain a cycle",
                    {"concept_id": concept_id, "parent_id": parent_id},
                )

            cursor = await conn.execute(
                "UPDATE concepts SET parent_concept_id = ? WHERE id = ? RETURNING *",
                (parent_id, concept_id),
            )
            row = (await cursor.fetchall())[0]

        return self._row_to_concept(row)

    async def concept_co_occurrences(
        self, concept_id: str, user_id: str, min_co_occurrence: int = 2, limit: int = 20
    ) -> list[tuple[str, int, float]]:
        rows = await self._fetchall(
            """
            SELECT other.target_id AS concept_id,
                   COUNT(DISTINCT other.source_id) AS shared,
                   AVG(other.weight) AS avg_weight
            FROM relationships base
            JOIN relationships other
              ON other.user_id = base.user_id
             AND other.source_type = 'bookmark'
             AND other.source_id = base.source_id
             AND other.target_type = 'concept'
             AND other.relationship_type = 'about'
             AND other.target_id <> base.target_id
            WHERE base.user_id = ?
              AND base.source_type = 'bookmark'
              AND base.target_type = 'concept'
              AND base.target_id = ?
              AND base.relationship_type = 'about'
            GROUP BY other.target_id
            HAVING shared >= ?
            ORDER BY shared DESC, avg_weight DESC, other.target_id
            LIMIT ?
            """,
            (user_id, concept_id, min_co_occurrence, limit),
        )
        return [(row["concept_id"], row["shared"], row["avg_weight"]) for row in rows]

    # ═══════════════════════════════════════════════════════════
    # RELATIONSHIPS
    # ═══════════════════════════════════════════════════════════

    async def upsert_relationship(
        self, key: EdgeKey, weight: float, metadata: dict[str, Any] | None = None
    ) -> Relationship:
        params = self._relationship_params(key, weight, metadata)
        row = await self._fetchone(_UPSERT_RELATIONSHIP, params)
        return self._row_to_relationship(row)

    async def upsert_symmetric_relationship(
        self,
        user_id: str,
        first: NodeRef,
        second: NodeRef,
        relationship_type: RelationshipType,
        weight: float,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[Relationship, Relationship]:
        forward = EdgeKey(
            user_id=user_id, source=first, target=second, relationship_type=relationship_type
        )
        backward = EdgeKey(
            user_id=user_id, source=second, target=first, relationship_type=relationship_type
        )
        forward_params = self._relationship_params(forward, weight, metadata)
        backward_params = self._relationship_params(backward, weight, metadata)

        async with self._transaction() as conn:
            cursor = await conn.execute(_UPSERT_RELATIONSHIP, forward_params)
            forward_row = (await cursor.fetchall())[0]
            cursor = await conn.execute(_UPSERT_RELATIONSHIP, backward_params)
            backward_row = (await cursor.fetchall())[0]

        return self._row_to_relationship(forward_row), self._row_to_relationship(backward_row)

    def _relationship_params(
        self, key: EdgeKey, weight: float, metadata: dict[str, Any] | None
    ) -> tuple:
        if not 0.0 <= weight <= 1.0:
            raise ValidationError(
                f"Relationship weight must be in [0, 1], got {weight}",
                {"source": str(key.source), "target": str(key.target)},
            )

        return (
            generate_relationship_id(),
            key.user_id,
            key.source.kind.value,
            key.source.id,
            key.target.kind.value,
            key.target.id,
            key.relationship_type.value,
            weight,
            json.dumps(metadata or {}),
            utcnow().isoformat(),
        )

    async def get_relationship(self, key: EdgeKey) -> Relationship | None:
        row = await self._fetchone(
            """
            SELECT * FROM relationships
            WHERE user_id = ? AND source_type = ? AND source_id = ?
              AND target_type = ? AND target_id = ? AND relationship_type = ?
            """,
            (
                key.user_id,
                key.source.kind.value,
                key.source.id,
                key.target.kind.value,
                key.target.id,
                key.relationship_type.value,
            ),
        )
        return self._row_to_relationship(row) if row else None

    async def find_relationships(
        self,
        user_id: str,
        source: NodeRef | None = None,
        target: NodeRef | None = None,
        source_kind: NodeKind | None = None,
        target_kind: NodeKind | None = None,
        relationship_type: RelationshipType | None = None,
        exclude_source_id: str | None = None,
        limit: int | None = None,
    ) -> list[Relationship]:
        query = "SELECT * FROM relationships WHERE user_id = ?"
        params: list[Any] = [user_id]

        if source is not None:
            query += " AND source_type = ? AND source_id = ?"
            params.extend([source.kind.value, source.id])
        if target is not None:
            query += " AND target_type = ? AND target_id = ?"
            params.extend([target.kind.value, target.id])
        if source_kind is not None:
            query += " AND source_type = ?"
            params.append(NodeKind(source_kind).value)
        if target_kind is not None:
            query += " AND target_type = ?"
            params.append(NodeKind(target_kind).value)
        if relationship_type is not None:
            query += " AND relationship_type = ?"
            params.append(RelationshipType(relationship_type).value)
        if exclude_source_id is not None:
            query += " AND source_id <> ?"
            params.append(exclude_source_id)

        query += " ORDER BY weight DESC, created_at, id"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        rows = await self._fetchall(query, params)
        return [self._row_to_relationship(row) for row in rows]

    async def delete_relationships_touching(
        self, bookmark_id: str, user_id: str
    ) -> list[Relationship]:
        rows = await self._fetchall(
            """
            DELETE FROM relationships
            WHERE user_id = ?
              AND ((source_type = 'bookmark' AND source_id = ?)
                OR (target_type = 'bookmark' AND target_id = ?))
            RETURNING *
            """,
            (user_id, bookmark_id, bookmark_id),
        )
        return [self._row_to_relationship(row) for row in rows]

    # ═══════════════════════════════════════════════════════════
    # CLUSTERS
    # ═══════════════════════════════════════════════════════════

    async def create_cluster(
        self,
        user_id: str,
        name: str,
        description: str | None = None,
        bookmark_ids: Iterable[str] = (),
        coherence_score: float | None = None,
        centroid: list[float] | None = None,
    ) -> Cluster:
        ids = list(dict.fromkeys(bookmark_ids))
        cluster_id = generate_cluster_id()
        now = utcnow().isoformat()

        async with self._transaction() as conn:
            await conn.execute(
                """
                INSERT INTO clusters (
                    id, user_id, name, description, coherence_score,
                    bookmark_count, centroid, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?)
                """,
                (
                    cluster_id,
                    user_id,
                    name,
                    description,
                    coherence_score,
                    json.dumps(centroid) if centroid is not None else None,
                    now,
                    now,
                ),
            )

            members = 0
            if ids:
                cursor = await conn.execute(
                    f"""
                    SELECT DISTINCT cluster_id FROM bookmarks
                    WHERE user_id = ? AND cluster_id IS NOT NULL AND id IN ({_placeholders(ids)})
                    """,
                    [user_id, *ids],
                )
                previous = [row["cluster_id"] for row in await cursor.fetchall()]

                cursor = await conn.execute(
                    f"""
                    UPDATE bookmarks SET cluster_id = ?
                    WHERE user_id = ? AND id IN ({_placeholders(ids)})
                    RETURNING id
                    """,
                    [cluster_id, user_id, *ids],
                )
                members = len(await cursor.fetchall())

                # Bookmarks moved out of older clusters
                for old_id in previous:
                    await conn.execute(
                        """
                        UPDATE clusters
                        SET bookmark_count = (SELECT COUNT(*) FROM bookmarks WHERE cluster_id = ?),
                            updated_at = ?
                        WHERE id = ?
                        """,
                        (old_id, now, old_id),
                    )

            cursor = await conn.execute(
                "UPDATE clusters SET bookmark_count = ? WHERE id = ? RETURNING *",
                (members, cluster_id),
            )
            row = (await cursor.fetchall())[0]

        logger.info(f"Created cluster {cluster_id} ({members} bookmarks) for user {user_id}")
        return self._row_to_cluster(row)

    async def get_cluster(self, cluster_id: str, user_id: str) -> Cluster | None:
        row = await self._fetchone(
            "SELECT * FROM clusters WHERE id = ? AND user_id = ?", (cluster_id, user_id)
        )
        return self._row_to_cluster(row) if row else None

    async def list_clusters(self, user_id: str, limit: int = 20) -> list[Cluster]:
        rows = await self._fetchall(
            """
            SELECT * FROM clusters WHERE user_id = ?
            ORDER BY bookmark_count DESC, created_at
            LIMIT ?
            """,
            (user_id, limit),
        )
        return [self._row_to_cluster(row) for row in rows]

    async def merge_clusters(self, target_id: str, source_id: str, user_id: str) -> MergeResult:
        if target_id == source_id:
            raise ValidationError("Cannot merge a cluster into itself", {"cluster_id": target_id})

        now = utcnow().isoformat()

        async with self._transaction() as conn:
            cursor = await conn.execute(
                "SELECT id, bookmark_count FROM clusters WHERE user_id = ? AND id IN (?, ?)",
                (user_id, target_id, source_id),
            )
            found = {row["id"]: row["bookmark_count"] for row in await cursor.fetchall()}
            if target_id not in found or source_id not in found:
                raise NotFoundError(
                    "Cluster not found",
                    {"target_id": target_id, "source_id": source_id, "user_id": user_id},
                )

            merged_count = found[source_id]

            await conn.execute(
                "UPDATE bookmarks SET cluster_id = ? WHERE user_id = ? AND cluster_id = ?",
                (target_id, user_id, source_id),
            )
            await conn.execute(
                """
                UPDATE clusters SET bookmark_count = bookmark_count + ?, updated_at = ?
                WHERE id = ?
                """,
                (merged_count, now, target_id),
            )
            # Membership edges follow the bookmarks; anything else on source goes with it
            await conn.execute(
                """
                UPDATE OR REPLACE relationships SET target_id = ?
                WHERE user_id = ? AND target_type = 'cluster' AND target_id = ?
                  AND relationship_type = 'belongs_to_cluster'
                """,
                (target_id, user_id, source_id),
            )
            await conn.execute(
                """
                DELETE FROM relationships
                WHERE user_id = ?
                  AND ((source_type = 'cluster' AND source_id = ?)
                    OR (target_type = 'cluster' AND target_id = ?))
                """,
                (user_id, source_id, source_id),
            )
            await conn.execute("DELETE FROM clusters WHERE id = ?", (source_id,))

        logger.info(f"Merged cluster {source_id} into {target_id} ({merged_count} bookmarks)")
        return MergeResult(target_cluster_id=target_id, merged_count=merged_count)

    # ═══════════════════════════════════════════════════════════
    # STATISTICS
    # ═══════════════════════════════════════════════════════════

    async def get_graph_stats(self, user_id: str, top_n: int = 10) -> GraphStats:
        row = await self._fetchone(
            """
            SELECT
                (SELECT COUNT(*) FROM entities WHERE user_id = ?) AS entities,
                (SELECT COUNT(*) FROM concepts WHERE user_id = ?) AS concepts,
                (SELECT COUNT(*) FROM clusters WHERE user_id = ?) AS clusters,
                (SELECT COUNT(*) FROM relationships WHERE user_id = ?) AS relationships
            """,
            (user_id, user_id, user_id, user_id),
        )
        counts = GraphCounts(
            entities=row["entities"],
            concepts=row["concepts"],
            clusters=row["clusters"],
            relationships=row["relationships"],
        )

        top_entities = [
            TopEntity(
                name=entity.name,
                entity_type=entity.entity_type,
                occurrence_count=entity.occurrence_count,
            )
            for entity in await self.list_entities(user_id, limit=top_n)
        ]
        top_concepts = [
            TopConcept(name=concept.name, occurrence_count=concept.occurrence_count)
            for concept in await self.list_concepts(user_id, limit=top_n)
        ]

        return GraphStats(counts=counts, top_entities=top_entities, top_concepts=top_concepts)

    # ═══════════════════════════════════════════════════════════
    # HELPER METHODS
    # ═══════════════════════════════════════════════════════════

    def _row_to_bookmark(self, row: aiosqlite.Row) -> Bookmark:
        return Bookmark(
            id=row["id"],
            user_id=row["user_id"],
            url=row["url"],
            title=row["title"],
            summary=row["summary"],
            domain=row["domain"],
            tags=json.loads(row["tags"]) if row["tags"] else [],
            embedding=json.loads(row["embedding"]) if row["embedding"] else None,
            cluster_id=row["cluster_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _row_to_entity(self, row: aiosqlite.Row) -> Entity:
        return Entity(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            normalized_name=row["normalized_name"],
            entity_type=EntityType(row["entity_type"]),
            occurrence_count=row["occurrence_count"],
            first_seen_at=datetime.fromisoformat(row["first_seen_at"]),
            last_seen_at=datetime.fromisoformat(row["last_seen_at"]),
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        )

    def _row_to_concept(self, row: aiosqlite.Row) -> Concept:
        return Concept(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            normalized_name=row["normalized_name"],
            occurrence_count=row["occurrence_count"],
            parent_concept_id=row["parent_concept_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _row_to_cluster(self, row: aiosqlite.Row) -> Cluster:
        return Cluster(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            description=row["description"],
            coherence_score=row["coherence_score"],
            bookmark_count=row["bookmark_count"],
            centroid=json.loads(row["centroid"]) if row["centroid"] else None,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _row_to_relationship(self, row: aiosqlite.Row) -> Relationship:
        return Relationship(
            id=row["id"],
            user_id=row["user_id"],
            source=node_ref(row["source_type"], row["source_id"]),
            target=node_ref(row["target_type"], row["target_id"]),
            relationship_type=RelationshipType(row["relationship_type"]),
            weight=row["weight"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_at=datetime.fromisoformat(row["created_at"]),
        )
