"""
知识图谱 SQLite + FTS5 存储层

提供：
- 实体/关系的持久化与查询
- 实体解析：按 (小写名称, 类型) 去重，命中则合并，否则插入
- 关系去重：同一 (from, to, type) 三元组只保留一条，重复推断时合并来源
- FTS5 全文检索（实体名称、观察记录）
- 供图遍历使用的快照读取（带写入版本号）

同一实例的异步方法共享一把 asyncio.Lock；
实体和关系的读-判断-写在一个 BEGIN IMMEDIATE 事务内完成，
共享同一数据库文件的其它实例或进程也会被串行化。
写入版本号保存在 kg_meta 表中，随每个写事务递增。
"""

from __future__ import annotations

import asyncio
import copy
import re
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from devmemory.core.config_manager import get_config_manager
from devmemory.knowledge_graph.kg_errors import PersistenceError
from devmemory.knowledge_graph.kg_models import (
    Entity,
    EntitySearchResult,
    EntityType,
    RelationDirection,
    Relationship,
    RelationType,
    entity_key,
)
from devmemory.utils.logger import get_logger

logger = get_logger("kg_storage")

# ── 常量 ──
_SCHEMA_VERSION = 1
MAX_ENTITY_CONFIDENCE = 0.95
_TOKEN_RE = re.compile(r"[\w.+#/-]+")

# 搜索打分
_EXACT_SCORE = 1.0
_PREFIX_SCORE = 0.8
_SUBSTRING_SCORE = 0.6
_TOKEN_OVERLAP_MAX = 0.5
_OBSERVATION_MAX = 0.3
_CONNECTIVITY_BONUS = 0.005
_CONNECTIVITY_CAP = 20


def _clamp(value: float, hi: float = 1.0) -> float:
    return max(0.0, min(hi, float(value)))


class KGStorage:
    """SQLite + FTS5 知识图谱存储"""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()

    # ================================================================
    # 生命周期
    # ================================================================

    async def initialize(self, db_path: Optional[Path] = None) -> None:
        """初始化数据库（建表 + FTS5，幂等）"""
        if db_path is not None:
            self._db_path = db_path
        if self._db_path is None:
            raise PersistenceError("KGStorage requires a database path")
        try:
            self._conn = sqlite3.connect(
                str(self._db_path),
                timeout=get_config_manager().get("storage.busy_timeout"),
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._create_tables()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to initialize knowledge graph database: {e}") from e
        logger.debug(f"KGStorage initialized: {self._db_path}")

    def _create_tables(self) -> None:
        """建表（幂等）"""
        with self._tx() as cur:
            # ── 实体表 ──
            cur.execute("""
                CREATE TABLE IF NOT EXISTS kg_entities (
                    id                TEXT PRIMARY KEY,
                    name              TEXT NOT NULL,
                    name_key          TEXT NOT NULL,
                    entity_type       TEXT NOT NULL,
                    properties        TEXT NOT NULL DEFAULT '{}',
                    observations      TEXT NOT NULL DEFAULT '[]',
                    confidence        REAL NOT NULL DEFAULT 0.5,
                    source_record_ids TEXT NOT NULL DEFAULT '[]',
                    created_time      TEXT NOT NULL,
                    updated_time      TEXT NOT NULL,
                    UNIQUE(name_key, entity_type)
                )
            """)

            # ── 关系表 ──
            cur.execute("""
                CREATE TABLE IF NOT EXISTS kg_relationships (
                    id                TEXT PRIMARY KEY,
                    from_entity_id    TEXT NOT NULL,
                    to_entity_id      TEXT NOT NULL,
                    relation_type     TEXT NOT NULL,
                    properties        TEXT NOT NULL DEFAULT '{}',
                    strength          REAL NOT NULL DEFAULT 0.5,
                    confidence        REAL NOT NULL DEFAULT 0.5,
                    source_record_ids TEXT NOT NULL DEFAULT '[]',
                    created_time      TEXT NOT NULL,
                    updated_time      TEXT NOT NULL,
                    UNIQUE(from_entity_id, to_entity_id, relation_type),
                    FOREIGN KEY(from_entity_id) REFERENCES kg_entities(id) ON DELETE CASCADE,
                    FOREIGN KEY(to_entity_id) REFERENCES kg_entities(id) ON DELETE CASCADE
                )
            """)

            # ── 索引 ──
            cur.execute("CREATE INDEX IF NOT EXISTS idx_entities_type ON kg_entities(entity_type)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_entities_name_key ON kg_entities(name_key)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_rel_from ON kg_relationships(from_entity_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_rel_to ON kg_relationships(to_entity_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_rel_type ON kg_relationships(relation_type)")

            # ── FTS5 虚拟表 ──
            cur.execute("""
                CREATE VIRTUAL TABLE IF NOT EXISTS kg_entities_fts
                USING fts5(
                    name,
                    observations,
                    content='kg_entities',
                    content_rowid='rowid',
                    tokenize='unicode61'
                )
            """)

            # ── FTS 触发器（自动同步） ──
            cur.executescript("""
                CREATE TRIGGER IF NOT EXISTS kg_entities_ai AFTER INSERT ON kg_entities BEGIN
                    INSERT INTO kg_entities_fts(rowid, name, observations)
                    VALUES (new.rowid, new.name, new.observations);
                END;
                CREATE TRIGGER IF NOT EXISTS kg_entities_ad AFTER DELETE ON kg_entities BEGIN
                    INSERT INTO kg_entities_fts(kg_entities_fts, rowid, name, observations)
                    VALUES ('delete', old.rowid, old.name, old.observations);
                END;
                CREATE TRIGGER IF NOT EXISTS kg_entities_au AFTER UPDATE ON kg_entities BEGIN
                    INSERT INTO kg_entities_fts(kg_entities_fts, rowid, name, observations)
                    VALUES ('delete', old.rowid, old.name, old.observations);
                    INSERT INTO kg_entities_fts(rowid, name, observations)
                    VALUES (new.rowid, new.name, new.observations);
                END;
            """)

            # ── 版本标记 ──
            cur.execute("""
                CREATE TABLE IF NOT EXISTS kg_meta (
                    key   TEXT PRIMARY KEY,
                    value TEXT
                )
            """)
            cur.execute(
                "INSERT OR REPLACE INTO kg_meta(key, value) VALUES (?, ?)",
                ("schema_version", str(_SCHEMA_VERSION)),
            )
            cur.execute("INSERT OR IGNORE INTO kg_meta(key, value) VALUES ('revision', '0')")

    async def close(self) -> None:
        """关闭数据库连接"""
        async with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def get_revision(self) -> int:
        """数据库写入版本号，任一连接提交写入后递增"""
        async with self._lock:
            with self._guard("get_revision"):
                return self._read_revision_sync()

    def _read_revision_sync(self) -> int:
        assert self._conn
        row = self._conn.execute("SELECT value FROM kg_meta WHERE key = 'revision'").fetchone()
        return int(row[0]) if row else 0

    @contextmanager
    def _tx(self):
        """简化事务上下文"""
        if self._conn is None:
            raise PersistenceError("KGStorage not initialized")
        cur = self._conn.cursor()
        try:
            yield cur
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    @contextmanager
    def _write_tx(self):
        """写事务：BEGIN IMMEDIATE 先拿到数据库写锁，读-判断-写都在同一事务内

        其它连接（其它 KGStorage 实例或进程）的写入会等待本事务提交。
        提交前递增 kg_meta 中的版本号。
        """
        if self._conn is None:
            raise PersistenceError("KGStorage not initialized")
        self._conn.execute("BEGIN IMMEDIATE")
        cur = self._conn.cursor()
        try:
            yield cur
            cur.execute(
                "UPDATE kg_meta SET value = CAST(value AS INTEGER) + 1 WHERE key = 'revision'"
            )
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    @contextmanager
    def _read_tx(self):
        """读事务：多条 SELECT 看到同一个快照"""
        if self._conn is None:
            raise PersistenceError("KGStorage not initialized")
        self._conn.execute("BEGIN")
        try:
            yield self._conn
        finally:
            self._conn.commit()

    @contextmanager
    def _guard(self, operation: str):
        """把 sqlite3 异常转换为 PersistenceError"""
        if self._conn is None:
            raise PersistenceError(f"{operation} failed: KGStorage not initialized")
        try:
            yield self._conn
        except sqlite3.Error as e:
            raise PersistenceError(f"{operation} failed: {e}") from e

    # ================================================================
    # 实体写入（解析 + 去重）
    # ================================================================

    async def upsert_entity(self, candidate: Entity) -> Entity:
        """插入或合并实体（按 小写名称 + 类型 去重）

        已存在：合并观察记录和来源，置信度取较大值（不超过 0.95）。
        不存在：以新 ID 插入。
        查找和写入在同一个写事务内完成，共享同一数据库的多个实例不会丢失彼此的合并结果。
        """
        async with self._lock:
            with self._guard("upsert_entity"):
                return self._upsert_entity_sync(candidate)

    def _upsert_entity_sync(self, candidate: Entity) -> Entity:
        key = entity_key(candidate.name, candidate.entity_type)
        with self._write_tx() as cur:
            existing = self._find_entity_sync(*key)
            if existing is None:
                entity = copy.deepcopy(candidate)
                entity.confidence = _clamp(entity.confidence, MAX_ENTITY_CONFIDENCE)
                if entity.source_record_ids:
                    entity.properties.setdefault("first_record_id", entity.source_record_ids[0])
                self._insert_entity(cur, entity)
                return entity

            self._merge_entity(existing, candidate)
            self._update_entity(cur, existing)
            return existing

    @staticmethod
    def _merge_entity(existing: Entity, candidate: Entity) -> None:
        """合并策略：置信度只增不减，观察只追加，来源取并集"""
        new_sources = [s for s in candidate.source_record_ids if s not in existing.source_record_ids]
        existing.confidence = _clamp(
            max(existing.confidence, candidate.confidence), MAX_ENTITY_CONFIDENCE
        )
        for obs in candidate.observations:
            existing.add_observation(obs)
        existing.add_sources(candidate.source_record_ids)

        props = existing.properties
        for k, v in candidate.properties.items():
            if k == "mention_count":
                if new_sources:
                    props["mention_count"] = props.get("mention_count", 1) + int(v or 1)
            elif k == "record_kind":
                props["last_record_kind"] = v
            elif k not in props:
                props[k] = v
        existing.updated_time = datetime.now()

    def _find_entity_sync(self, name_key: str, entity_type: str) -> Optional[Entity]:
        assert self._conn
        row = self._conn.execute(
            "SELECT * FROM kg_entities WHERE name_key = ? AND entity_type = ?",
            (name_key, entity_type),
        ).fetchone()
        return Entity.from_row(dict(row)) if row else None

    @staticmethod
    def _insert_entity(cur: sqlite3.Cursor, entity: Entity) -> None:
        cur.execute(
            """INSERT INTO kg_entities
               (id, name, name_key, entity_type, properties, observations,
                confidence, source_record_ids, created_time, updated_time)
               VALUES (:id, :name, :name_key, :entity_type, :properties, :observations,
                       :confidence, :source_record_ids, :created_time, :updated_time)""",
            entity.to_dict(),
        )

    @staticmethod
    def _update_entity(cur: sqlite3.Cursor, entity: Entity) -> None:
        cur.execute(
            """UPDATE kg_entities SET
                properties=:properties, observations=:observations,
                confidence=:confidence, source_record_ids=:source_record_ids,
                updated_time=:updated_time
               WHERE id=:id""",
            entity.to_dict(),
        )

    # ================================================================
    # 实体查询
    # ================================================================

    async def get_entity(self, entity_id: str) -> Optional[Entity]:
        """按 ID 获取实体"""
        async with self._lock:
            with self._guard("get_entity") as conn:
                row = conn.execute(
                    "SELECT * FROM kg_entities WHERE id = ?", (entity_id,)
                ).fetchone()
                return Entity.from_row(dict(row)) if row else None

    async def find_entities_by_name(
        self, name: str, entity_type: Optional[EntityType] = None
    ) -> List[Entity]:
        """按名称（大小写不敏感）查找实体，可限定类型"""
        async with self._lock:
            with self._guard("find_entities_by_name") as conn:
                name_key = name.strip().lower()
                if entity_type is not None:
                    rows = conn.execute(
                        "SELECT * FROM kg_entities WHERE name_key = ? AND entity_type = ?",
                        (name_key, EntityType(entity_type).value),
                    ).fetchall()
                else:
                    rows = conn.execute(
                        "SELECT * FROM kg_entities WHERE name_key = ? ORDER BY confidence DESC",
                        (name_key,),
                    ).fetchall()
                return [Entity.from_row(dict(r)) for r in rows]

    async def find_entity_by_name(
        self, name: str, entity_type: Optional[EntityType] = None
    ) -> Optional[Entity]:
        """按名称查找单个实体（多个类型同名时取置信度最高的）"""
        entities = await self.find_entities_by_name(name, entity_type)
        return entities[0] if entities else None

    async def get_entities_by_type(self, entity_type: EntityType, limit: int = 50) -> List[Entity]:
        """按类型列出实体（置信度降序）"""
        async with self._lock:
            with self._guard("get_entities_by_type") as conn:
                rows = conn.execute(
                    """SELECT * FROM kg_entities WHERE entity_type = ?
                       ORDER BY confidence DESC, name_key LIMIT ?""",
                    (EntityType(entity_type).value, limit),
                ).fetchall()
                return [Entity.from_row(dict(r)) for r in rows]

    async def get_all_entities(self, limit: int = 10000) -> List[Entity]:
        """获取所有实体"""
        async with self._lock:
            with self._guard("get_all_entities") as conn:
                rows = conn.execute(
                    "SELECT * FROM kg_entities ORDER BY created_time, rowid LIMIT ?", (limit,)
                ).fetchall()
                return [Entity.from_row(dict(r)) for r in rows]

    async def search_entities(
        self,
        query: str,
        limit: int = 20,
        entity_type: Optional[EntityType] = None,
    ) -> List[EntitySearchResult]:
        """关键词搜索实体

        候选来自 FTS5（名称 + 观察记录）和名称 LIKE 匹配；
        按文本相关度加少量连接度加分排序。
        """
        query = (query or "").strip()
        if not query or limit <= 0:
            return []
        async with self._lock:
            with self._guard("search_entities"):
                return self._search_entities_sync(query, limit, entity_type)

    def _search_entities_sync(
        self,
        query: str,
        limit: int,
        entity_type: Optional[EntityType],
    ) -> List[EntitySearchResult]:
        assert self._conn
        pool = limit * 5
        candidates: Dict[str, Entity] = {}

        fts_query = self._build_fts_query(query)
        if fts_query:
            try:
                rows = self._conn.execute(
                    """SELECT e.* FROM kg_entities e
                       JOIN kg_entities_fts f ON e.rowid = f.rowid
                       WHERE kg_entities_fts MATCH ?
                       ORDER BY f.rank
                       LIMIT ?""",
                    (fts_query, pool),
                ).fetchall()
            except sqlite3.OperationalError:
                # FTS 查询语法错误时只用 LIKE
                rows = []
            for r in rows:
                candidates.setdefault(r["id"], Entity.from_row(dict(r)))

        pattern = f"%{self._escape_like(query.lower())}%"
        rows = self._conn.execute(
            "SELECT * FROM kg_entities WHERE name_key LIKE ? ESCAPE '\\' LIMIT ?",
            (pattern, pool),
        ).fetchall()
        for r in rows:
            candidates.setdefault(r["id"], Entity.from_row(dict(r)))

        if entity_type is not None:
            wanted = EntityType(entity_type)
            candidates = {k: e for k, e in candidates.items() if e.entity_type == wanted}
        if not candidates:
            return []

        counts = self._relationship_counts_sync(candidates.keys())
        query_l = query.lower()
        tokens = set(_TOKEN_RE.findall(query_l))
        results: List[EntitySearchResult] = []
        for entity in candidates.values():
            relevance = self._text_relevance(query_l, tokens, entity)
            if relevance <= 0:
                continue
            count = counts.get(entity.id, 0)
            score = relevance + _CONNECTIVITY_BONUS * min(count, _CONNECTIVITY_CAP)
            results.append(EntitySearchResult(
                entity=entity,
                relevance_score=round(score, 4),
                relationship_count=count,
            ))

        results.sort(
            key=lambda r: (r.relevance_score, r.relationship_count, r.entity.confidence),
            reverse=True,
        )
        return results[:limit]

    @staticmethod
    def _text_relevance(query_l: str, tokens: set, entity: Entity) -> float:
        """名称精确 > 前缀 > 子串 > 词重叠 > 观察记录命中"""
        name_l = entity.name.lower()
        if name_l == query_l:
            return _EXACT_SCORE
        if name_l.startswith(query_l):
            return _PREFIX_SCORE
        if query_l in name_l:
            return _SUBSTRING_SCORE

        score = 0.0
        if tokens:
            name_tokens = set(_TOKEN_RE.findall(name_l))
            overlap = len(tokens & name_tokens) / len(tokens)
            score = _TOKEN_OVERLAP_MAX * overlap

            obs_text = " ".join(entity.observations).lower()
            if obs_text:
                if query_l in obs_text:
                    hit = 1.0
                else:
                    hit = sum(1 for t in tokens if t in obs_text) / len(tokens)
                score = max(score, _OBSERVATION_MAX * hit)
        return score

    @staticmethod
    def _build_fts_query(query: str) -> str:
        """构建 FTS5 查询表达式

        按词切分并用 OR 连接以提高召回。
        """
        tokens = re.findall(r"\w+", query)
        if not tokens:
            return ""
        safe_tokens = [t.replace('"', '""') for t in tokens]
        if len(safe_tokens) == 1:
            return f'"{safe_tokens[0]}"'
        return " OR ".join(f'"{t}"' for t in safe_tokens)

    @staticmethod
    def _escape_like(text: str) -> str:
        return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

    # ================================================================
    # 关系写入（三元组去重）
    # ================================================================

    async def upsert_relationship(self, rel: Relationship) -> Tuple[Relationship, bool]:
        """插入或合并关系

        Returns:
            (关系, 是否新建)。三元组已存在时合并来源、取较大的强度和置信度，
            并返回已有关系。

        Raises:
            PersistenceError: 端点实体不存在或数据库写入失败
        """
        async with self._lock:
            with self._guard("upsert_relationship"):
                return self._upsert_relationship_sync(rel)

    def _upsert_relationship_sync(self, rel: Relationship) -> Tuple[Relationship, bool]:
        with self._write_tx() as cur:
            existing = self._find_relationship_sync(*rel.triple_key)
            if existing is None:
                new_rel = copy.deepcopy(rel)
                new_rel.strength = _clamp(new_rel.strength)
                new_rel.confidence = _clamp(new_rel.confidence)
                try:
                    self._insert_relationship(cur, new_rel)
                except sqlite3.IntegrityError as e:
                    raise PersistenceError(
                        f"Relationship endpoints missing: {rel.from_entity_id} -> {rel.to_entity_id}"
                    ) from e
                return new_rel, True

            self._merge_relationship(existing, rel)
            self._update_relationship(cur, existing)
            return existing, False

    @staticmethod
    def _merge_relationship(existing: Relationship, rel: Relationship) -> None:
        """合并策略：来源取并集，强度/置信度取较大值，已有属性不覆盖"""
        existing.add_sources(rel.source_record_ids)
        existing.strength = _clamp(max(existing.strength, rel.strength))
        existing.confidence = _clamp(max(existing.confidence, rel.confidence))
        for k, v in rel.properties.items():
            existing.properties.setdefault(k, v)
        existing.updated_time = datetime.now()

    def _find_relationship_sync(
        self, from_id: str, to_id: str, relation_type: str
    ) -> Optional[Relationship]:
        assert self._conn
        row = self._conn.execute(
            """SELECT * FROM kg_relationships
               WHERE from_entity_id = ? AND to_entity_id = ? AND relation_type = ?""",
            (from_id, to_id, relation_type),
        ).fetchone()
        return Relationship.from_row(dict(row)) if row else None

    @staticmethod
    def _insert_relationship(cur: sqlite3.Cursor, rel: Relationship) -> None:
        cur.execute(
            """INSERT INTO kg_relationships
               (id, from_entity_id, to_entity_id, relation_type, properties,
                strength, confidence, source_record_ids, created_time, updated_time)
               VALUES (:id, :from_entity_id, :to_entity_id, :relation_type, :properties,
                       :strength, :confidence, :source_record_ids, :created_time, :updated_time)""",
            rel.to_dict(),
        )

    @staticmethod
    def _update_relationship(cur: sqlite3.Cursor, rel: Relationship) -> None:
        cur.execute(
            """UPDATE kg_relationships SET
                properties=:properties, strength=:strength, confidence=:confidence,
                source_record_ids=:source_record_ids, updated_time=:updated_time
               WHERE id=:id""",
            rel.to_dict(),
        )

    # ================================================================
    # 关系查询
    # ================================================================

    async def get_relationship(self, rel_id: str) -> Optional[Relationship]:
        async with self._lock:
            with self._guard("get_relationship") as conn:
                row = conn.execute(
                    "SELECT * FROM kg_relationships WHERE id = ?", (rel_id,)
                ).fetchone()
                return Relationship.from_row(dict(row)) if row else None

    async def find_relationship(
        self, from_id: str, to_id: str, relation_type: RelationType
    ) -> Optional[Relationship]:
        """按三元组查找关系"""
        async with self._lock:
            with self._guard("find_relationship"):
                return self._find_relationship_sync(
                    from_id, to_id, RelationType(relation_type).value
                )

    async def get_relationships(
        self,
        entity_id: str,
        direction: RelationDirection = RelationDirection.BOTH,
        limit: int = 1000,
    ) -> List[Relationship]:
        """获取实体的关系

        Args:
            entity_id: 实体 ID
            direction: incoming（指向该实体）/ outgoing（从该实体出发）/ both
        """
        direction = RelationDirection(direction)
        if direction == RelationDirection.OUTGOING:
            where, params = "from_entity_id = ?", (entity_id,)
        elif direction == RelationDirection.INCOMING:
            where, params = "to_entity_id = ?", (entity_id,)
        else:
            where, params = "from_entity_id = ? OR to_entity_id = ?", (entity_id, entity_id)

        async with self._lock:
            with self._guard("get_relationships") as conn:
                rows = conn.execute(
                    f"""SELECT * FROM kg_relationships WHERE {where}
                        ORDER BY strength DESC, created_time LIMIT ?""",
                    (*params, limit),
                ).fetchall()
                return [Relationship.from_row(dict(r)) for r in rows]

    async def get_all_relationships(self, limit: int = 50000) -> List[Relationship]:
        """获取所有关系"""
        async with self._lock:
            with self._guard("get_all_relationships") as conn:
                rows = conn.execute(
                    "SELECT * FROM kg_relationships ORDER BY created_time, rowid LIMIT ?", (limit,)
                ).fetchall()
                return [Relationship.from_row(dict(r)) for r in rows]

    async def get_relationship_counts(self, entity_ids: Iterable[str]) -> Dict[str, int]:
        """批量统计实体的关系数（入边 + 出边）"""
        async with self._lock:
            with self._guard("get_relationship_counts"):
                return self._relationship_counts_sync(entity_ids)

    def _relationship_counts_sync(self, entity_ids: Iterable[str]) -> Dict[str, int]:
        assert self._conn
        ids = list(entity_ids)
        counts: Dict[str, int] = {i: 0 for i in ids}
        # 分批，避免超过 SQLite 参数个数上限
        for i in range(0, len(ids), 500):
            chunk = ids[i:i + 500]
            placeholders = ",".join("?" * len(chunk))
            for column in ("from_entity_id", "to_entity_id"):
                rows = self._conn.execute(
                    f"""SELECT {column}, COUNT(*) FROM kg_relationships
                        WHERE {column} IN ({placeholders}) GROUP BY {column}""",
                    chunk,
                ).fetchall()
                for r in rows:
                    counts[r[0]] = counts.get(r[0], 0) + r[1]
        return counts

    # ================================================================
    # 图遍历快照
    # ================================================================

    async def load_graph_rows(self) -> Tuple[List[Entity], List[Relationship], int]:
        """在一个读事务内读出全部实体和关系，附带该快照的版本号"""
        async with self._lock:
            with self._guard("load_graph_rows"), self._read_tx() as conn:
                revision = self._read_revision_sync()
                entity_rows = conn.execute("SELECT * FROM kg_entities").fetchall()
                rel_rows = conn.execute("SELECT * FROM kg_relationships").fetchall()
                return (
                    [Entity.from_row(dict(r)) for r in entity_rows],
                    [Relationship.from_row(dict(r)) for r in rel_rows],
                    revision,
                )

    # ================================================================
    # SQL 聚合方法（供统计使用）
    # ================================================================

    async def get_entity_count(self) -> int:
        async with self._lock:
            with self._guard("get_entity_count") as conn:
                row = conn.execute("SELECT COUNT(*) FROM kg_entities").fetchone()
                return row[0] if row else 0

    async def get_relationship_count(self) -> int:
        async with self._lock:
            with self._guard("get_relationship_count") as conn:
                row = conn.execute("SELECT COUNT(*) FROM kg_relationships").fetchone()
                return row[0] if row else 0

    async def get_entity_type_distribution(self) -> Dict[str, int]:
        """{entity_type: count}"""
        async with self._lock:
            with self._guard("get_entity_type_distribution") as conn:
                rows = conn.execute(
                    "SELECT entity_type, COUNT(*) FROM kg_entities GROUP BY entity_type"
                ).fetchall()
                return {r[0]: r[1] for r in rows}

    async def get_relation_type_distribution(self) -> Dict[str, int]:
        """{relation_type: count}"""
        async with self._lock:
            with self._guard("get_relation_type_distribution") as conn:
                rows = conn.execute(
                    "SELECT relation_type, COUNT(*) FROM kg_relationships GROUP BY relation_type"
                ).fetchall()
                return {r[0]: r[1] for r in rows}

    async def get_avg_confidence(self) -> Dict[str, float]:
        """{"entities": 平均实体置信度, "relationships": 平均关系置信度}"""
        async with self._lock:
            with self._guard("get_avg_confidence") as conn:
                er = conn.execute("SELECT AVG(confidence) FROM kg_entities").fetchone()
                rr = conn.execute("SELECT AVG(confidence) FROM kg_relationships").fetchone()
                return {
                    "entities": er[0] if er and er[0] is not None else 0.0,
                    "relationships": rr[0] if rr and rr[0] is not None else 0.0,
                }

    async def get_orphan_entity_ids(self) -> List[str]:
        """没有任何关系的实体 ID"""
        async with self._lock:
            with self._guard("get_orphan_entity_ids") as conn:
                rows = conn.execute(
                    """SELECT e.id FROM kg_entities e
                       WHERE NOT EXISTS (
                           SELECT 1 FROM kg_relationships r WHERE r.from_entity_id = e.id
                       )
                       AND NOT EXISTS (
                           SELECT 1 FROM kg_relationships r WHERE r.to_entity_id = e.id
                       )"""
                ).fetchall()
                return [r[0] for r in rows]

